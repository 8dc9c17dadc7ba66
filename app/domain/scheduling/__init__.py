"""
Scheduling Domain

Availability and booking-proposal engine for marketplace projects.

Structure:
```
app/domain/scheduling/
├── __init__.py
├── schemas.py              # Snapshots, durations, proposals, request bodies
├── time_calculator.py      # Zoned days, time parsing and formatting
├── blocked_intervals.py    # Blocked dates/ranges and booking blocks per resource
├── availability_service.py # Working hours, day/slot feasibility, crew rules
├── working_time.py         # Preparation end, working-day walks, buffer end
├── proposal_service.py     # Earliest / shortest proposals, selection checks
├── repository.py           # Project, user and booking queries
├── service.py              # Stored-project orchestration
└── router.py               # /scheduling endpoints
```

The engine functions in ``proposal_service`` are pure: they take snapshots and an
optional ``now`` and never write to the database.
"""

__all__ = []
