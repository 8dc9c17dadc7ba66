"""Working hours and day/slot feasibility for resources.

:class:`ResourceCalendar` answers availability questions for a single resource;
:class:`CrewCalendar` answers the same questions for a set of resources that must
work together, applying the minimum-resource and overlap rules. Both expose the
same methods so the proposal search can walk either one.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Callable, Iterable, Optional, Sequence

from ...config import PARTIAL_BLOCK_THRESHOLD_HOURS, SLOT_INCREMENT_MINUTES
from .blocked_intervals import BlockedSet, collect_blocks
from .schemas import BookingSnapshot, ResourceSnapshot
from .time_calculator import (
    DAY_KEYS,
    ZonedDay,
    parse_time_to_minutes,
    resolve_zone,
    round_up_to_increment,
)

logger = logging.getLogger(__name__)

DEFAULT_AVAILABILITY: dict[str, dict[str, Any]] = {
    "monday": {"available": True, "startTime": "09:00", "endTime": "17:00"},
    "tuesday": {"available": True, "startTime": "09:00", "endTime": "17:00"},
    "wednesday": {"available": True, "startTime": "09:00", "endTime": "17:00"},
    "thursday": {"available": True, "startTime": "09:00", "endTime": "17:00"},
    "friday": {"available": True, "startTime": "09:00", "endTime": "17:00"},
    "saturday": {"available": False},
    "sunday": {"available": False},
}


@dataclass(frozen=True)
class WorkingHours:
    available: bool
    start_minute: Optional[int] = None
    end_minute: Optional[int] = None

    @property
    def minutes(self) -> int:
        if not self.available:
            return 0
        return self.end_minute - self.start_minute


UNAVAILABLE = WorkingHours(available=False)


def has_any_availability(template: Optional[dict]) -> bool:
    """True when the template carries at least one informative field"""
    if not template:
        return False
    return any(
        isinstance(day, dict) and (day.get("available") or day.get("startTime") or day.get("endTime"))
        for day in template.values()
    )


def _working_hours(day_key: str, entry: dict) -> WorkingHours:
    if not entry.get("available"):
        return UNAVAILABLE

    default_day = DEFAULT_AVAILABILITY[day_key]
    start_time = entry.get("startTime") or default_day.get("startTime") or "09:00"
    end_time = entry.get("endTime") or default_day.get("endTime") or "17:00"
    start_minute = parse_time_to_minutes(start_time)
    end_minute = parse_time_to_minutes(end_time)

    if start_minute is None or end_minute is None or end_minute <= start_minute:
        logger.warning(f"⚠️ Invalid working hours for {day_key}: {start_time}-{end_time}")
        return UNAVAILABLE
    return WorkingHours(True, start_minute, end_minute)


def resolve_availability(template: Optional[dict]) -> dict[str, WorkingHours]:
    """Merge a weekly template over the defaults into explicit per-day hours"""
    merged = {day: dict(values) for day, values in DEFAULT_AVAILABILITY.items()}

    if has_any_availability(template):
        for day, value in template.items():
            day_key = str(day).lower()
            if not value or day_key not in merged:
                continue
            if not isinstance(value, dict):
                logger.warning(f"⚠️ Malformed availability for {day_key}: {value!r}, treating as unavailable")
                merged[day_key] = {"available": False}
                continue
            merged[day_key].update(value)

    return {day: _working_hours(day, merged[day]) for day in DAY_KEYS}


def overlap_percentage(primary_days: Iterable[date], other_days: Iterable[date]) -> float:
    """Share of the primary resource's available days also available to another"""
    primary = set(primary_days)
    if not primary:
        return 0.0
    shared = primary & set(other_days)
    return len(shared) / len(primary) * 100


class ResourceCalendar:
    """Resolved working hours and blocks for one resource"""

    def __init__(
        self,
        resource_id: str,
        zone: Optional[tzinfo],
        hours: dict[str, WorkingHours],
        blocked: BlockedSet,
    ):
        self.resource_id = resource_id
        self._zone = zone
        self.hours = hours
        self.blocked = blocked
        self._blocked_days: dict[date, bool] = {}

    @classmethod
    def build(
        cls,
        resource: ResourceSnapshot,
        bookings: Iterable[BookingSnapshot] = (),
        project_id: Optional[str] = None,
    ) -> "ResourceCalendar":
        zone = resolve_zone(resource.timezone)
        # Company calendar wins when it says anything at all
        if has_any_availability(resource.company_availability):
            template = resource.company_availability
        else:
            template = resource.availability
        blocked = collect_blocks(resource, zone or timezone.utc, bookings, project_id)
        return cls(resource.id, zone, resolve_availability(template), blocked)

    @property
    def zone(self) -> tzinfo:
        return self._zone or timezone.utc

    def zoned(self, day: date) -> ZonedDay:
        return ZonedDay(day, self.zone)

    def working_hours(self, day: date) -> WorkingHours:
        if self._zone is None:
            return UNAVAILABLE
        return self.hours.get(self.zoned(day).weekday_key, UNAVAILABLE)

    def is_working_day(self, day: date) -> bool:
        return self.working_hours(day).available

    def is_holiday(self, day: date) -> bool:
        return self.blocked.is_holiday(self.zoned(day))

    def working_window(self, day: date) -> Optional[tuple[datetime, datetime]]:
        hours = self.working_hours(day)
        if not hours.available:
            return None
        zoned = self.zoned(day)
        start, end = zoned.at(hours.start_minute), zoned.at(hours.end_minute)
        if end <= start:
            return None
        return start, end

    def is_day_blocked(self, day: date) -> bool:
        """Days-mode check: blocked date, non-working day, or too much blocked time"""
        if day not in self._blocked_days:
            self._blocked_days[day] = self._compute_day_blocked(day)
        return self._blocked_days[day]

    def _compute_day_blocked(self, day: date) -> bool:
        if self._zone is None:
            return True
        if self.blocked.has_date(self.zoned(day).key):
            return True
        window = self.working_window(day)
        if window is None:
            return True
        blocked_hours = self.blocked.blocked_minutes(*window) / 60
        return blocked_hours > PARTIAL_BLOCK_THRESHOLD_HOURS

    def is_day_usable(self, day: date) -> bool:
        return not self.is_day_blocked(day)

    def opening(self, day: date) -> Optional[datetime]:
        window = self.working_window(day)
        return window[0] if window else None

    def closing(self, day: date) -> Optional[datetime]:
        window = self.working_window(day)
        return window[1] if window else None

    def working_minutes(self, day: date) -> int:
        return self.working_hours(day).minutes

    def slot_starts(self, day: date, duration_minutes: int, not_before: datetime) -> list[datetime]:
        """Start instants of free execution slots on ``day`` (hours mode)"""
        if self._zone is None:
            return []
        zoned = self.zoned(day)
        if self.blocked.has_date(zoned.key):
            return []

        hours = self.working_hours(day)
        if not hours.available:
            return []
        last_start = hours.end_minute - duration_minutes
        if last_start < hours.start_minute:
            return []

        first_start = hours.start_minute
        not_before_day = ZonedDay.of(not_before, self.zone).day
        if not_before_day > day:
            return []
        if not_before_day == day:
            first_start = max(first_start, zoned.minute_of(not_before))
        first_start = round_up_to_increment(first_start, SLOT_INCREMENT_MINUTES)

        slots = []
        for minute in range(first_start, last_start + 1, SLOT_INCREMENT_MINUTES):
            start = zoned.at(minute)
            if not self.blocked.overlaps(start, start + timedelta(minutes=duration_minutes)):
                slots.append(start)
        return slots

    def accepts_days(self, days: Sequence[date]) -> bool:
        return True

    def accepts_slot(self, day: date, start: datetime, duration_minutes: int) -> bool:
        return True


class CrewCalendar:
    """Availability of several resources scheduled together.

    Days are walked in the timezone of the first resource. A day counts toward
    execution when at least one member can work it; whether a window is good enough
    is decided by :meth:`accepts_days` / :meth:`accepts_slot`:

    * on at least ``min_overlap_percentage`` of the execution days (and at least one),
      ``min_resources`` members must be available simultaneously, and
    * every non-primary member must be available on at least
      ``min_overlap_percentage`` of the primary member's execution days.
    """

    def __init__(
        self,
        calendars: Sequence[ResourceCalendar],
        min_resources: int = 1,
        min_overlap_percentage: float = 0,
        not_before: Optional[datetime] = None,
    ):
        if not calendars:
            raise ValueError("CrewCalendar needs at least one resource calendar")
        self.calendars = list(calendars)
        self.min_resources = max(1, min_resources)
        self.min_overlap_percentage = min_overlap_percentage
        self.not_before = not_before
        self.primary_index = 0
        self._members: dict[date, tuple[int, ...]] = {}
        self._slots: dict[tuple, list[datetime]] = {}

    @property
    def zone(self) -> tzinfo:
        return self.calendars[0].zone

    @property
    def primary(self) -> ResourceCalendar:
        return self.calendars[self.primary_index]

    def select_primary(
        self, first_day: date, horizon_days: int, is_available: Callable[[int, date], bool]
    ) -> int:
        """Pick the member with the earliest available day (ties go to list order)"""
        best_index, best_offset = 0, None
        for index in range(len(self.calendars)):
            for offset in range(horizon_days + 1):
                if best_offset is not None and offset >= best_offset:
                    break
                if is_available(index, first_day + timedelta(days=offset)):
                    best_index, best_offset = index, offset
                    break
        self.primary_index = best_index
        if len(self.calendars) > 1:
            logger.debug(
                f"Primary resource {self.primary.resource_id} "
                f"(first available offset: {best_offset})"
            )
        return best_index

    def available_members(self, day: date) -> tuple[int, ...]:
        if day not in self._members:
            self._members[day] = tuple(
                index
                for index, calendar in enumerate(self.calendars)
                if not calendar.is_day_blocked(day)
            )
        return self._members[day]

    def is_member_available(self, index: int, day: date) -> bool:
        return index in self.available_members(day)

    def is_day_usable(self, day: date) -> bool:
        return bool(self.available_members(day))

    def _member_windows(self, day: date) -> list[tuple[datetime, datetime]]:
        """Working windows of the available members, clipped to the crew-zone day"""
        crew_day = ZonedDay(day, self.zone)
        windows = []
        for index in self.available_members(day):
            window = self.calendars[index].working_window(day)
            if window is None:
                continue
            start = max(window[0], crew_day.start)
            end = min(window[1], crew_day.end)
            if start < end:
                windows.append((start, end))
        return windows

    def opening(self, day: date) -> Optional[datetime]:
        windows = self._member_windows(day)
        return min(start for start, _ in windows) if windows else None

    def closing(self, day: date) -> Optional[datetime]:
        windows = self._member_windows(day)
        return max(end for _, end in windows) if windows else None

    def working_minutes(self, day: date) -> int:
        return max(calendar.working_minutes(day) for calendar in self.calendars)

    def _local_slots(
        self, index: int, local_day: date, duration_minutes: int, not_before: datetime
    ) -> list[datetime]:
        key = ("local", index, local_day, duration_minutes, not_before)
        if key not in self._slots:
            calendar = self.calendars[index]
            self._slots[key] = calendar.slot_starts(local_day, duration_minutes, not_before)
        return self._slots[key]

    def member_slots(self, index: int, day: date, duration_minutes: int, not_before: datetime) -> list[datetime]:
        """Slots of one member that start within the crew-zone ``day``"""
        key = ("crew", index, day, duration_minutes, not_before)
        if key not in self._slots:
            crew_day = ZonedDay(day, self.zone)
            starts = []
            # Members in other zones reach this day from their previous or next local day
            for local_day in (day - timedelta(days=1), day, day + timedelta(days=1)):
                starts.extend(
                    start
                    for start in self._local_slots(index, local_day, duration_minutes, not_before)
                    if crew_day.start <= start < crew_day.end
                )
            self._slots[key] = sorted(starts)
        return self._slots[key]

    def slot_starts(self, day: date, duration_minutes: int, not_before: datetime) -> list[datetime]:
        counts: dict[datetime, int] = {}
        for index in range(len(self.calendars)):
            for start in self.member_slots(index, day, duration_minutes, not_before):
                counts[start] = counts.get(start, 0) + 1
        return sorted(start for start, count in counts.items() if count >= self.min_resources)

    def _accepts(self, days: Sequence[date], is_available: Callable[[int, date], bool]) -> bool:
        if len(self.calendars) < self.min_resources or not days:
            return False

        covered = [
            day
            for day in days
            if sum(1 for index in range(len(self.calendars)) if is_available(index, day))
            >= self.min_resources
        ]
        coverage = len(covered) / len(days) * 100
        if not covered or coverage < self.min_overlap_percentage:
            return False

        primary_days = [day for day in days if is_available(self.primary_index, day)]
        for index in range(len(self.calendars)):
            if index == self.primary_index:
                continue
            other_days = [day for day in days if is_available(index, day)]
            if overlap_percentage(primary_days, other_days) < self.min_overlap_percentage:
                return False
        return True

    def accepts_days(self, days: Sequence[date]) -> bool:
        return self._accepts(days, self.is_member_available)

    def accepts_slot(self, day: date, start: datetime, duration_minutes: int) -> bool:
        not_before = self.not_before or start

        def has_slot(index: int, slot_day: date) -> bool:
            return start in self.member_slots(index, slot_day, duration_minutes, not_before)

        return self._accepts([day], has_slot)
