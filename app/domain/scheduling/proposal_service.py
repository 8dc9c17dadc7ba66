"""
Scheduling proposal service

Computes the earliest bookable date and the earliest / shortest-throughput booking
proposals for a service request, validates a customer's selection and derives the
booking window to persist. Every function is pure given its inputs (including
``now``) and never writes anything back.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence, Union

from ...config import (
    EARLIEST_THROUGHPUT_FACTOR,
    SEARCH_HORIZON_DAYS,
    SHORTEST_THROUGHPUT_FACTOR,
)
from .availability_service import CrewCalendar, ResourceCalendar
from .schemas import (
    BookingSnapshot,
    DurationUnit,
    Proposal,
    ResourceSnapshot,
    ScheduleProposals,
    ScheduleWindow,
    SelectionResult,
    ServiceSpec,
)
from .time_calculator import ZonedDay, days_between, to_utc
from .working_time import advance_working_days, calculate_buffer_end, calculate_prep_end

logger = logging.getLogger(__name__)

CalendarView = Union[ResourceCalendar, CrewCalendar]


@dataclass
class SearchContext:
    """Per-call state shared by the search and validation steps"""

    spec: ServiceSpec
    view: CalendarView
    now: datetime
    prep_end: datetime
    not_before: datetime
    first_day: date
    horizon_days: int

    @property
    def mode(self) -> DurationUnit:
        return self.spec.execution_mode

    @property
    def execution_minutes(self) -> int:
        return int(round(self.spec.execution.to_hours() * 60))

    @property
    def execution_days(self) -> int:
        return self.spec.execution.whole_days()


@dataclass
class SearchResult:
    first_bookable_day: Optional[date] = None
    earliest: Optional[Proposal] = None
    shortest: Optional[Proposal] = None


def prepare_search(
    spec: ServiceSpec,
    resources: Sequence[ResourceSnapshot],
    bookings: Iterable[BookingSnapshot],
    now: Optional[datetime],
    horizon_days: Optional[int],
) -> Optional[SearchContext]:
    if not spec.is_schedulable:
        logger.info(f"⏭️ Project {spec.project_id}: no execution duration, nothing to schedule")
        return None
    if not resources:
        logger.info(f"⏭️ Project {spec.project_id}: no resources to schedule")
        return None

    now = to_utc(now) if now is not None else datetime.now(timezone.utc)
    horizon_days = horizon_days or SEARCH_HORIZON_DAYS
    bookings = list(bookings)

    calendars = [ResourceCalendar.build(resource, bookings, spec.project_id) for resource in resources]
    # Preparation happens on the owner's calendar
    prep_end = calculate_prep_end(calendars[0], spec.preparation, now, horizon_days)

    not_before = max(prep_end, now)
    view = CrewCalendar(calendars, spec.min_resources, spec.min_overlap_percentage, not_before)
    first_day = ZonedDay.of(prep_end, view.zone).day
    context = SearchContext(spec, view, now, prep_end, not_before, first_day, horizon_days)

    if len(calendars) > 1:
        if context.mode == DurationUnit.HOURS:
            minutes = context.execution_minutes
            view.select_primary(
                first_day,
                horizon_days,
                lambda index, day: bool(view.member_slots(index, day, minutes, not_before)),
            )
        else:
            view.select_primary(first_day, horizon_days, view.is_member_available)

    return context


def _is_start_day(view: CalendarView, day: date, not_before: datetime) -> bool:
    if not view.is_day_usable(day):
        return False
    opening = view.opening(day)
    return opening is not None and opening >= not_before


def _days_proposal(context: SearchContext, view: CalendarView, window: list[date]) -> Proposal:
    start = view.opening(window[0])
    execution_end = view.closing(window[-1])
    end = calculate_buffer_end(
        view,
        execution_end,
        context.spec.buffer,
        DurationUnit.DAYS,
        completion_day=window[-1],
        horizon_days=context.horizon_days,
    )
    return Proposal(
        start=start,
        end=end,
        execution_end=execution_end,
        throughput_days=days_between(window[0], window[-1]),
    )


def search_days_mode(context: SearchContext, view: Optional[CalendarView] = None) -> SearchResult:
    """Walk candidate start days looking for the earliest and shortest windows.

    The earliest proposal is the first window whose throughput stays within
    ``execution_days * EARLIEST_THROUGHPUT_FACTOR``; the shortest is the window with
    the smallest throughput seen. The walk stops once both are settled.
    """
    view = view or context.view
    execution_days = context.execution_days
    earliest_ceiling = execution_days * EARLIEST_THROUGHPUT_FACTOR
    result = SearchResult()

    for offset in range(context.horizon_days + 1):
        day = context.first_day + timedelta(days=offset)
        if not _is_start_day(view, day, context.not_before):
            continue
        if result.first_bookable_day is None:
            result.first_bookable_day = day

        window = advance_working_days(view.is_day_usable, day, execution_days, context.horizon_days)
        if window is None or not view.accepts_days(window):
            continue

        throughput = days_between(window[0], window[-1])
        if result.earliest is None and throughput <= earliest_ceiling:
            result.earliest = _days_proposal(context, view, window)
        if result.shortest is None or throughput < result.shortest.throughput_days:
            result.shortest = _days_proposal(context, view, window)

        if result.earliest is not None and result.shortest.throughput_days == execution_days:
            break

    if result.shortest is not None:
        tight_ceiling = execution_days * SHORTEST_THROUGHPUT_FACTOR
        if result.shortest.throughput_days > tight_ceiling:
            logger.info(
                f"📅 Project {context.spec.project_id}: shortest throughput "
                f"{result.shortest.throughput_days}d exceeds {tight_ceiling:.1f}d, using best found"
            )
    return result


def _hours_proposal(context: SearchContext, view: CalendarView, start: datetime) -> Proposal:
    execution_end = start + timedelta(minutes=context.execution_minutes)
    end = calculate_buffer_end(
        view,
        execution_end,
        context.spec.buffer,
        DurationUnit.HOURS,
        horizon_days=context.horizon_days,
    )
    return Proposal(start=start, end=end, execution_end=execution_end)


def search_hours_mode(context: SearchContext, view: Optional[CalendarView] = None) -> SearchResult:
    """First feasible slot; it is both the earliest and the shortest proposal"""
    view = view or context.view
    minutes = context.execution_minutes
    result = SearchResult()

    for offset in range(context.horizon_days + 1):
        day = context.first_day + timedelta(days=offset)
        slots = view.slot_starts(day, minutes, context.not_before)
        if not slots:
            continue
        if result.first_bookable_day is None:
            result.first_bookable_day = day

        for start in slots:
            if view.accepts_slot(day, start, minutes):
                proposal = _hours_proposal(context, view, start)
                result.earliest = result.shortest = proposal
                return result
    return result


def run_search(context: SearchContext, view: Optional[CalendarView] = None) -> SearchResult:
    if context.mode == DurationUnit.HOURS:
        return search_hours_mode(context, view)
    return search_days_mode(context, view)


def compute_schedule_proposals(
    spec: ServiceSpec,
    resources: Sequence[ResourceSnapshot],
    bookings: Iterable[BookingSnapshot] = (),
    now: Optional[datetime] = None,
    horizon_days: Optional[int] = None,
) -> Optional[ScheduleProposals]:
    """Earliest bookable date plus earliest and shortest-throughput proposals.

    Returns None when the request cannot be scheduled at all (no execution duration
    or no resources). Missing proposals mean no feasible window in the horizon.
    """
    context = prepare_search(spec, resources, bookings, now, horizon_days)
    if context is None:
        return None

    result = run_search(context)
    zone = context.view.zone
    if result.first_bookable_day is not None:
        earliest_bookable = ZonedDay(result.first_bookable_day, zone).start
    else:
        earliest_bookable = ZonedDay.of(context.prep_end, zone).start

    if result.earliest is None and result.shortest is None:
        logger.warning(
            f"⚠️ Project {spec.project_id}: no feasible {context.mode.value} window "
            f"within {context.horizon_days} days"
        )
    else:
        logger.info(
            f"✅ Project {spec.project_id}: earliest proposal "
            f"{result.earliest.start.isoformat() if result.earliest else None}"
        )

    return ScheduleProposals(
        mode=context.mode,
        earliest_bookable_date=earliest_bookable,
        earliest_proposal=result.earliest,
        shortest_throughput_proposal=result.shortest,
    )


def compute_earliest_bookable_date(
    spec: ServiceSpec,
    resources: Sequence[ResourceSnapshot],
    bookings: Iterable[BookingSnapshot] = (),
    now: Optional[datetime] = None,
    horizon_days: Optional[int] = None,
) -> Optional[datetime]:
    proposals = compute_schedule_proposals(spec, resources, bookings, now, horizon_days)
    return proposals.earliest_bookable_date if proposals else None


def _check_selection(context: SearchContext, proposed_start: datetime) -> SelectionResult:
    view = context.view
    day = ZonedDay.of(proposed_start, view.zone).day

    if context.mode == DurationUnit.HOURS:
        if proposed_start < context.prep_end:
            return SelectionResult(
                valid=False, code="before-prep-window", reason="Selected time is before prep window"
            )
        minutes = context.execution_minutes
        slots = view.slot_starts(day, minutes, context.not_before)
        if proposed_start not in slots or not view.accepts_slot(day, proposed_start, minutes):
            return SelectionResult(
                valid=False, code="slot-unavailable", reason="Selected time is not available"
            )
        return SelectionResult(valid=True)

    if day < context.first_day:
        return SelectionResult(
            valid=False, code="before-prep-window", reason="Selected date is before prep window"
        )
    if not view.is_day_usable(day):
        return SelectionResult(valid=False, code="day-blocked", reason="Selected date is blocked")
    opening = view.opening(day)
    if opening is None or opening < context.not_before:
        return SelectionResult(
            valid=False, code="before-prep-window", reason="Selected date is before prep window"
        )

    window = advance_working_days(view.is_day_usable, day, context.execution_days, context.horizon_days)
    if window is None or not view.accepts_days(window):
        return SelectionResult(
            valid=False,
            code="window-unavailable",
            reason="Not enough available working days after the selected date",
        )
    return SelectionResult(valid=True)


def validate_selection(
    spec: ServiceSpec,
    resources: Sequence[ResourceSnapshot],
    proposed_start: datetime,
    bookings: Iterable[BookingSnapshot] = (),
    now: Optional[datetime] = None,
    horizon_days: Optional[int] = None,
) -> SelectionResult:
    """Check whether a customer-selected start can still be booked"""
    context = prepare_search(spec, resources, bookings, now, horizon_days)
    if context is None:
        return SelectionResult(
            valid=False, code="unschedulable", reason="Missing execution duration or resources"
        )

    result = _check_selection(context, to_utc(proposed_start))
    if not result.valid:
        logger.info(f"🚫 Project {spec.project_id}: selection rejected ({result.code})")
    return result


def build_schedule_window(
    spec: ServiceSpec,
    resources: Sequence[ResourceSnapshot],
    proposed_start: datetime,
    bookings: Iterable[BookingSnapshot] = (),
    now: Optional[datetime] = None,
    horizon_days: Optional[int] = None,
) -> Optional[ScheduleWindow]:
    """Booking fields to persist for a valid selection, None when it is not bookable"""
    context = prepare_search(spec, resources, bookings, now, horizon_days)
    if context is None:
        return None

    proposed_start = to_utc(proposed_start)
    if not _check_selection(context, proposed_start).valid:
        return None

    view = context.view
    buffer = context.spec.buffer
    has_buffer = buffer is not None and buffer.value > 0

    if context.mode == DurationUnit.HOURS:
        proposal = _hours_proposal(context, view, proposed_start)
        buffer_start = None
        if has_buffer:
            if buffer.unit == DurationUnit.HOURS:
                buffer_start = proposal.execution_end
            else:
                buffer_start = ZonedDay.of(proposal.execution_end, view.zone).end
    else:
        day = ZonedDay.of(proposed_start, view.zone).day
        window = advance_working_days(view.is_day_usable, day, context.execution_days, context.horizon_days)
        proposal = _days_proposal(context, view, window)
        buffer_start = ZonedDay(window[-1], view.zone).end if has_buffer else None

    return ScheduleWindow(
        scheduled_start_date=proposal.start,
        execution_end_date=proposal.execution_end,
        buffer_start_date=buffer_start,
        scheduled_end_date=proposal.end,
    )
