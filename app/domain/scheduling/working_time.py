"""Working-time arithmetic: preparation end, working-day walks and buffer end"""

import logging
import math
from datetime import date, datetime, timedelta
from typing import Callable, Optional, Protocol

from ...config import DEFAULT_BUFFER_DAY_HOURS, SEARCH_HORIZON_DAYS
from .availability_service import ResourceCalendar
from .schemas import Duration, DurationUnit
from .time_calculator import ZonedDay

logger = logging.getLogger(__name__)

DEFAULT_CLOSING_MINUTE = 17 * 60


class CalendarView(Protocol):
    """What working-time walks need from a resource or crew calendar"""

    @property
    def zone(self): ...

    def is_day_usable(self, day: date) -> bool: ...

    def closing(self, day: date) -> Optional[datetime]: ...

    def working_minutes(self, day: date) -> int: ...


def advance_working_days(
    is_usable: Callable[[date], bool],
    start: date,
    working_days: int,
    max_span_days: int = SEARCH_HORIZON_DAYS,
) -> Optional[list[date]]:
    """Collect ``working_days`` usable days starting at ``start`` (inclusive).

    Returns None when they cannot be found within ``max_span_days`` calendar days.
    """
    days: list[date] = []
    for offset in range(max_span_days + 1):
        day = start + timedelta(days=offset)
        if is_usable(day):
            days.append(day)
            if len(days) >= working_days:
                return days
    return None


def _is_prep_day(calendar: ResourceCalendar, day: date) -> bool:
    # Blocked dates do not pause preparation, holidays do
    if calendar.zoned(day).is_weekend:
        return False
    return calendar.is_working_day(day) and not calendar.is_holiday(day)


def calculate_prep_end(
    calendar: ResourceCalendar,
    preparation: Optional[Duration],
    now: datetime,
    horizon_days: int = SEARCH_HORIZON_DAYS,
) -> datetime:
    """Earliest instant the work itself may begin once preparation is done"""
    if preparation is None or preparation.value <= 0:
        return now

    zone = calendar.zone
    if preparation.unit == DurationUnit.HOURS:
        return _prep_end_in_hours(calendar, preparation.value, now, horizon_days)

    required = math.ceil(preparation.value)
    today = ZonedDay.of(now, zone)
    hours = calendar.working_hours(today.day)
    cursor = today.day
    # Today only counts when it is a prep day that still has working time left
    if not _is_prep_day(calendar, cursor) or today.minute_of(now) >= hours.end_minute:
        cursor += timedelta(days=1)

    counted = 0
    last_prep_day = None
    for _ in range(horizon_days + required * 7):
        if _is_prep_day(calendar, cursor):
            counted += 1
            last_prep_day = cursor
            if counted >= required:
                return ZonedDay(last_prep_day, zone).end
        cursor += timedelta(days=1)

    logger.warning(
        f"⚠️ Preparation of {required} days for resource {calendar.resource_id} "
        f"did not fit in the search horizon"
    )
    return ZonedDay(cursor, zone).start


def _prep_end_in_hours(
    calendar: ResourceCalendar, prep_hours: float, now: datetime, horizon_days: int
) -> datetime:
    zone = calendar.zone
    remaining = prep_hours * 60
    cursor = now

    for _ in range(horizon_days + math.ceil(prep_hours) * 7):
        day = ZonedDay.of(cursor, zone)
        if _is_prep_day(calendar, day.day):
            hours = calendar.working_hours(day.day)
            current = max(day.minute_of(cursor), hours.start_minute)
            if current < hours.end_minute:
                available = hours.end_minute - current
                if remaining <= available:
                    return day.at(current + remaining)
                remaining -= available
        cursor = day.end

    logger.warning(
        f"⚠️ Preparation of {prep_hours}h for resource {calendar.resource_id} "
        f"did not fit in the search horizon"
    )
    return cursor


def calculate_buffer_end(
    view: CalendarView,
    execution_end: datetime,
    buffer: Optional[Duration],
    mode: DurationUnit,
    completion_day: Optional[date] = None,
    horizon_days: int = SEARCH_HORIZON_DAYS,
) -> datetime:
    """End of the post-execution buffer (equals ``execution_end`` without one)"""
    if buffer is None or buffer.value <= 0:
        return execution_end

    if mode == DurationUnit.HOURS and buffer.unit == DurationUnit.HOURS:
        return execution_end + timedelta(hours=buffer.value)

    if completion_day is None:
        completion_day = ZonedDay.of(execution_end, view.zone).day
    first_day = completion_day + timedelta(days=1)

    if buffer.unit == DurationUnit.HOURS:
        # Convert to days using the length of the first buffer day
        minutes = view.working_minutes(first_day)
        day_hours = minutes / 60 if minutes > 0 else DEFAULT_BUFFER_DAY_HOURS
        buffer_days = max(1, math.ceil(buffer.value / day_hours))
    else:
        buffer_days = max(1, math.ceil(buffer.value))

    days = advance_working_days(view.is_day_usable, first_day, buffer_days, horizon_days)
    if days is None:
        logger.warning(f"⚠️ Buffer of {buffer_days} working days did not fit in the search horizon")
        last_day = first_day + timedelta(days=buffer_days - 1)
        return ZonedDay(last_day, view.zone).at(DEFAULT_CLOSING_MINUTE)

    closing = view.closing(days[-1])
    return closing or ZonedDay(days[-1], view.zone).at(DEFAULT_CLOSING_MINUTE)
