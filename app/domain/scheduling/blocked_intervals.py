"""Blocked-interval aggregation for a resource.

Collects personal and company blocked dates/ranges plus the time held by existing
bookings into one :class:`BlockedSet` per resource. Nothing here writes back.
"""

import logging
from bisect import bisect_left
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Iterable, Optional

from ...config import SHORT_BOOKING_THRESHOLD_HOURS, TERMINAL_BOOKING_STATUSES
from .schemas import BlockedDate, BlockedRange, BookingSnapshot, ResourceSnapshot
from .time_calculator import ZonedDay, format_date_key, to_utc

logger = logging.getLogger(__name__)

PROJECT_BOOKING_REASON_PREFIX = "project-booking:"


@dataclass(frozen=True)
class BlockedInterval:
    """Half-open ``[start, end)`` UTC range"""

    start: datetime
    end: datetime
    reason: Optional[str] = None
    is_holiday: bool = False

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and self.end > start


def merge_intervals(spans: Iterable[tuple[datetime, datetime]]) -> list[tuple[datetime, datetime]]:
    """Merge overlapping or touching spans so their lengths can be summed"""
    merged: list[tuple[datetime, datetime]] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


@dataclass
class BlockedSet:
    """Blocked date keys and intervals for one resource"""

    dates: set[str] = field(default_factory=set)
    intervals: list[BlockedInterval] = field(default_factory=list)
    holiday_dates: set[str] = field(default_factory=set)
    holiday_intervals: list[BlockedInterval] = field(default_factory=list)

    def __post_init__(self):
        self.reindex()

    def reindex(self):
        self.intervals.sort(key=lambda interval: (interval.start, interval.end))
        self._starts = [interval.start for interval in self.intervals]

    def add_interval(self, interval: BlockedInterval):
        self.intervals.append(interval)
        if interval.is_holiday:
            self.holiday_intervals.append(interval)

    def has_date(self, key: str) -> bool:
        return key in self.dates

    def _candidates(self, end: datetime) -> list[BlockedInterval]:
        # Intervals starting at or after ``end`` cannot overlap
        return self.intervals[: bisect_left(self._starts, end)]

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return any(interval.overlaps(start, end) for interval in self._candidates(end))

    def blocked_minutes(self, start: datetime, end: datetime) -> float:
        """Minutes of ``[start, end)`` covered by blocked intervals, overlaps merged"""
        clamped = [
            (max(interval.start, start), min(interval.end, end))
            for interval in self._candidates(end)
            if interval.overlaps(start, end)
        ]
        return sum(
            (span_end - span_start).total_seconds() / 60
            for span_start, span_end in merge_intervals(clamped)
        )

    def is_holiday(self, day: ZonedDay) -> bool:
        if day.key in self.holiday_dates:
            return True
        day_start, day_end = day.start, day.end
        return any(interval.overlaps(day_start, day_end) for interval in self.holiday_intervals)


def blocked_date_key(entry: BlockedDate, zone: tzinfo) -> str:
    """Date key of a blocked date in the resource's timezone"""
    value = entry.date
    if isinstance(value, datetime):
        return ZonedDay.of(value, zone).key
    return format_date_key(value)


def normalize_short_booking_ranges(ranges: list[BlockedRange]) -> list[BlockedRange]:
    """Trim booking blocks for short jobs down to their execution window.

    A range tagged ``project-booking:<id>`` whose execution lasts at most
    SHORT_BOOKING_THRESHOLD_HOURS only holds the calendar until execution ends.
    """
    normalized = []
    for blocked_range in ranges:
        reason = blocked_range.reason
        if (
            not isinstance(reason, str)
            or not reason.startswith(PROJECT_BOOKING_REASON_PREFIX)
            or blocked_range.execution_end_date is None
        ):
            normalized.append(blocked_range)
            continue

        start = to_utc(blocked_range.start_date)
        execution_end = to_utc(blocked_range.execution_end_date)
        execution_hours = (execution_end - start).total_seconds() / 3600
        if execution_hours <= SHORT_BOOKING_THRESHOLD_HOURS:
            normalized.append(blocked_range.model_copy(update={"end_date": execution_end}))
        else:
            normalized.append(blocked_range)
    return normalized


def booking_intervals(booking: BookingSnapshot, zone: tzinfo) -> list[BlockedInterval]:
    """Execution and buffer intervals held by a booking"""
    intervals = []
    start = booking.scheduled_start_date
    execution_end = booking.execution_end
    buffer_start = booking.buffer_start
    scheduled_end = booking.scheduled_end_date

    if start is None:
        return intervals

    if execution_end is not None:
        intervals.append(BlockedInterval(to_utc(start), to_utc(execution_end), reason="booking"))
    elif scheduled_end is not None:
        # No execution end recorded: hold the whole scheduled window
        intervals.append(BlockedInterval(to_utc(start), to_utc(scheduled_end), reason="booking"))
        return intervals

    if buffer_start is not None and scheduled_end is not None and execution_end is not None:
        buffer_start_utc = to_utc(buffer_start)
        if buffer_start_utc == to_utc(execution_end):
            # Hours buffer starts exactly when execution ends
            buffer_end = to_utc(scheduled_end)
        else:
            # Days buffer holds the whole final buffer day in the resource's zone
            buffer_end = ZonedDay.of(scheduled_end, zone).end
        if buffer_end > buffer_start_utc:
            intervals.append(BlockedInterval(buffer_start_utc, buffer_end, reason="booking-buffer"))

    return [interval for interval in intervals if interval.end > interval.start]


def _booking_applies(booking: BookingSnapshot, resource_id: str, project_id: Optional[str]) -> bool:
    if booking.status in TERMINAL_BOOKING_STATUSES:
        return False
    if resource_id in booking.resource_ids:
        return True
    return project_id is not None and booking.project_id == project_id


def collect_blocks(
    resource: ResourceSnapshot,
    zone: tzinfo,
    bookings: Iterable[BookingSnapshot] = (),
    project_id: Optional[str] = None,
) -> BlockedSet:
    """Build the blocked dates and intervals for one resource"""
    blocked = BlockedSet()

    for entry in [*resource.blocked_dates, *resource.company_blocked_dates]:
        key = blocked_date_key(entry, zone)
        blocked.dates.add(key)
        if entry.is_holiday:
            blocked.holiday_dates.add(key)

    ranges = normalize_short_booking_ranges(
        [*resource.blocked_ranges, *resource.company_blocked_ranges]
    )
    for blocked_range in ranges:
        start, end = to_utc(blocked_range.start_date), to_utc(blocked_range.end_date)
        if end <= start:
            logger.debug(f"Skipping empty blocked range {start.isoformat()} - {end.isoformat()}")
            continue
        blocked.add_interval(
            BlockedInterval(start, end, reason=blocked_range.reason, is_holiday=blocked_range.is_holiday)
        )

    booking_count = 0
    for booking in bookings:
        if not _booking_applies(booking, resource.id, project_id):
            continue
        booking_count += 1
        for interval in booking_intervals(booking, zone):
            blocked.add_interval(interval)

    blocked.reindex()
    logger.debug(
        f"Resource {resource.id}: {len(blocked.dates)} blocked dates, "
        f"{len(blocked.intervals)} intervals ({booking_count} bookings)"
    )
    return blocked
