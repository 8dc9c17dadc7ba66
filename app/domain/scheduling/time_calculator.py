"""Time and calendar helpers for the scheduling engine.

Instants are timezone-aware ``datetime`` objects normalised to UTC. A calendar day
in a resource's timezone is a :class:`ZonedDay`; wall-clock times on that day are
composed from the date and a minute offset and only then attached to the zone, so
daylight-saving transitions are handled by ``zoneinfo`` rather than fixed offsets.
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

# Indexed by date.weekday() (Monday == 0)
DAY_KEYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_TIME_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def resolve_zone(name: Optional[str]) -> Optional[tzinfo]:
    """Return the IANA zone for ``name`` or None when it cannot be resolved"""
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError) as e:
        logger.warning(f"⚠️ Unknown timezone {name!r}, treating resource as unavailable: {e}")
        return None


def to_utc(value: datetime) -> datetime:
    """Normalise an instant to aware UTC (naive values are taken as UTC)"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_time_to_minutes(value: Optional[str]) -> Optional[int]:
    """Parse "HH:MM" into minutes since midnight; None when malformed"""
    if not value or not isinstance(value, str):
        return None
    match = _TIME_PATTERN.match(value)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59 or hours > 24 or (hours == 24 and minutes > 0):
        return None
    return hours * 60 + minutes


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_date_key(day: date) -> str:
    return day.isoformat()


def round_up_to_increment(minutes: float, increment: int) -> int:
    return int(math.ceil(minutes / increment) * increment)


@dataclass(frozen=True)
class ZonedDay:
    """A calendar date as seen from a specific timezone"""

    day: date
    zone: tzinfo

    @classmethod
    def of(cls, instant: datetime, zone: tzinfo) -> "ZonedDay":
        return cls(to_utc(instant).astimezone(zone).date(), zone)

    @property
    def key(self) -> str:
        return format_date_key(self.day)

    @property
    def weekday_key(self) -> str:
        return DAY_KEYS[self.day.weekday()]

    @property
    def is_weekend(self) -> bool:
        return self.day.weekday() >= 5

    def add_days(self, days: int) -> "ZonedDay":
        return ZonedDay(self.day + timedelta(days=days), self.zone)

    def at(self, minutes: float) -> datetime:
        """UTC instant of the wall-clock time ``minutes`` after local midnight"""
        wall = datetime.combine(self.day, time()) + timedelta(minutes=minutes)
        return wall.replace(tzinfo=self.zone).astimezone(timezone.utc)

    @property
    def start(self) -> datetime:
        return self.at(0)

    @property
    def end(self) -> datetime:
        """Start of the following day (exclusive end of this one)"""
        return self.add_days(1).start

    def minute_of(self, instant: datetime) -> float:
        """Minutes after this day's local midnight for an instant on the same day"""
        local = to_utc(instant).astimezone(self.zone)
        return local.hour * 60 + local.minute + local.second / 60 + local.microsecond / 60_000_000


def days_between(start: date, end: date) -> int:
    """Inclusive number of calendar days from ``start`` to ``end``"""
    return (end - start).days + 1
