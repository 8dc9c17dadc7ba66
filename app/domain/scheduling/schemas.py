"""Scheduling domain schemas - snapshots consumed and values returned by the engine"""

import math
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ...config import DEFAULT_MIN_OVERLAP_PERCENTAGE, DEFAULT_TIMEZONE

HOURS_PER_DAY = 24


class DurationUnit(str, Enum):
    HOURS = "hours"
    DAYS = "days"


class Duration(BaseModel):
    """A `{value, unit}` duration as stored on projects"""

    value: float = Field(..., ge=0)
    unit: DurationUnit = DurationUnit.DAYS

    def to_hours(self) -> float:
        if self.unit == DurationUnit.HOURS:
            return self.value
        return self.value * HOURS_PER_DAY

    def whole_days(self) -> int:
        """Number of calendar/working days this duration occupies (at least one)"""
        if self.unit == DurationUnit.DAYS:
            return max(1, math.ceil(self.value))
        return max(1, math.ceil(self.value / HOURS_PER_DAY))


class BlockedDate(BaseModel):
    """A single blocked calendar date (optionally a holiday)"""

    date: Union[datetime, date]
    is_holiday: bool = False
    reason: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v):
        # "YYYY-MM-DD" is a calendar date, anything longer is an instant
        if isinstance(v, str):
            if len(v) == 10:
                return date.fromisoformat(v)
            return datetime.fromisoformat(v.replace("Z", "+00:00"))
        return v


class BlockedRange(BaseModel):
    """A blocked instant range, e.g. vacation or a booking block"""

    start_date: datetime
    end_date: datetime
    is_holiday: bool = False
    reason: Optional[str] = None
    # Only present on ranges created from bookings
    execution_end_date: Optional[datetime] = None


class ResourceSnapshot(BaseModel):
    """Read-only view of a professional or team member"""

    id: str
    timezone: Optional[str] = DEFAULT_TIMEZONE
    availability: Optional[dict[str, Any]] = None
    company_availability: Optional[dict[str, Any]] = None
    blocked_dates: list[BlockedDate] = Field(default_factory=list)
    blocked_ranges: list[BlockedRange] = Field(default_factory=list)
    company_blocked_dates: list[BlockedDate] = Field(default_factory=list)
    company_blocked_ranges: list[BlockedRange] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v) if v is not None else v


class BookingSnapshot(BaseModel):
    """Existing booking that may hold a resource's calendar"""

    id: Optional[str] = None
    project_id: Optional[str] = None
    resource_ids: list[str] = Field(default_factory=list)
    status: str = "booked"
    scheduled_start_date: Optional[datetime] = None
    scheduled_execution_end_date: Optional[datetime] = None
    scheduled_buffer_start_date: Optional[datetime] = None
    scheduled_end_date: Optional[datetime] = None
    # Legacy field names kept until older bookings are normalized
    execution_end_date: Optional[datetime] = None
    buffer_start_date: Optional[datetime] = None

    @field_validator("id", "project_id", mode="before")
    @classmethod
    def coerce_ids(cls, v):
        return str(v) if v is not None else v

    @field_validator("resource_ids", mode="before")
    @classmethod
    def coerce_resource_ids(cls, v):
        return [str(item) for item in v] if v else []

    @property
    def execution_end(self) -> Optional[datetime]:
        return self.scheduled_execution_end_date or self.execution_end_date

    @property
    def buffer_start(self) -> Optional[datetime]:
        return self.scheduled_buffer_start_date or self.buffer_start_date


class ServiceSpec(BaseModel):
    """The work to schedule, derived from a project or subproject"""

    project_id: Optional[str] = None
    mode: Optional[DurationUnit] = None
    execution: Optional[Duration] = None
    preparation: Optional[Duration] = None
    buffer: Optional[Duration] = None
    min_resources: int = Field(1, ge=1)
    min_overlap_percentage: float = Field(DEFAULT_MIN_OVERLAP_PERCENTAGE, ge=0, le=100)

    @field_validator("project_id", mode="before")
    @classmethod
    def coerce_project_id(cls, v):
        return str(v) if v is not None else v

    @property
    def execution_mode(self) -> DurationUnit:
        if self.mode is not None:
            return self.mode
        if self.execution is not None:
            return self.execution.unit
        return DurationUnit.DAYS

    @property
    def is_schedulable(self) -> bool:
        return self.execution is not None and self.execution.value > 0


class Proposal(BaseModel):
    start: datetime
    end: datetime
    execution_end: datetime
    throughput_days: Optional[int] = None


class ScheduleProposals(BaseModel):
    mode: DurationUnit
    earliest_bookable_date: datetime
    earliest_proposal: Optional[Proposal] = None
    shortest_throughput_proposal: Optional[Proposal] = None


class SelectionResult(BaseModel):
    valid: bool
    code: Optional[str] = None
    reason: Optional[str] = None


class ScheduleWindow(BaseModel):
    """Booking fields to persist once a selection is accepted"""

    scheduled_start_date: datetime
    execution_end_date: datetime
    buffer_start_date: Optional[datetime] = None
    scheduled_end_date: datetime


# Request bodies for the stateless endpoints


class ScheduleRequest(BaseModel):
    service: ServiceSpec
    resources: list[ResourceSnapshot]
    bookings: list[BookingSnapshot] = Field(default_factory=list)
    now: Optional[datetime] = None


class SelectionRequest(ScheduleRequest):
    proposed_start: datetime


class ProjectSelectionRequest(BaseModel):
    proposed_start: datetime
    subproject_index: Optional[int] = None
    now: Optional[datetime] = None


class EarliestDateResponse(BaseModel):
    earliest_bookable_date: Optional[datetime] = None
