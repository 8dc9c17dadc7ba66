"""Scheduling service - Resolves a stored project and runs the proposal engine"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import DEFAULT_MIN_OVERLAP_PERCENTAGE
from ...models import Project
from . import proposal_service
from .repository import SchedulingRepository, to_booking_snapshot, to_resource_snapshot
from .schemas import (
    BookingSnapshot,
    Duration,
    DurationUnit,
    ProjectSelectionRequest,
    ResourceSnapshot,
    ScheduleProposals,
    ScheduleWindow,
    SelectionResult,
    ServiceSpec,
)

logger = logging.getLogger(__name__)

DURATION_UNITS = {unit.value for unit in DurationUnit}


def parse_duration(raw, default_unit: Optional[str] = None) -> Optional[Duration]:
    """Stored ``{value, unit}`` dict to a Duration; None when missing or malformed"""
    if not isinstance(raw, dict) or raw.get("value") is None:
        return None
    try:
        value = float(raw["value"])
    except (TypeError, ValueError):
        return None
    if value < 0:
        return None
    unit = raw.get("unit")
    if unit not in DURATION_UNITS:
        unit = default_unit if default_unit in DURATION_UNITS else DurationUnit.DAYS.value
    return Duration(value=value, unit=unit)


def _longest(durations: list[Optional[Duration]]) -> Optional[Duration]:
    candidates = [duration for duration in durations if duration is not None]
    if not candidates:
        return None
    return max(candidates, key=lambda duration: duration.to_hours())


def _subproject_preparation(subproject: dict, default_unit: Optional[str]) -> Optional[Duration]:
    execution = subproject.get("executionDuration") or {}
    unit = execution.get("unit") if isinstance(execution, dict) else None
    preparation = parse_duration(subproject.get("preparationDuration"), unit or default_unit)
    if preparation is not None:
        return preparation

    legacy = subproject.get("deliveryPreparation")
    if isinstance(legacy, (int, float)) and legacy > 0:
        return parse_duration(
            {"value": legacy, "unit": subproject.get("deliveryPreparationUnit")},
            unit or default_unit,
        )
    return None


def build_service_spec(project: Project, subproject_index: Optional[int] = None) -> ServiceSpec:
    """Derive the durations and crew rules to schedule for a project or one subproject.

    Without a selected subproject the longest subproject durations stand in for any
    duration missing on the project itself.
    """
    subprojects = [sp if isinstance(sp, dict) else {} for sp in project.subprojects or []]
    subproject = None
    if subproject_index is not None and 0 <= subproject_index < len(subprojects):
        subproject = subprojects[subproject_index] or None

    execution = None
    buffer = None
    if subproject is not None:
        execution = parse_duration(subproject.get("executionDuration"))
        buffer = parse_duration(subproject.get("buffer") or subproject.get("bufferDuration"))
    execution = (
        execution
        or parse_duration(project.execution_duration)
        or _longest([parse_duration(sp.get("executionDuration")) for sp in subprojects])
    )
    buffer = (
        buffer
        or parse_duration(project.buffer_duration)
        or _longest([parse_duration(sp.get("buffer") or sp.get("bufferDuration")) for sp in subprojects])
    )

    execution_unit = execution.unit.value if execution else None
    preparation = _subproject_preparation(subproject, execution_unit) if subproject else None
    if preparation is None:
        preparation = parse_duration(project.preparation_duration, execution_unit)
    if preparation is None and project.delivery_preparation:
        preparation = parse_duration(
            {"value": project.delivery_preparation, "unit": project.delivery_preparation_unit},
            execution_unit,
        )
    if preparation is None and subproject is None:
        preparation = _longest([_subproject_preparation(sp, execution_unit) for sp in subprojects])

    overlap = project.min_overlap_percentage
    if overlap is None:
        overlap = DEFAULT_MIN_OVERLAP_PERCENTAGE

    return ServiceSpec(
        project_id=project.id,
        mode=project.time_mode if project.time_mode in DURATION_UNITS else None,
        execution=execution,
        preparation=preparation,
        buffer=buffer,
        min_resources=max(1, project.min_resources or 1),
        min_overlap_percentage=min(100, max(0, overlap)),
    )


@dataclass
class ProjectSchedule:
    """Everything the engine needs for one stored project"""

    spec: ServiceSpec
    resources: list[ResourceSnapshot]
    bookings: list[BookingSnapshot]


class SchedulingService:
    """Service layer for scheduling a stored project"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    def load_schedule(self, project_id: int, subproject_index: Optional[int] = None) -> ProjectSchedule:
        project = self.repo.get_project(self.db, project_id)
        if not project:
            raise HTTPException(status_code=404, detail="Project not found")

        spec = build_service_spec(project, subproject_index)
        resource_ids = self.repo.get_resource_ids(project)
        users = self.repo.get_users(self.db, resource_ids)
        if len(users) < len(resource_ids):
            logger.warning(
                f"⚠️ Project {project_id}: {len(resource_ids) - len(users)} resource(s) not found"
            )
        bookings = self.repo.get_active_bookings(self.db, project.id, resource_ids)

        logger.info(
            f"📋 Project {project_id}: {len(users)} resource(s), {len(bookings)} active booking(s)"
        )
        return ProjectSchedule(
            spec=spec,
            resources=[to_resource_snapshot(user) for user in users],
            bookings=[to_booking_snapshot(booking) for booking in bookings],
        )

    def get_proposals(
        self,
        project_id: int,
        subproject_index: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[ScheduleProposals]:
        schedule = self.load_schedule(project_id, subproject_index)
        return proposal_service.compute_schedule_proposals(
            schedule.spec, schedule.resources, schedule.bookings, now
        )

    def get_earliest_bookable_date(
        self,
        project_id: int,
        subproject_index: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Optional[datetime]:
        schedule = self.load_schedule(project_id, subproject_index)
        return proposal_service.compute_earliest_bookable_date(
            schedule.spec, schedule.resources, schedule.bookings, now
        )

    def validate_selection(self, project_id: int, data: ProjectSelectionRequest) -> SelectionResult:
        schedule = self.load_schedule(project_id, data.subproject_index)
        return proposal_service.validate_selection(
            schedule.spec, schedule.resources, data.proposed_start, schedule.bookings, data.now
        )

    def build_schedule_window(self, project_id: int, data: ProjectSelectionRequest) -> ScheduleWindow:
        """Booking window for a selection; 409 when it can no longer be booked"""
        now = data.now or datetime.now(timezone.utc)
        schedule = self.load_schedule(project_id, data.subproject_index)
        result = proposal_service.validate_selection(
            schedule.spec, schedule.resources, data.proposed_start, schedule.bookings, now
        )
        if not result.valid:
            raise HTTPException(status_code=409, detail={"code": result.code, "reason": result.reason})

        window = proposal_service.build_schedule_window(
            schedule.spec, schedule.resources, data.proposed_start, schedule.bookings, now
        )
        if window is None:
            raise HTTPException(status_code=409, detail={"code": "window-unavailable"})
        return window
