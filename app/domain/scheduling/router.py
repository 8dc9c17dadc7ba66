"""Scheduling router - FastAPI endpoints for availability and booking proposals"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from . import proposal_service
from .schemas import (
    EarliestDateResponse,
    ProjectSelectionRequest,
    ScheduleProposals,
    ScheduleRequest,
    ScheduleWindow,
    SelectionRequest,
    SelectionResult,
)
from .service import SchedulingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduling", tags=["Scheduling"])


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db)


# ============================================================================
# STATELESS ENGINE (snapshots in the request body)
# ============================================================================


@router.post("/proposals", response_model=Optional[ScheduleProposals])
def compute_proposals(data: ScheduleRequest):
    """Earliest and shortest-throughput proposals; null when nothing can be scheduled"""
    return proposal_service.compute_schedule_proposals(
        data.service, data.resources, data.bookings, data.now
    )


@router.post("/earliest-date", response_model=EarliestDateResponse)
def compute_earliest_date(data: ScheduleRequest):
    earliest = proposal_service.compute_earliest_bookable_date(
        data.service, data.resources, data.bookings, data.now
    )
    return EarliestDateResponse(earliest_bookable_date=earliest)


@router.post("/validate", response_model=SelectionResult)
def validate_selection(data: SelectionRequest):
    return proposal_service.validate_selection(
        data.service, data.resources, data.proposed_start, data.bookings, data.now
    )


@router.post("/window", response_model=Optional[ScheduleWindow])
def build_window(data: SelectionRequest):
    """Booking fields for a valid selection; null when it cannot be booked"""
    return proposal_service.build_schedule_window(
        data.service, data.resources, data.proposed_start, data.bookings, data.now
    )


# ============================================================================
# STORED PROJECTS
# ============================================================================


@router.get("/projects/{project_id}/proposals", response_model=Optional[ScheduleProposals])
def get_project_proposals(
    project_id: int,
    subproject_index: Optional[int] = Query(None, ge=0),
    now: Optional[datetime] = Query(None),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Proposals for a published project (optionally one of its subprojects)"""
    logger.info(f"📅 Computing proposals for project {project_id} (subproject {subproject_index})")
    return service.get_proposals(project_id, subproject_index, now)


@router.get("/projects/{project_id}/earliest-date", response_model=EarliestDateResponse)
def get_project_earliest_date(
    project_id: int,
    subproject_index: Optional[int] = Query(None, ge=0),
    now: Optional[datetime] = Query(None),
    service: SchedulingService = Depends(get_scheduling_service),
):
    earliest = service.get_earliest_bookable_date(project_id, subproject_index, now)
    return EarliestDateResponse(earliest_bookable_date=earliest)


@router.post("/projects/{project_id}/validate", response_model=SelectionResult)
def validate_project_selection(
    project_id: int,
    data: ProjectSelectionRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.validate_selection(project_id, data)


@router.post("/projects/{project_id}/window", response_model=ScheduleWindow)
def build_project_window(
    project_id: int,
    data: ProjectSelectionRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Booking window to persist for the selected start (409 when no longer available)"""
    logger.info(f"📝 Building schedule window for project {project_id} at {data.proposed_start}")
    return service.build_schedule_window(project_id, data)
