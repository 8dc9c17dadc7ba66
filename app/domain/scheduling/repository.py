"""Scheduling repository - batched reads that feed the proposal engine"""

import logging
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload

from ...config import TERMINAL_BOOKING_STATUSES
from ...models import Booking, BookingAssignment, Project, User
from .schemas import BlockedDate, BlockedRange, BookingSnapshot, ResourceSnapshot

logger = logging.getLogger(__name__)


def _pick(entry: dict, *keys: str) -> Any:
    """First present key; stored JSON mixes camelCase and snake_case"""
    for key in keys:
        if entry.get(key) is not None:
            return entry[key]
    return None


def parse_blocked_dates(raw: Optional[list]) -> list[BlockedDate]:
    parsed = []
    for entry in raw or []:
        if isinstance(entry, str):
            entry = {"date": entry}
        if not isinstance(entry, dict):
            continue
        try:
            parsed.append(
                BlockedDate(
                    date=_pick(entry, "date"),
                    is_holiday=bool(_pick(entry, "isHoliday", "is_holiday")),
                    reason=_pick(entry, "reason"),
                )
            )
        except ValidationError as e:
            logger.warning(f"⚠️ Skipping malformed blocked date {entry!r}: {e.error_count()} errors")
    return parsed


def parse_blocked_ranges(raw: Optional[list]) -> list[BlockedRange]:
    parsed = []
    for entry in raw or []:
        if not isinstance(entry, dict):
            continue
        try:
            parsed.append(
                BlockedRange(
                    start_date=_pick(entry, "startDate", "start_date"),
                    end_date=_pick(entry, "endDate", "end_date"),
                    is_holiday=bool(_pick(entry, "isHoliday", "is_holiday")),
                    reason=_pick(entry, "reason"),
                    execution_end_date=_pick(entry, "executionEndDate", "execution_end_date"),
                )
            )
        except ValidationError as e:
            logger.warning(f"⚠️ Skipping malformed blocked range {entry!r}: {e.error_count()} errors")
    return parsed


def to_resource_snapshot(user: User) -> ResourceSnapshot:
    company = user.company
    snapshot = {
        "id": user.id,
        "availability": user.availability,
        "company_availability": company.availability if company else None,
        "blocked_dates": parse_blocked_dates(user.blocked_dates),
        "blocked_ranges": parse_blocked_ranges(user.blocked_ranges),
        "company_blocked_dates": parse_blocked_dates(company.blocked_dates if company else None),
        "company_blocked_ranges": parse_blocked_ranges(company.blocked_ranges if company else None),
    }
    if user.timezone:
        snapshot["timezone"] = user.timezone
    return ResourceSnapshot(**snapshot)


def to_booking_snapshot(booking: Booking) -> BookingSnapshot:
    resource_ids = [booking.professional_id] if booking.professional_id is not None else []
    resource_ids.extend(assignment.user_id for assignment in booking.assignments)
    return BookingSnapshot(
        id=booking.id,
        project_id=booking.project_id,
        resource_ids=resource_ids,
        status=booking.status or "booked",
        scheduled_start_date=booking.scheduled_start_date,
        scheduled_execution_end_date=booking.scheduled_execution_end_date,
        scheduled_buffer_start_date=booking.scheduled_buffer_start_date,
        scheduled_end_date=booking.scheduled_end_date,
        execution_end_date=booking.execution_end_date,
        buffer_start_date=booking.buffer_start_date,
    )


class SchedulingRepository:
    """Repository for the scheduling reads (one query per entity kind)"""

    @staticmethod
    def get_project(db: Session, project_id: int) -> Optional[Project]:
        return db.query(Project).filter(Project.id == project_id).first()

    @staticmethod
    def get_resource_ids(project: Project) -> list[int]:
        """Assigned team members, or the professional alone when none are set"""
        resource_ids = []
        for value in project.resources or []:
            try:
                resource_id = int(value)
            except (TypeError, ValueError):
                logger.warning(f"⚠️ Project {project.id}: ignoring resource id {value!r}")
                continue
            if resource_id not in resource_ids:
                resource_ids.append(resource_id)
        return resource_ids or [project.professional_id]

    @staticmethod
    def get_users(db: Session, user_ids: list[int]) -> list[User]:
        """Users with their company, returned in the order of ``user_ids``"""
        if not user_ids:
            return []
        users = (
            db.query(User)
            .options(joinedload(User.company))
            .filter(User.id.in_(user_ids))
            .all()
        )
        by_id = {user.id: user for user in users}
        return [by_id[user_id] for user_id in user_ids if user_id in by_id]

    @staticmethod
    def get_active_bookings(db: Session, project_id: int, resource_ids: list[int]) -> list[Booking]:
        """Scheduled, non-terminal bookings of this project or of any of the resources"""
        return (
            db.query(Booking)
            .outerjoin(BookingAssignment, BookingAssignment.booking_id == Booking.id)
            .options(selectinload(Booking.assignments))
            .filter(
                or_(
                    Booking.status.is_(None),
                    Booking.status.notin_(sorted(TERMINAL_BOOKING_STATUSES)),
                ),
                Booking.scheduled_start_date.isnot(None),
                or_(
                    Booking.project_id == project_id,
                    Booking.professional_id.in_(resource_ids),
                    BookingAssignment.user_id.in_(resource_ids),
                ),
            )
            .distinct()
            .all()
        )
