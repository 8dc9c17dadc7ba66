import pytest
from fastapi import HTTPException

from app.domain.scheduling.repository import (
    SchedulingRepository,
    parse_blocked_dates,
    parse_blocked_ranges,
    to_booking_snapshot,
)
from app.domain.scheduling.schemas import DurationUnit, ProjectSelectionRequest
from app.domain.scheduling.service import SchedulingService, build_service_spec, parse_duration
from app.models import Booking, BookingAssignment, Company, Project, User
from helpers import MONDAY_MORNING, utc


def _seed(db_session, **project_fields):
    company = Company(
        name="Acme Renovations",
        blocked_dates=[{"date": "2027-03-02", "isHoliday": True, "reason": "Company day"}],
    )
    db_session.add(company)
    db_session.flush()

    owner = User(email="owner@example.com", role="professional", company_id=company.id, timezone="UTC")
    helper = User(email="helper@example.com", role="employee", company_id=company.id, timezone="UTC")
    outsider = User(email="outsider@example.com", role="professional", timezone="UTC")
    db_session.add_all([owner, helper, outsider])
    db_session.flush()

    fields = {
        "title": "Kitchen renovation",
        "execution_duration": {"value": 2, "unit": "days"},
    }
    fields.update(project_fields)
    project = Project(professional_id=owner.id, **fields)
    db_session.add(project)
    db_session.commit()
    return project, owner, helper, outsider


def test_parse_duration():
    assert parse_duration({"value": "3", "unit": "hours"}).to_hours() == 3
    assert parse_duration({"value": 2}, "hours").unit == DurationUnit.HOURS
    assert parse_duration({"value": 2, "unit": "weeks"}).unit == DurationUnit.DAYS
    assert parse_duration({"value": -1, "unit": "days"}) is None
    assert parse_duration({"unit": "days"}) is None
    assert parse_duration(None) is None


def test_service_spec_from_selected_subproject():
    project = Project(
        id=5,
        execution_duration={"value": 3, "unit": "days"},
        subprojects=[
            {
                "executionDuration": {"value": 3, "unit": "hours"},
                "preparationDuration": {"value": 1},
                "buffer": {"value": 30, "unit": "hours"},
            }
        ],
    )

    spec = build_service_spec(project, 0)

    assert spec.project_id == "5"
    assert spec.execution_mode == DurationUnit.HOURS
    assert spec.execution.value == 3
    assert spec.preparation.unit == DurationUnit.HOURS
    assert spec.buffer.value == 30
    assert spec.min_resources == 1
    assert spec.min_overlap_percentage == 70


def test_service_spec_uses_legacy_preparation_fields():
    project = Project(
        id=6,
        subprojects=[
            {
                "executionDuration": {"value": 2, "unit": "days"},
                "deliveryPreparation": 4,
                "deliveryPreparationUnit": "hours",
            }
        ],
    )

    spec = build_service_spec(project, 0)

    assert spec.preparation.value == 4
    assert spec.preparation.unit == DurationUnit.HOURS


def test_service_spec_without_subproject_uses_longest_durations():
    project = Project(
        id=7,
        time_mode="days",
        min_resources=2,
        min_overlap_percentage=50,
        subprojects=[
            {"executionDuration": {"value": 20, "unit": "hours"}},
            {"executionDuration": {"value": 2, "unit": "days"}, "deliveryPreparation": 1},
        ],
    )

    spec = build_service_spec(project)

    assert spec.execution.value == 2
    assert spec.execution.unit == DurationUnit.DAYS
    assert spec.preparation.value == 1
    assert spec.min_resources == 2
    assert spec.min_overlap_percentage == 50


def test_service_spec_without_execution_is_unschedulable():
    assert not build_service_spec(Project(id=8)).is_schedulable


def test_parse_blocked_entries_skip_malformed_values():
    dates = parse_blocked_dates(["2027-03-02", {"date": "not a date"}, {"date": "2027-03-03", "isHoliday": True}])
    ranges = parse_blocked_ranges(
        [
            {"startDate": "2027-03-01T09:00:00Z", "endDate": "2027-03-01T12:00:00Z", "reason": "dentist"},
            {"startDate": "soon"},
        ]
    )

    assert [entry.is_holiday for entry in dates] == [False, True]
    assert len(ranges) == 1
    assert ranges[0].reason == "dentist"


def test_resource_ids_fall_back_to_professional(db_session):
    project, owner, helper, _ = _seed(db_session)
    repo = SchedulingRepository()

    assert repo.get_resource_ids(project) == [owner.id]

    project.resources = [str(helper.id), owner.id, helper.id, "garbage"]
    assert repo.get_resource_ids(project) == [helper.id, owner.id]


def test_get_users_keeps_requested_order(db_session):
    _, owner, helper, _ = _seed(db_session)

    users = SchedulingRepository.get_users(db_session, [helper.id, 999, owner.id])

    assert [user.id for user in users] == [helper.id, owner.id]


def test_active_bookings_query(db_session):
    project, owner, helper, outsider = _seed(db_session)
    window = {
        "scheduled_start_date": utc(2027, 3, 1, 9),
        "scheduled_execution_end_date": utc(2027, 3, 1, 17),
        "scheduled_end_date": utc(2027, 3, 1, 17),
    }
    own = Booking(project_id=project.id, professional_id=owner.id, status="booked", **window)
    cancelled = Booking(project_id=project.id, professional_id=owner.id, status="cancelled", **window)
    unrelated = Booking(professional_id=outsider.id, status="booked", **window)
    assigned = Booking(professional_id=outsider.id, status="in_progress", **window)
    unscheduled = Booking(project_id=project.id, professional_id=owner.id, status="booked")
    db_session.add_all([own, cancelled, unrelated, assigned, unscheduled])
    db_session.flush()
    db_session.add(BookingAssignment(booking_id=assigned.id, user_id=helper.id))
    db_session.commit()

    bookings = SchedulingRepository.get_active_bookings(db_session, project.id, [owner.id, helper.id])

    assert sorted(booking.id for booking in bookings) == sorted([own.id, assigned.id])
    snapshot = to_booking_snapshot(assigned)
    assert snapshot.resource_ids == [str(outsider.id), str(helper.id)]


def test_project_proposals_respect_company_holidays_and_bookings(db_session):
    project, owner, _, _ = _seed(db_session)
    db_session.add(
        Booking(
            project_id=project.id,
            professional_id=owner.id,
            status="booked",
            scheduled_start_date=utc(2027, 3, 3, 9),
            scheduled_execution_end_date=utc(2027, 3, 3, 17),
            scheduled_end_date=utc(2027, 3, 3, 17),
        )
    )
    db_session.commit()

    proposals = SchedulingService(db_session).get_proposals(project.id, now=MONDAY_MORNING)

    # Tuesday is a company holiday, Wednesday is booked
    assert proposals.earliest_proposal.start == utc(2027, 3, 1, 9)
    assert proposals.earliest_proposal.throughput_days == 4
    assert proposals.shortest_throughput_proposal.start == utc(2027, 3, 4, 9)
    assert proposals.shortest_throughput_proposal.throughput_days == 2


def test_missing_project_is_404(db_session):
    with pytest.raises(HTTPException) as exc:
        SchedulingService(db_session).get_proposals(12345, now=MONDAY_MORNING)

    assert exc.value.status_code == 404


def test_build_window_rejects_unavailable_selection(db_session):
    project, _, _, _ = _seed(db_session)
    data = ProjectSelectionRequest(proposed_start=utc(2027, 3, 2, 9), now=MONDAY_MORNING)

    with pytest.raises(HTTPException) as exc:
        SchedulingService(db_session).build_schedule_window(project.id, data)

    assert exc.value.status_code == 409
    assert exc.value.detail["code"] == "day-blocked"


def test_build_window_for_project(db_session):
    project, _, _, _ = _seed(db_session, buffer_duration={"value": 1, "unit": "days"})
    data = ProjectSelectionRequest(proposed_start=utc(2027, 3, 3, 9), now=MONDAY_MORNING)

    window = SchedulingService(db_session).build_schedule_window(project.id, data)

    assert window.scheduled_start_date == utc(2027, 3, 3, 9)
    assert window.execution_end_date == utc(2027, 3, 4, 17)
    assert window.buffer_start_date == utc(2027, 3, 5)
    assert window.scheduled_end_date == utc(2027, 3, 5, 17)
