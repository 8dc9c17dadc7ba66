from datetime import date

from app.domain.scheduling.availability_service import ResourceCalendar
from app.domain.scheduling.schemas import BlockedDate, Duration, DurationUnit
from app.domain.scheduling.working_time import (
    advance_working_days,
    calculate_buffer_end,
    calculate_prep_end,
)
from helpers import MONDAY_MORNING, make_resource, utc


def _calendar(**fields) -> ResourceCalendar:
    return ResourceCalendar.build(make_resource(**fields))


def _days(value):
    return Duration(value=value, unit="days")


def _hours(value):
    return Duration(value=value, unit="hours")


def test_no_preparation_starts_now():
    assert calculate_prep_end(_calendar(), None, MONDAY_MORNING) == MONDAY_MORNING
    assert calculate_prep_end(_calendar(), _days(0), MONDAY_MORNING) == MONDAY_MORNING


def test_preparation_days_count_today_before_closing():
    # Monday and Tuesday are preparation days
    assert calculate_prep_end(_calendar(), _days(2), MONDAY_MORNING) == utc(2027, 3, 3)


def test_preparation_days_skip_today_after_closing():
    assert calculate_prep_end(_calendar(), _days(2), utc(2027, 3, 1, 18)) == utc(2027, 3, 4)


def test_preparation_days_skip_weekends():
    # Friday counts, then the day after it begins
    assert calculate_prep_end(_calendar(), _days(1), utc(2027, 3, 5, 10)) == utc(2027, 3, 6)
    assert calculate_prep_end(_calendar(), _days(2), utc(2027, 3, 5, 10)) == utc(2027, 3, 9)


def test_holidays_pause_preparation_but_blocked_dates_do_not():
    holiday = _calendar(blocked_dates=[BlockedDate(date="2027-03-02", is_holiday=True)])
    blocked = _calendar(blocked_dates=[BlockedDate(date="2027-03-02")])

    assert calculate_prep_end(holiday, _days(2), MONDAY_MORNING) == utc(2027, 3, 4)
    assert calculate_prep_end(blocked, _days(2), MONDAY_MORNING) == utc(2027, 3, 3)


def test_preparation_hours_consume_working_time():
    assert calculate_prep_end(_calendar(), _hours(2), MONDAY_MORNING) == utc(2027, 3, 1, 11)
    # one hour on Monday, two on Tuesday
    assert calculate_prep_end(_calendar(), _hours(3), utc(2027, 3, 1, 16)) == utc(2027, 3, 2, 11)


def test_preparation_without_any_working_day_is_bounded():
    calendar = _calendar(timezone="Nowhere/Special")

    prep_end = calculate_prep_end(calendar, _days(1), MONDAY_MORNING, horizon_days=10)

    assert prep_end > MONDAY_MORNING


def test_advance_working_days():
    weekdays = lambda day: day.weekday() < 5  # noqa: E731

    assert advance_working_days(weekdays, date(2027, 3, 4), 3) == [
        date(2027, 3, 4),
        date(2027, 3, 5),
        date(2027, 3, 8),
    ]
    assert advance_working_days(lambda day: False, date(2027, 3, 4), 1, 20) is None


def test_no_buffer_ends_with_execution():
    end = calculate_buffer_end(_calendar(), utc(2027, 3, 5, 17), None, DurationUnit.DAYS)

    assert end == utc(2027, 3, 5, 17)


def test_hours_buffer_after_hours_execution_is_exact():
    end = calculate_buffer_end(_calendar(), utc(2027, 3, 1, 11), _hours(1.5), DurationUnit.HOURS)

    assert end == utc(2027, 3, 1, 12, 30)


def test_days_buffer_ends_at_closing_of_last_buffer_day():
    # execution ends Friday, the buffer day is the following Monday
    end = calculate_buffer_end(_calendar(), utc(2027, 3, 5, 17), _days(1), DurationUnit.DAYS)

    assert end == utc(2027, 3, 8, 17)


def test_hours_buffer_in_days_mode_rounds_up_to_working_days():
    calendar = _calendar()

    one_day = calculate_buffer_end(calendar, utc(2027, 3, 1, 17), _hours(4), DurationUnit.DAYS)
    two_days = calculate_buffer_end(calendar, utc(2027, 3, 1, 17), _hours(10), DurationUnit.DAYS)

    assert one_day == utc(2027, 3, 2, 17)
    assert two_days == utc(2027, 3, 3, 17)


def test_days_buffer_after_hours_execution_starts_next_day():
    end = calculate_buffer_end(_calendar(), utc(2027, 3, 2, 11), _days(1), DurationUnit.HOURS)

    assert end == utc(2027, 3, 3, 17)
