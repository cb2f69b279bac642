"""
Tests for notice bands and date windows
"""
import logging
from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.core.exceptions import InsufficientNoticeError, InvalidRangeError
from app.models.leave import DayType, LeaveType
from app.services.calendar_service import StaticCalendar
from app.services.day_expander import expand_days
from app.services.notice_validator import (
    find_rule,
    list_rules,
    validate_date_window,
    validate_notice,
)

TODAY = date(2026, 3, 2)


def _drafts(start, end):
    return expand_days(start, DayType.FULL, end, DayType.FULL, StaticCalendar())


@pytest.mark.parametrize("duration,expected_notice", [
    (Decimal("0.5"), 3),
    (Decimal("2"), 3),
    (Decimal("2.5"), 3),
    (Decimal("3"), 7),
    (Decimal("5"), 7),
    (Decimal("5.5"), 30),
    (Decimal("9"), 30),
])
def test_find_rule_picks_band(db, policies, duration, expected_notice):
    assert find_rule(db, duration).prior_information_days == expected_notice


def test_short_notice_raises(db, policies):
    start = date(2026, 3, 3)

    with pytest.raises(InsufficientNoticeError) as exc_info:
        validate_notice(db, LeaveType.CASUAL, _drafts(start, start), start, TODAY, employee_id=7)

    error = exc_info.value
    assert error.required_days == 3
    assert error.notice_days == 1
    assert error.context["employee_id"] == 7


def test_enough_notice_passes(db, policies):
    start = date(2026, 3, 9)
    assert validate_notice(db, LeaveType.CASUAL, _drafts(start, date(2026, 3, 11)), start, TODAY) is None


def test_three_day_leave_needs_a_week(db, policies):
    start = date(2026, 3, 9)
    applied_on = date(2026, 3, 4)

    with pytest.raises(InsufficientNoticeError) as exc_info:
        validate_notice(db, LeaveType.CASUAL, _drafts(start, date(2026, 3, 11)), start, applied_on)

    assert exc_info.value.required_days == 7
    assert exc_info.value.notice_days == 5


def test_six_day_leave_needs_a_month(db, policies):
    start = date(2026, 3, 23)

    with pytest.raises(InsufficientNoticeError) as exc_info:
        validate_notice(db, LeaveType.CASUAL, _drafts(start, date(2026, 3, 30)), start, TODAY)

    assert exc_info.value.required_days == 30


def test_rules_are_listed_by_duration(db, policies):
    rules = list_rules(db)

    assert [(r.leave_required_min, r.leave_required_max, r.prior_information_days) for r in rules] == [
        (Decimal("0.5"), Decimal("2.5"), 3),
        (Decimal("3"), Decimal("5"), 7),
        (Decimal("5.5"), None, 30),
    ]


def test_urgent_bypasses_and_warns(db, policies, caplog):
    start = date(2026, 3, 3)

    with caplog.at_level(logging.WARNING, logger="app.services.notice_validator"):
        bypass = validate_notice(db, LeaveType.CASUAL, _drafts(start, start), start, TODAY, urgent=True)

    assert bypass["required_days"] == 3
    assert bypass["notice_days"] == 1
    assert "urgent notice bypass" in caplog.text


def test_sick_leave_is_not_subject_to_notice(db, policies):
    assert validate_notice(db, LeaveType.SICK, _drafts(TODAY, TODAY), TODAY, TODAY) is None


def test_inactive_rules_are_ignored(db, policies):
    for rule in list_rules(db):
        rule.is_active = False
    db.commit()

    assert find_rule(db, Decimal("3")) is None
    assert list_rules(db, active_only=True) == []


@pytest.mark.parametrize("leave_type,offset", [
    (LeaveType.SICK, -3),
    (LeaveType.SICK, 0),
    (LeaveType.SICK, 1),
    (LeaveType.CASUAL, 1),
    (LeaveType.LOP, 0),
    (LeaveType.PERMISSION, 0),
])
def test_date_window_accepts(leave_type, offset):
    validate_date_window(leave_type, TODAY + timedelta(days=offset), TODAY)


@pytest.mark.parametrize("leave_type,offset", [
    (LeaveType.SICK, -4),
    (LeaveType.SICK, 2),
    (LeaveType.CASUAL, 0),
    (LeaveType.CASUAL, -1),
    (LeaveType.LOP, -1),
    (LeaveType.PERMISSION, -1),
])
def test_date_window_rejects(leave_type, offset):
    with pytest.raises(InvalidRangeError):
        validate_date_window(leave_type, TODAY + timedelta(days=offset), TODAY)
