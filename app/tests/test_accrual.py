"""
Tests for monthly accrual, anniversary bonuses and year-end carry forward
"""
from datetime import date
from decimal import Decimal

import pytest

from app.models.audit_log import AuditLog
from app.models.employee import Role
from app.models.leave import BalanceLedgerEntry, LeaveBalance
from app.services import accrual_engine


def _balance(db, employee):
    db.expire_all()
    return db.query(LeaveBalance).filter(LeaveBalance.employee_id == employee.id).one()


@pytest.mark.parametrize("annual,expected", [
    ("12", "1.0"),
    ("6", "0.5"),
    ("10", "0.8"),
    ("7", "0.6"),
    ("0", "0.0"),
])
def test_monthly_amount(annual, expected):
    assert accrual_engine.monthly_amount(Decimal(annual)) == Decimal(expected)


@pytest.mark.parametrize("trigger,period,expected", [
    ("monthly", "2026-02", (date(2026, 2, 1), date(2026, 2, 28))),
    ("anniversary", "2026-03-10", (date(2026, 3, 10), date(2026, 3, 10))),
    ("year_end", "2026", (date(2026, 1, 1), date(2026, 12, 31))),
])
def test_parse_period(trigger, period, expected):
    assert accrual_engine.parse_period(trigger, period) == expected


@pytest.mark.parametrize("trigger,period", [
    ("monthly", "2026-3"),
    ("monthly", "2026-13"),
    ("monthly", "2026"),
    ("anniversary", "2026-02-30"),
    ("anniversary", "2026-3-5"),
    ("anniversary", "2026-03-5"),
    ("year_end", "26"),
    ("weekly", "2026-03"),
])
def test_parse_period_rejects(trigger, period):
    with pytest.raises(ValueError):
        accrual_engine.parse_period(trigger, period)


@pytest.mark.parametrize("trigger,start,expected", [
    ("monthly", date(2026, 3, 1), "2026-03"),
    ("anniversary", date(2026, 3, 5), "2026-03-05"),
    ("year_end", date(2026, 1, 1), "2026"),
])
def test_period_label(trigger, start, expected):
    assert accrual_engine.period_label(trigger, start) == expected


def test_anniversary_years():
    assert accrual_engine.anniversary_years(date(2023, 3, 10), date(2026, 3, 10)) == 3
    assert accrual_engine.anniversary_years(date(2023, 3, 10), date(2026, 3, 11)) is None
    assert accrual_engine.anniversary_years(date(2026, 3, 10), date(2026, 3, 10)) is None
    assert accrual_engine.anniversary_years(date(2024, 2, 29), date(2027, 2, 28)) == 3
    assert accrual_engine.anniversary_years(date(2024, 2, 29), date(2028, 2, 29)) == 4


def test_monthly_run_credits_once(db, policies, test_employee, manager_employee, super_admin):
    summary = accrual_engine.run_accrual(db, "2026-03")

    assert summary["total_employees_processed"] == 3
    assert summary["credited_count"] == 2
    # super_admin has no policy rows
    assert summary["skipped_no_policy"] == 1
    balance = _balance(db, test_employee)
    assert balance.casual_balance == Decimal("1")
    assert balance.sick_balance == Decimal("0.5")

    rerun = accrual_engine.run_accrual(db, "2026-03")

    assert rerun["credited_count"] == 0
    assert rerun["skipped_already_applied"] == 2
    assert _balance(db, test_employee).casual_balance == Decimal("1")
    assert db.query(AuditLog).filter(AuditLog.action == "ACCRUAL_RUN").count() == 2


def test_monthly_run_next_month_adds_again(db, policies, test_employee):
    accrual_engine.run_accrual(db, "2026-03")
    accrual_engine.run_accrual(db, "2026-04")

    assert _balance(db, test_employee).casual_balance == Decimal("2")
    keys = {e.idempotency_key for e in db.query(BalanceLedgerEntry).all()}
    assert f"accrual:monthly:2026-04:{test_employee.id}:casual" in keys


def test_not_yet_joined_and_inactive_are_skipped(db, policies, make_employee):
    make_employee("NEW001", Role.EMPLOYEE, date_of_joining=date(2026, 4, 1))
    make_employee("OLD001", Role.EMPLOYEE, status="terminated")

    summary = accrual_engine.run_accrual(db, "2026-03")

    assert summary["total_employees_processed"] == 1
    assert summary["skipped_not_eligible"] == 1
    assert summary["credited_count"] == 0


def test_anniversary_bonus(db, policies, make_employee):
    three_years = make_employee("EMP003", Role.EMPLOYEE, date_of_joining=date(2023, 3, 10))
    four_years = make_employee("EMP004", Role.EMPLOYEE, date_of_joining=date(2022, 3, 10))

    summary = accrual_engine.run_accrual(db, "2026-03-10", trigger="anniversary")

    assert summary["credited_count"] == 1
    assert _balance(db, three_years).casual_balance == Decimal("3")
    assert db.query(LeaveBalance).filter(LeaveBalance.employee_id == four_years.id).first() is None
    entry = db.query(BalanceLedgerEntry).one()
    assert entry.remarks == "3-year anniversary bonus"


def test_year_end_carry_forward(db, policies, set_balance, test_employee):
    set_balance(test_employee, casual=11, sick=4, lop=6)

    summary = accrual_engine.run_accrual(db, "2026", trigger="year_end")

    detail = next(d for d in summary["details"] if d["employee_id"] == test_employee.id)
    assert detail["credits"] == {"casual": Decimal("8"), "sick": Decimal("0"), "lop": Decimal("0")}
    balance = _balance(db, test_employee)
    assert balance.casual_balance == Decimal("8")
    assert balance.sick_balance == Decimal("0")
    assert balance.lop_balance == Decimal("0")


def test_year_end_keeps_small_balance(db, policies, set_balance, make_employee):
    intern = make_employee("INT001", Role.INTERN)
    set_balance(intern, casual=2)

    accrual_engine.run_accrual(db, "2026", trigger="year_end")

    # Intern casual carries nothing forward
    assert _balance(db, intern).casual_balance == Decimal("0")


def test_bad_period(db):
    with pytest.raises(ValueError):
        accrual_engine.run_accrual(db, "March")


def test_anniversary_rerun_pays_bonus_once(db, policies, make_employee):
    employee = make_employee("EMP005", Role.EMPLOYEE, date_of_joining=date(2023, 3, 5))

    accrual_engine.run_accrual(db, "2026-03-05", trigger="anniversary")
    rerun = accrual_engine.run_accrual(db, "2026-03-05", trigger="anniversary")
    with pytest.raises(ValueError):
        accrual_engine.run_accrual(db, "2026-3-5", trigger="anniversary")

    assert rerun["credited_count"] == 0
    assert rerun["skipped_already_applied"] == 1
    assert _balance(db, employee).casual_balance == Decimal("3")
    entry = db.query(BalanceLedgerEntry).one()
    assert entry.idempotency_key == f"accrual:anniversary:2026-03-05:{employee.id}:casual"
