"""
Tests for policy resolution by effective date
"""
from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException

from app.core.exceptions import PolicyNotFoundError
from app.models.employee import Role
from app.models.leave import LeaveType
from app.services.policy_resolver import create_policy, list_policies, resolve


@pytest.fixture
def casual_generations(db, hr_employee):
    create_policy(
        db, Role.EMPLOYEE, LeaveType.CASUAL, Decimal("12"), Decimal("0"), Decimal("8"),
        effective_from=date(2024, 1, 1), actor_id=hr_employee.id,
    )
    create_policy(
        db, Role.EMPLOYEE, LeaveType.CASUAL, Decimal("18"), Decimal("0"), Decimal("8"),
        effective_from=date(2026, 1, 1), actor_id=hr_employee.id,
    )


def test_latest_effective_row_wins(db, casual_generations):
    assert resolve(db, Role.EMPLOYEE, LeaveType.CASUAL, date(2025, 6, 1)).annual_credit == Decimal("12")
    assert resolve(db, Role.EMPLOYEE, LeaveType.CASUAL, date(2026, 1, 1)).annual_credit == Decimal("18")
    assert resolve(db, "employee", "casual", date(2026, 8, 1)).annual_credit == Decimal("18")


def test_before_first_effective_date_raises(db, casual_generations):
    with pytest.raises(PolicyNotFoundError) as exc_info:
        resolve(db, Role.EMPLOYEE, LeaveType.CASUAL, date(2023, 12, 31))

    assert exc_info.value.status_code == 404
    assert exc_info.value.context["role"] == "employee"


def test_role_without_policy_raises(db, policies):
    with pytest.raises(PolicyNotFoundError) as exc_info:
        resolve(db, Role.SUPER_ADMIN, LeaveType.CASUAL, date(2026, 3, 2))

    assert exc_info.value.error_code == "POLICY_NOT_FOUND"
    assert exc_info.value.context["leave_type"] == "casual"


def test_list_policies_filters(db, policies, casual_generations):
    rows = list_policies(db, role=Role.EMPLOYEE, leave_type=LeaveType.CASUAL)

    assert [r.effective_from for r in rows] == [date(2024, 1, 1), date(2024, 8, 19), date(2026, 1, 1)]


def test_duplicate_policy_conflicts(db, casual_generations):
    with pytest.raises(HTTPException) as exc_info:
        create_policy(
            db, Role.EMPLOYEE, LeaveType.CASUAL, Decimal("12"), Decimal("0"), Decimal("8"),
            effective_from=date(2026, 1, 1),
        )
    assert exc_info.value.status_code == 409


def test_carry_forward_above_max_rejected(db):
    with pytest.raises(HTTPException) as exc_info:
        create_policy(
            db, Role.EMPLOYEE, LeaveType.CASUAL, Decimal("12"), Decimal("10"), Decimal("11"),
            effective_from=date(2026, 1, 1),
        )
    assert exc_info.value.status_code == 400
