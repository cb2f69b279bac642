"""
Tests for the balance ledger: reserve, commit, release, credits and year end
"""
from datetime import date
from decimal import Decimal

import pytest

from app.core.exceptions import BalanceExceededError, InsufficientBalanceError
from app.models.leave import BalanceLedgerEntry, DayType, LeaveBalance, LeaveType, LedgerOperation
from app.services import balance_ledger as ledger
from app.services.leave_service import apply_leave

TODAY = date(2026, 3, 2)
MON = date(2026, 3, 9)
WED = date(2026, 3, 11)


def _balance(db, employee):
    db.expire_all()
    return db.query(LeaveBalance).filter(LeaveBalance.employee_id == employee.id).one()


def test_reserve_within_balance(db, test_employee, set_balance):
    set_balance(test_employee, casual=5)

    with ledger.balance_transaction(db, test_employee.id):
        remaining = ledger.reserve(db, test_employee.id, LeaveType.CASUAL, Decimal("3"))

    assert remaining == Decimal("2")
    # reserve is a check only
    assert _balance(db, test_employee).casual_balance == Decimal("5")


def test_reserve_insufficient(db, test_employee, set_balance):
    set_balance(test_employee, casual=2)

    with pytest.raises(InsufficientBalanceError) as exc_info:
        with ledger.balance_transaction(db, test_employee.id):
            ledger.reserve(db, test_employee.id, LeaveType.CASUAL, Decimal("3"))

    error = exc_info.value
    assert error.status_code == 422
    assert error.requested == Decimal("3")
    assert error.available == Decimal("2")


def test_reserve_counts_pending_days(db, policies, test_employee, set_balance, calendar):
    set_balance(test_employee, casual=4)
    apply_leave(
        db, test_employee.id, LeaveType.CASUAL, MON, DayType.FULL, WED, DayType.FULL,
        today=TODAY, calendar=calendar,
    )

    with pytest.raises(InsufficientBalanceError) as exc_info:
        with ledger.balance_transaction(db, test_employee.id):
            ledger.reserve(db, test_employee.id, LeaveType.CASUAL, Decimal("2"))

    assert exc_info.value.available == Decimal("1")
    assert exc_info.value.context["pending"] == Decimal("3")


def test_reserve_lop_uses_headroom(db, test_employee, set_balance):
    set_balance(test_employee, lop=8)

    with ledger.balance_transaction(db, test_employee.id):
        assert ledger.reserve(db, test_employee.id, LeaveType.LOP, Decimal("2")) == Decimal("0")

    with pytest.raises(InsufficientBalanceError):
        with ledger.balance_transaction(db, test_employee.id):
            ledger.reserve(db, test_employee.id, LeaveType.LOP, Decimal("2.5"))


def test_reserve_lop_respects_policy_max(db, test_employee, set_balance):
    set_balance(test_employee, lop=3)

    with pytest.raises(InsufficientBalanceError):
        with ledger.balance_transaction(db, test_employee.id):
            ledger.reserve(db, test_employee.id, LeaveType.LOP, Decimal("3"), annual_max=Decimal("5"))


def test_permission_is_not_balance_tracked(db, test_employee):
    with ledger.balance_transaction(db, test_employee.id):
        assert ledger.reserve(db, test_employee.id, LeaveType.PERMISSION, Decimal("5")) == Decimal("0")


def test_commit_spends_balance_and_records_entry(db, test_employee, set_balance):
    set_balance(test_employee, casual=5)

    with ledger.balance_transaction(db, test_employee.id):
        after = ledger.commit(db, test_employee.id, LeaveType.CASUAL, Decimal("0.5"), "test:commit:1")

    assert after == Decimal("4.5")
    assert _balance(db, test_employee).casual_balance == Decimal("4.5")
    entry = db.query(BalanceLedgerEntry).filter(BalanceLedgerEntry.idempotency_key == "test:commit:1").one()
    assert entry.operation == LedgerOperation.COMMIT
    assert entry.delta == Decimal("-0.5")
    assert entry.balance_after == Decimal("4.5")


def test_commit_replay_is_noop(db, test_employee, set_balance):
    set_balance(test_employee, casual=5)

    for _ in range(2):
        with ledger.balance_transaction(db, test_employee.id):
            ledger.commit(db, test_employee.id, LeaveType.CASUAL, Decimal("1"), "test:commit:replay")

    assert _balance(db, test_employee).casual_balance == Decimal("4")
    assert db.query(BalanceLedgerEntry).count() == 1
    assert ledger.is_applied(db, "test:commit:replay")


def test_commit_below_zero_rejected(db, test_employee, set_balance):
    set_balance(test_employee, sick=0.5)

    with pytest.raises(BalanceExceededError):
        with ledger.balance_transaction(db, test_employee.id):
            ledger.commit(db, test_employee.id, LeaveType.SICK, Decimal("1"), "test:sick:1")

    assert _balance(db, test_employee).sick_balance == Decimal("0.5")


def test_commit_lop_grows_up_to_cap(db, test_employee, set_balance):
    set_balance(test_employee, lop=9)

    with ledger.balance_transaction(db, test_employee.id):
        assert ledger.commit(db, test_employee.id, LeaveType.LOP, Decimal("1"), "test:lop:1") == Decimal("10")

    with pytest.raises(BalanceExceededError):
        with ledger.balance_transaction(db, test_employee.id):
            ledger.commit(db, test_employee.id, LeaveType.LOP, Decimal("0.5"), "test:lop:2")


def test_release_of_pending_day_leaves_balance(db, test_employee, set_balance):
    set_balance(test_employee, casual=5)

    with ledger.balance_transaction(db, test_employee.id):
        assert ledger.release(db, test_employee.id, LeaveType.CASUAL, Decimal("1"), "test:rel:1") == Decimal("5")

    entry = db.query(BalanceLedgerEntry).one()
    assert entry.operation == LedgerOperation.RELEASE
    assert entry.delta == Decimal("0")


def test_release_of_committed_day_recredits(db, test_employee, set_balance):
    set_balance(test_employee, casual=5, lop=0.5)

    with ledger.balance_transaction(db, test_employee.id):
        ledger.release(db, test_employee.id, LeaveType.CASUAL, Decimal("2"), "test:rel:c", committed=True)
        ledger.release(db, test_employee.id, LeaveType.LOP, Decimal("1"), "test:rel:l", committed=True)

    balance = _balance(db, test_employee)
    assert balance.casual_balance == Decimal("7")
    assert balance.lop_balance == Decimal("0")


def test_credit_clamped_to_cap(db, test_employee, set_balance):
    set_balance(test_employee, casual=11.5)

    with ledger.balance_transaction(db, test_employee.id):
        after = ledger.credit_monthly(db, test_employee.id, LeaveType.CASUAL, Decimal("1"), Decimal("12"), "test:cr:1")

    assert after == Decimal("12")


def test_credit_without_max_uses_default_cap(db, test_employee, set_balance):
    set_balance(test_employee, casual=98.5)

    with ledger.balance_transaction(db, test_employee.id):
        after = ledger.credit_monthly(db, test_employee.id, LeaveType.CASUAL, Decimal("1"), Decimal("0"), "test:cr:2")

    assert after == Decimal("99")


def test_credit_never_reduces_balance(db, test_employee, set_balance):
    set_balance(test_employee, casual=15)

    with ledger.balance_transaction(db, test_employee.id):
        after = ledger.credit_anniversary(
            db, test_employee.id, LeaveType.CASUAL, Decimal("3"), Decimal("12"), "test:cr:3", years=3,
        )

    assert after == Decimal("15")
    entry = db.query(BalanceLedgerEntry).one()
    assert entry.remarks == "3-year anniversary bonus"


def test_lop_cannot_be_credited(db, test_employee):
    with pytest.raises(ValueError):
        with ledger.balance_transaction(db, test_employee.id):
            ledger.credit_monthly(db, test_employee.id, LeaveType.LOP, Decimal("1"), None, "test:cr:lop")


def test_year_end(db, test_employee, set_balance):
    set_balance(test_employee, casual=11, sick=4, lop=6)

    with ledger.balance_transaction(db, test_employee.id):
        ledger.apply_year_end(db, test_employee.id, LeaveType.CASUAL, Decimal("8"), "test:ye:c")
        ledger.apply_year_end(db, test_employee.id, LeaveType.SICK, Decimal("0"), "test:ye:s")
        ledger.apply_year_end(db, test_employee.id, LeaveType.LOP, None, "test:ye:l")

    balance = _balance(db, test_employee)
    assert balance.casual_balance == Decimal("8")
    assert balance.sick_balance == Decimal("0")
    assert balance.lop_balance == Decimal("0")


def test_failed_transaction_rolls_back_everything(db, test_employee, set_balance):
    set_balance(test_employee, casual=5)

    with pytest.raises(BalanceExceededError):
        with ledger.balance_transaction(db, test_employee.id):
            ledger.commit(db, test_employee.id, LeaveType.CASUAL, Decimal("2"), "test:rb:1")
            ledger.commit(db, test_employee.id, LeaveType.CASUAL, Decimal("4"), "test:rb:2")

    assert _balance(db, test_employee).casual_balance == Decimal("5")
    assert db.query(BalanceLedgerEntry).count() == 0


def test_nested_transaction_joins_outer(db, test_employee, set_balance):
    set_balance(test_employee, casual=5)

    with pytest.raises(RuntimeError):
        with ledger.balance_transaction(db, test_employee.id):
            with ledger.balance_transaction(db, test_employee.id):
                ledger.commit(db, test_employee.id, LeaveType.CASUAL, Decimal("1"), "test:nest:1")
            assert ledger.in_balance_transaction()
            raise RuntimeError("abort")

    assert not ledger.in_balance_transaction()
    assert _balance(db, test_employee).casual_balance == Decimal("5")


def test_balance_row_created_on_demand(db, test_employee):
    balance = ledger.get_balance(db, test_employee.id)

    assert balance.casual_balance == Decimal("0")
    assert db.query(LeaveBalance).count() == 1


def test_summary_deducts_pending(db, policies, test_employee, set_balance, calendar):
    set_balance(test_employee, casual=5, sick=2, lop=4)
    apply_leave(
        db, test_employee.id, LeaveType.CASUAL, MON, DayType.FIRST_HALF, MON, DayType.FIRST_HALF,
        today=TODAY, calendar=calendar,
    )

    summary = ledger.get_balance_summary(db, test_employee.id)

    assert summary["casual"] == {"balance": Decimal("5"), "pending": Decimal("0.5"), "available": Decimal("4.5")}
    assert summary["sick"]["available"] == Decimal("2")
    assert summary["lop"]["available"] == Decimal("6")
