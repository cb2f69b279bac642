"""
Balance ledger - the only writer of leave_balances.

Every mutation runs inside balance_transaction(), which serialises work per employee:
an in-process lock keyed by employee id plus SELECT ... FOR UPDATE on the balance row
(PostgreSQL). Different employees never contend. The transaction commits on success and
rolls back completely on any exception.

Operations:
- reserve: availability check on apply/edit; never mutates the stored balance.
  Pending days count against availability by re-summing them on every check.
- commit: pending -> approved. casual/sick spend down; lop (loss of pay) grows, max 10.
- release: pending -> rejected is a balance no-op; an approved day later cancelled is
  reversed (committed=True).
- credit_monthly / credit_anniversary / apply_year_end: accrual engine only.

Every mutating operation takes an idempotency key. Keys are stored on
balance_ledger_entries (unique), so a replayed key returns the current balance unchanged.
"""
import logging
import threading
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, Iterator, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    BalanceExceededError,
    ConcurrentModificationError,
    InsufficientBalanceError,
)
from app.models.leave import (
    BALANCE_LEAVE_TYPES,
    SPEND_DOWN_LEAVE_TYPES,
    BalanceLedgerEntry,
    DayStatus,
    LeaveBalance,
    LeaveDay,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
    LedgerOperation,
)
from app.db.upsert import insert_ignore
from app.services.day_expander import day_weight
from app.utils.datetime_utils import now_utc

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class _EmployeeLocks:
    """Registry of one re-entrant lock per employee id."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.RLock] = {}

    def get(self, employee_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(employee_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[employee_id] = lock
            return lock


_employee_locks = _EmployeeLocks()
_tx_state = threading.local()


def lop_cap() -> Decimal:
    return Decimal(str(settings.LOP_BALANCE_CAP))


def default_cap() -> Decimal:
    return Decimal(str(settings.DEFAULT_BALANCE_CAP))


def _dec(value) -> Decimal:
    return Decimal(str(value or 0))


def lock_balance_row(db: Session, employee_id: int, actor_id: Optional[int] = None) -> LeaveBalance:
    """
    Load the employee's balance row with a row lock, creating a zero row if missing.

    populate_existing() makes sure a row already in the identity map is re-read after
    the lock is granted.
    """
    balance = (
        db.query(LeaveBalance)
        .filter(LeaveBalance.employee_id == employee_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if balance is not None:
        return balance

    # Concurrent creators race on the unique employee_id; only one insert lands
    insert_ignore(
        db,
        LeaveBalance,
        {
            "employee_id": employee_id,
            "casual_balance": ZERO,
            "sick_balance": ZERO,
            "lop_balance": ZERO,
            "last_updated": now_utc(),
            "created_by": actor_id,
            "updated_by": actor_id,
        },
        ["employee_id"],
    )
    return (
        db.query(LeaveBalance)
        .filter(LeaveBalance.employee_id == employee_id)
        .with_for_update()
        .populate_existing()
        .one()
    )


@contextmanager
def balance_transaction(db: Session, employee_id: int, actor_id: Optional[int] = None) -> Iterator[LeaveBalance]:
    """
    Serialise a read-check-write sequence on one employee's balance.

    Yields the locked LeaveBalance row. The outermost block commits on success and
    rolls back on any exception; nested blocks join the outer transaction.
    """
    lock = _employee_locks.get(employee_id)
    with lock:
        depth = getattr(_tx_state, "depth", 0)
        _tx_state.depth = depth + 1
        try:
            balance = lock_balance_row(db, employee_id, actor_id)
            yield balance
            if depth == 0:
                db.commit()
        except Exception:
            if depth == 0:
                db.rollback()
            raise
        finally:
            _tx_state.depth = depth


def in_balance_transaction() -> bool:
    return getattr(_tx_state, "depth", 0) > 0


def ensure_balance(db: Session, employee_id: int, actor_id: Optional[int] = None) -> LeaveBalance:
    """Return the employee's balance row, creating a zero row if missing."""
    balance = db.query(LeaveBalance).filter(LeaveBalance.employee_id == employee_id).first()
    if balance is None:
        with balance_transaction(db, employee_id, actor_id) as balance:
            pass
        db.refresh(balance)
    return balance


def get_pending_amount(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    exclude_request_id: Optional[int] = None,
) -> Decimal:
    """Sum of pending day weights for the employee's non-cancelled requests of a leave type."""
    query = (
        db.query(LeaveDay.day_type)
        .join(LeaveRequest, LeaveRequest.id == LeaveDay.leave_request_id)
        .filter(
            LeaveDay.employee_id == employee_id,
            LeaveDay.day_status == DayStatus.PENDING,
            LeaveRequest.leave_type == LeaveType(leave_type),
            LeaveRequest.current_status != LeaveStatus.CANCELLED,
        )
    )
    if exclude_request_id is not None:
        query = query.filter(LeaveRequest.id != exclude_request_id)
    return sum((day_weight(row[0]) for row in query.all()), ZERO)


def lop_limit(annual_max: Optional[Decimal] = None) -> Decimal:
    """LOP ceiling: the policy's annual_max when set, never above LOP_BALANCE_CAP."""
    cap = lop_cap()
    if annual_max is not None and _dec(annual_max) > 0:
        return min(_dec(annual_max), cap)
    return cap


def reserve(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    amount: Decimal,
    exclude_request_id: Optional[int] = None,
    annual_max: Optional[Decimal] = None,
) -> Decimal:
    """
    Check that amount more days can be taken; must run inside balance_transaction.

    casual/sick: balance - pending >= amount.
    lop: balance + pending + amount <= lop_limit(annual_max).

    Returns:
        Availability remaining after this reservation.

    Raises:
        InsufficientBalanceError
    """
    leave_type = LeaveType(leave_type)
    if leave_type not in BALANCE_LEAVE_TYPES:
        return ZERO

    row = lock_balance_row(db, employee_id)
    current = row.get_amount(leave_type)
    pending = get_pending_amount(db, employee_id, leave_type, exclude_request_id)
    amount = _dec(amount)

    if leave_type in SPEND_DOWN_LEAVE_TYPES:
        available = current - pending
    else:
        available = lop_limit(annual_max) - current - pending

    if amount > available:
        logger.info(
            "reserve refused: employee_id=%s leave_type=%s amount=%s balance=%s pending=%s",
            employee_id, leave_type.value, amount, current, pending,
        )
        raise InsufficientBalanceError(
            employee_id=employee_id,
            leave_type=leave_type.value,
            requested=amount,
            available=max(available, ZERO),
            balance=current,
            pending=pending,
        )
    return available - amount


def _applied_entry(db: Session, idempotency_key: str) -> Optional[BalanceLedgerEntry]:
    return db.query(BalanceLedgerEntry).filter(BalanceLedgerEntry.idempotency_key == idempotency_key).first()


def _record(
    db: Session,
    row: LeaveBalance,
    leave_type: LeaveType,
    operation: LedgerOperation,
    new_value: Decimal,
    idempotency_key: str,
    actor_id: Optional[int],
    leave_request_id: Optional[int] = None,
    leave_day_id: Optional[int] = None,
    remarks: Optional[str] = None,
) -> BalanceLedgerEntry:
    old_value = row.get_amount(leave_type)
    if new_value != old_value:
        row.set_amount(leave_type, new_value)
        row.last_updated = now_utc()
        row.updated_by = actor_id
        db.flush()

    entry = BalanceLedgerEntry(
        employee_id=row.employee_id,
        leave_type=leave_type,
        operation=operation,
        delta=new_value - old_value,
        balance_after=new_value,
        idempotency_key=idempotency_key,
        leave_request_id=leave_request_id,
        leave_day_id=leave_day_id,
        remarks=remarks,
        created_by=actor_id,
        updated_by=actor_id,
    )
    db.add(entry)
    try:
        db.flush()
    except IntegrityError:
        raise ConcurrentModificationError(
            f"Ledger operation {idempotency_key} was applied concurrently",
            employee_id=row.employee_id,
            idempotency_key=idempotency_key,
        )
    logger.debug(
        "ledger %s: employee_id=%s leave_type=%s %s -> %s key=%s",
        operation.value, row.employee_id, leave_type.value, old_value, new_value, idempotency_key,
    )
    return entry


def is_applied(db: Session, idempotency_key: str) -> bool:
    return _applied_entry(db, idempotency_key) is not None


def _replayed(db: Session, row: LeaveBalance, idempotency_key: str) -> bool:
    if not is_applied(db, idempotency_key):
        return False
    logger.info("ledger replay ignored: employee_id=%s key=%s", row.employee_id, idempotency_key)
    return True


def commit(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    amount: Decimal,
    idempotency_key: str,
    actor_id: Optional[int] = None,
    leave_request_id: Optional[int] = None,
    leave_day_id: Optional[int] = None,
) -> Decimal:
    """
    Apply an approved day to the balance. Returns the balance after.

    Raises:
        BalanceExceededError: casual/sick would go below 0, or lop above its cap
    """
    leave_type = LeaveType(leave_type)
    row = lock_balance_row(db, employee_id, actor_id)
    if leave_type not in BALANCE_LEAVE_TYPES or _replayed(db, row, idempotency_key):
        return row.get_amount(leave_type) if leave_type in BALANCE_LEAVE_TYPES else ZERO

    amount = _dec(amount)
    current = row.get_amount(leave_type)
    if leave_type in SPEND_DOWN_LEAVE_TYPES:
        new_value = current - amount
        if new_value < 0:
            raise BalanceExceededError(
                f"Approving {amount} {leave_type.value} day(s) would take the balance below zero",
                employee_id=employee_id,
                leave_type=leave_type.value,
                balance=current,
                amount=amount,
                request_id=leave_request_id,
            )
    else:
        new_value = current + amount
        if new_value > lop_cap():
            raise BalanceExceededError(
                f"Approving {amount} lop day(s) would exceed the {lop_cap()} day limit",
                employee_id=employee_id,
                leave_type=leave_type.value,
                balance=current,
                amount=amount,
                request_id=leave_request_id,
            )

    _record(db, row, leave_type, LedgerOperation.COMMIT, new_value, idempotency_key, actor_id,
            leave_request_id=leave_request_id, leave_day_id=leave_day_id)
    return new_value


def release(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    amount: Decimal,
    idempotency_key: str,
    committed: bool = False,
    actor_id: Optional[int] = None,
    leave_request_id: Optional[int] = None,
    leave_day_id: Optional[int] = None,
) -> Decimal:
    """
    Release a day's claim on the balance. Returns the balance after.

    A pending day never touched the balance, so releasing it only records the entry.
    committed=True reverses an earlier commit: casual/sick are re-credited, lop debt
    is reduced (never below 0).
    """
    leave_type = LeaveType(leave_type)
    row = lock_balance_row(db, employee_id, actor_id)
    if leave_type not in BALANCE_LEAVE_TYPES or _replayed(db, row, idempotency_key):
        return row.get_amount(leave_type) if leave_type in BALANCE_LEAVE_TYPES else ZERO

    amount = _dec(amount)
    current = row.get_amount(leave_type)
    if not committed:
        new_value = current
    elif leave_type in SPEND_DOWN_LEAVE_TYPES:
        new_value = current + amount
    else:
        new_value = max(current - amount, ZERO)

    _record(db, row, leave_type, LedgerOperation.RELEASE, new_value, idempotency_key, actor_id,
            leave_request_id=leave_request_id, leave_day_id=leave_day_id,
            remarks="reversal of approved day" if committed else None)
    return new_value


def _credit(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    amount: Decimal,
    cap: Optional[Decimal],
    idempotency_key: str,
    operation: LedgerOperation,
    actor_id: Optional[int],
    remarks: Optional[str],
) -> Decimal:
    leave_type = LeaveType(leave_type)
    if leave_type not in SPEND_DOWN_LEAVE_TYPES:
        raise ValueError(f"{leave_type.value} balances cannot be credited")

    row = lock_balance_row(db, employee_id, actor_id)
    if _replayed(db, row, idempotency_key):
        return row.get_amount(leave_type)

    current = row.get_amount(leave_type)
    limit = _dec(cap) if cap is not None and _dec(cap) > 0 else default_cap()
    # A balance already above the cap is left alone, never clawed back
    new_value = max(current, min(current + _dec(amount), limit))
    _record(db, row, leave_type, operation, new_value, idempotency_key, actor_id, remarks=remarks)
    return new_value


def credit_monthly(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    amount: Decimal,
    cap: Optional[Decimal],
    idempotency_key: str,
    actor_id: Optional[int] = None,
) -> Decimal:
    """Add a monthly accrual, clamped to cap (DEFAULT_BALANCE_CAP when cap is 0/None)."""
    return _credit(db, employee_id, leave_type, amount, cap, idempotency_key,
                   LedgerOperation.CREDIT_MONTHLY, actor_id, "monthly accrual")


def credit_anniversary(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    amount: Decimal,
    cap: Optional[Decimal],
    idempotency_key: str,
    actor_id: Optional[int] = None,
    years: Optional[int] = None,
) -> Decimal:
    """Add an anniversary bonus, clamped like credit_monthly."""
    remarks = f"{years}-year anniversary bonus" if years else "anniversary bonus"
    return _credit(db, employee_id, leave_type, amount, cap, idempotency_key,
                   LedgerOperation.CREDIT_ANNIVERSARY, actor_id, remarks)


def apply_year_end(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    carry_forward_limit: Optional[Decimal],
    idempotency_key: str,
    actor_id: Optional[int] = None,
) -> Decimal:
    """
    Close the year for one leave type: casual/sick keep at most carry_forward_limit,
    lop debt resets to 0.
    """
    leave_type = LeaveType(leave_type)
    row = lock_balance_row(db, employee_id, actor_id)
    if leave_type not in BALANCE_LEAVE_TYPES or _replayed(db, row, idempotency_key):
        return row.get_amount(leave_type) if leave_type in BALANCE_LEAVE_TYPES else ZERO

    current = row.get_amount(leave_type)
    if leave_type in SPEND_DOWN_LEAVE_TYPES:
        new_value = min(current, max(_dec(carry_forward_limit), ZERO))
    else:
        new_value = ZERO
    _record(db, row, leave_type, LedgerOperation.YEAR_END, new_value, idempotency_key, actor_id,
            remarks="year-end carry forward")
    return new_value


def get_balance(db: Session, employee_id: int) -> LeaveBalance:
    """Current stored balance row (pending leave is not deducted here)."""
    return ensure_balance(db, employee_id)


def get_balance_summary(db: Session, employee_id: int) -> Dict[str, Dict[str, Decimal]]:
    """
    Per leave type: stored balance, pending days and what is still available.
    For lop, available is the remaining headroom under the cap.
    """
    balance = ensure_balance(db, employee_id)
    summary = {}
    for leave_type in BALANCE_LEAVE_TYPES:
        current = balance.get_amount(leave_type)
        pending = get_pending_amount(db, employee_id, leave_type)
        if leave_type in SPEND_DOWN_LEAVE_TYPES:
            available = current - pending
        else:
            available = lop_cap() - current - pending
        summary[leave_type.value] = {
            "balance": current,
            "pending": pending,
            "available": max(available, ZERO),
        }
    return summary
