"""
Accrual engine - monthly credits, work-anniversary bonuses and year-end carry forward.

Every credit goes through the balance ledger with a key of the form
accrual:{trigger}:{period}:{employee_id}:{leave_type}, so re-running a period is a no-op.
Each employee is processed in its own balance transaction; a run interrupted part way
can simply be started again.
"""
import logging
from calendar import monthrange
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.exceptions import PolicyNotFoundError
from app.models.employee import WORKING_STATUSES, Employee
from app.models.leave import SPEND_DOWN_LEAVE_TYPES, LeaveType
from app.services import balance_ledger as ledger
from app.services.audit_service import log_audit
from app.services.policy_resolver import resolve

logger = logging.getLogger(__name__)

TRIGGER_MONTHLY = "monthly"
TRIGGER_ANNIVERSARY = "anniversary"
TRIGGER_YEAR_END = "year_end"
TRIGGERS = (TRIGGER_MONTHLY, TRIGGER_ANNIVERSARY, TRIGGER_YEAR_END)

ANNIVERSARY_BONUS_YEARS = (3, 5)
ONE_DECIMAL = Decimal("0.1")


def parse_period(trigger: str, period_key: str) -> Tuple[date, date]:
    """
    Validate a period key and return (first_day, last_day) of the period.

    monthly: YYYY-MM, anniversary: YYYY-MM-DD, year_end: YYYY.

    Raises:
        ValueError: unknown trigger or malformed key
    """
    if trigger not in TRIGGERS:
        raise ValueError(f"Invalid trigger: {trigger}. Must be one of {', '.join(TRIGGERS)}")
    parts = (period_key or "").split("-")
    try:
        if trigger == TRIGGER_MONTHLY:
            if len(parts) != 2 or len(parts[0]) != 4 or len(parts[1]) != 2:
                raise ValueError(period_key)
            year, month = int(parts[0]), int(parts[1])
            return date(year, month, 1), date(year, month, monthrange(year, month)[1])
        if trigger == TRIGGER_ANNIVERSARY:
            if len(parts) != 3 or len(parts[0]) != 4 or len(parts[1]) != 2 or len(parts[2]) != 2:
                raise ValueError(period_key)
            day = date(int(parts[0]), int(parts[1]), int(parts[2]))
            return day, day
        if len(parts) != 1 or len(parts[0]) != 4:
            raise ValueError(period_key)
        year = int(parts[0])
        return date(year, 1, 1), date(year, 12, 31)
    except ValueError:
        formats = {
            TRIGGER_MONTHLY: "YYYY-MM",
            TRIGGER_ANNIVERSARY: "YYYY-MM-DD",
            TRIGGER_YEAR_END: "YYYY",
        }
        raise ValueError(f"Invalid period for {trigger}: {period_key}. Use {formats[trigger]}")


def monthly_amount(annual_credit) -> Decimal:
    """One twelfth of the annual credit, rounded to a tenth of a day."""
    return (Decimal(str(annual_credit or 0)) / 12).quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)


def anniversary_years(date_of_joining: Optional[date], on: date) -> Optional[int]:
    """Completed years if `on` is a work anniversary, else None. 29 Feb joiners celebrate on 28 Feb."""
    if date_of_joining is None or on <= date_of_joining:
        return None
    month, day = date_of_joining.month, date_of_joining.day
    if (month, day) == (2, 29) and monthrange(on.year, 2)[1] == 28:
        day = 28
    if (on.month, on.day) != (month, day):
        return None
    return on.year - date_of_joining.year


def is_eligible_for_month_accrual(employee: Employee, period_end: date) -> bool:
    """Working employees who had joined by the last day of the month."""
    if not employee.is_working:
        return False
    return employee.date_of_joining is None or employee.date_of_joining <= period_end


def period_label(trigger: str, period_start: date) -> str:
    """Canonical period key, so equivalent spellings of one period share ledger keys."""
    if trigger == TRIGGER_MONTHLY:
        return period_start.strftime("%Y-%m")
    if trigger == TRIGGER_ANNIVERSARY:
        return period_start.isoformat()
    return f"{period_start.year:04d}"


def _credit_key(trigger: str, period_key: str, employee_id: int, leave_type: LeaveType) -> str:
    return f"accrual:{trigger}:{period_key}:{employee_id}:{leave_type.value}"


def _accrue_employee(
    db: Session,
    employee: Employee,
    trigger: str,
    period_key: str,
    period_start: date,
    period_end: date,
    actor_id: Optional[int],
) -> Dict:
    detail = {"employee_id": employee.id, "emp_code": employee.emp_code, "credits": {}, "skipped": []}
    years = None
    if trigger == TRIGGER_ANNIVERSARY:
        years = anniversary_years(employee.date_of_joining, period_start)
        if years not in ANNIVERSARY_BONUS_YEARS:
            detail["skipped"].append("no bonus anniversary")
            return detail

    leave_types = list(SPEND_DOWN_LEAVE_TYPES)
    if trigger == TRIGGER_YEAR_END:
        leave_types.append(LeaveType.LOP)
    as_of = period_end if trigger == TRIGGER_YEAR_END else period_start

    with ledger.balance_transaction(db, employee.id, actor_id):
        for leave_type in leave_types:
            key = _credit_key(trigger, period_key, employee.id, leave_type)
            if ledger.is_applied(db, key):
                detail["skipped"].append(f"{leave_type.value}: already applied")
                continue

            # LOP debt resets whatever the policy says
            if leave_type == LeaveType.LOP:
                detail["credits"][leave_type.value] = ledger.apply_year_end(
                    db, employee.id, leave_type, None, key, actor_id=actor_id,
                )
                continue

            try:
                policy = resolve(db, employee.role, leave_type, as_of)
            except PolicyNotFoundError:
                logger.warning(
                    "accrual skipped: employee_id=%s role=%s leave_type=%s trigger=%s period=%s reason=no policy",
                    employee.id, employee.role, leave_type.value, trigger, period_key,
                )
                detail["skipped"].append(f"{leave_type.value}: no policy")
                continue

            if trigger == TRIGGER_MONTHLY:
                amount = monthly_amount(policy.annual_credit)
                if amount <= 0:
                    continue
                detail["credits"][leave_type.value] = ledger.credit_monthly(
                    db, employee.id, leave_type, amount, policy.annual_max, key, actor_id=actor_id,
                )
            elif trigger == TRIGGER_ANNIVERSARY:
                bonus = policy.anniversary_3_year_bonus if years == 3 else policy.anniversary_5_year_bonus
                if not bonus or Decimal(str(bonus)) <= 0:
                    continue
                detail["credits"][leave_type.value] = ledger.credit_anniversary(
                    db, employee.id, leave_type, Decimal(str(bonus)), policy.annual_max, key,
                    actor_id=actor_id, years=years,
                )
            else:
                detail["credits"][leave_type.value] = ledger.apply_year_end(
                    db, employee.id, leave_type, policy.carry_forward_limit, key, actor_id=actor_id,
                )
    return detail


def run_accrual(
    db: Session,
    period_key: str,
    trigger: str = TRIGGER_MONTHLY,
    actor_id: Optional[int] = None,
) -> Dict:
    """
    Run one accrual period for every working employee.

    Raises:
        ValueError: bad trigger or period key
    """
    period_start, period_end = parse_period(trigger, period_key)
    period_key = period_label(trigger, period_start)

    employees = (
        db.query(Employee)
        .filter(Employee.status.in_([s.value for s in WORKING_STATUSES]))
        .order_by(Employee.id)
        .all()
    )
    total_processed = 0
    credited_count = 0
    skipped_not_eligible = 0
    skipped_no_policy = 0
    skipped_already_applied = 0
    details: List[Dict] = []

    for employee in employees:
        total_processed += 1
        if trigger == TRIGGER_MONTHLY and not is_eligible_for_month_accrual(employee, period_end):
            skipped_not_eligible += 1
            continue
        detail = _accrue_employee(db, employee, trigger, period_key, period_start, period_end, actor_id)
        if detail["credits"]:
            credited_count += 1
        if any(s.endswith("no policy") for s in detail["skipped"]):
            skipped_no_policy += 1
        if any(s.endswith("already applied") for s in detail["skipped"]):
            skipped_already_applied += 1
        details.append(detail)

    summary = {
        "trigger": trigger,
        "period": period_key,
        "total_employees_processed": total_processed,
        "credited_count": credited_count,
        "skipped_not_eligible": skipped_not_eligible,
        "skipped_no_policy": skipped_no_policy,
        "skipped_already_applied": skipped_already_applied,
        "details": details,
    }
    log_audit(
        db=db,
        actor_id=actor_id,
        action="ACCRUAL_RUN",
        entity_type="accrual",
        entity_id=None,
        meta={k: v for k, v in summary.items() if k != "details"},
    )
    logger.info(
        "accrual run: trigger=%s period=%s processed=%s credited=%s no_policy=%s already_applied=%s",
        trigger, period_key, total_processed, credited_count, skipped_no_policy, skipped_already_applied,
    )
    return summary
