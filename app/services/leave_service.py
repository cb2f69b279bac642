"""
Leave service - orchestrates applying, editing, deleting, cancelling and listing leave.

apply: DayExpander -> date window + notice + policy -> under the employee's
balance lock: ConflictChecker + monthly cap + BalanceLedger.reserve -> persist request and days.
Decisions live in app.services.approval_state_machine.
"""
import logging
from calendar import monthrange
from collections import defaultdict
from datetime import date, time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.exceptions import (
    EmployeeNotFoundError,
    InsufficientAuthorityError,
    InvalidRangeError,
    MonthlyLimitExceededError,
    RequestLockedError,
)
from app.models.employee import Employee, Role
from app.models.leave import (
    ApprovalAction,
    DayStatus,
    DayType,
    LeaveApproval,
    LeaveDay,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
)
from app.services import balance_ledger as ledger
from app.services.approval_state_machine import (
    ensure_editable,
    get_subordinate_ids,
    load_request,
    recompute_status,
)
from app.services.audit_service import log_audit
from app.services.calendar_service import CalendarService, DatabaseCalendar
from app.services.conflict_checker import check_conflicts
from app.services.day_expander import DayDraft, day_weight, expand_days, total_days
from app.services.notice_validator import validate_date_window, validate_notice
from app.services.policy_resolver import resolve
from app.utils.datetime_utils import business_today, now_utc
from app.utils.roles import is_approver, role_name

logger = logging.getLogger(__name__)

# Fields an applicant may change through edit_request
EDITABLE_FIELDS = (
    "leave_type",
    "start_date",
    "start_day_type",
    "end_date",
    "end_day_type",
    "reason",
    "urgent",
    "doctor_note",
    "permission_start_time",
    "permission_end_time",
)


def get_employee(db: Session, employee_id: int) -> Employee:
    employee = db.query(Employee).filter(Employee.id == employee_id).first()
    if not employee:
        raise EmployeeNotFoundError(employee_id)
    return employee


def _validate_shape(
    employee_id: int,
    leave_type: LeaveType,
    start_date: date,
    end_date: date,
    doctor_note: Optional[str],
    permission_start_time: Optional[time],
    permission_end_time: Optional[time],
) -> None:
    if doctor_note and leave_type != LeaveType.SICK:
        raise InvalidRangeError(
            "A doctor note can only be attached to sick leave",
            employee_id=employee_id,
        )
    if leave_type == LeaveType.PERMISSION:
        if start_date != end_date:
            raise InvalidRangeError(
                "Permission must be for a single date",
                employee_id=employee_id,
                start_date=start_date,
                end_date=end_date,
            )
        if permission_start_time is None or permission_end_time is None:
            raise InvalidRangeError(
                "Permission requires start and end times",
                employee_id=employee_id,
                start_date=start_date,
            )
        if permission_start_time >= permission_end_time:
            raise InvalidRangeError(
                "Permission end time must be after start time",
                employee_id=employee_id,
                start_date=start_date,
            )
    elif permission_start_time is not None or permission_end_time is not None:
        raise InvalidRangeError(
            "Start and end times are only accepted for permission",
            employee_id=employee_id,
        )


def validate_monthly_cap(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    drafts: Sequence[DayDraft],
    cap: Optional[Decimal],
    exclude_request_id: Optional[int] = None,
) -> None:
    """
    Pending plus approved days of this type in each calendar month touched by the
    request must stay within the policy's max_leave_per_month.

    Raises:
        MonthlyLimitExceededError
    """
    if cap is None:
        return
    cap = Decimal(str(cap))
    requested_by_month: Dict[tuple, Decimal] = defaultdict(Decimal)
    for draft in drafts:
        requested_by_month[(draft.leave_date.year, draft.leave_date.month)] += draft.weight

    for (year, month), requested in sorted(requested_by_month.items()):
        first_day = date(year, month, 1)
        last_day = date(year, month, monthrange(year, month)[1])
        query = (
            db.query(LeaveDay.day_type)
            .join(LeaveRequest, LeaveRequest.id == LeaveDay.leave_request_id)
            .filter(
                LeaveDay.employee_id == employee_id,
                LeaveRequest.leave_type == leave_type,
                LeaveRequest.current_status != LeaveStatus.CANCELLED,
                LeaveDay.day_status.in_((DayStatus.PENDING, DayStatus.APPROVED)),
                LeaveDay.leave_date >= first_day,
                LeaveDay.leave_date <= last_day,
            )
        )
        if exclude_request_id is not None:
            query = query.filter(LeaveRequest.id != exclude_request_id)
        used = sum((day_weight(row[0]) for row in query.all()), Decimal("0"))
        if used + requested > cap:
            raise MonthlyLimitExceededError(
                f"{leave_type.value} leave is limited to {cap} day(s) per month; "
                f"{used} already taken or pending in {year:04d}-{month:02d}",
                employee_id=employee_id,
                month=f"{year:04d}-{month:02d}",
                requested=requested,
                used=used,
                cap=cap,
            )


def _prepare(
    db: Session,
    employee: Employee,
    fields: Dict[str, Any],
    today: date,
    calendar: CalendarService,
) -> Dict[str, Any]:
    """
    Run every check that does not need the balance lock. Returns the expanded drafts,
    the resolved policy (None for permission) and any urgent notice bypass.
    """
    leave_type = LeaveType(fields["leave_type"])
    start_date = fields["start_date"]
    end_date = fields["end_date"]
    start_day_type = DayType(fields.get("start_day_type") or DayType.FULL)
    end_day_type = DayType(fields.get("end_day_type") or DayType.FULL)

    if not employee.is_working:
        raise InsufficientAuthorityError(
            f"Employee {employee.id} is {employee.status} and cannot apply for leave",
            employee_id=employee.id,
        )
    if role_name(employee.role) == Role.SUPER_ADMIN.value:
        raise InsufficientAuthorityError(
            "super_admin accounts cannot apply for leave",
            employee_id=employee.id,
        )

    _validate_shape(
        employee.id,
        leave_type,
        start_date,
        end_date,
        fields.get("doctor_note"),
        fields.get("permission_start_time"),
        fields.get("permission_end_time"),
    )
    if leave_type == LeaveType.PERMISSION:
        start_day_type = end_day_type = DayType.FULL

    validate_date_window(leave_type, start_date, today, employee_id=employee.id)
    drafts = expand_days(start_date, start_day_type, end_date, end_day_type, calendar, role=employee.role)

    policy = None
    bypass = None
    if leave_type != LeaveType.PERMISSION:
        policy = resolve(db, employee.role, leave_type, start_date)
        bypass = validate_notice(
            db,
            leave_type,
            drafts,
            start_date,
            today,
            urgent=bool(fields.get("urgent")),
            employee_id=employee.id,
        )

    return {
        "leave_type": leave_type,
        "start_day_type": start_day_type,
        "end_day_type": end_day_type,
        "drafts": drafts,
        "policy": policy,
        "bypass": bypass,
    }


def _amount(leave_type: LeaveType, drafts: Sequence[DayDraft]) -> Decimal:
    # Permission is intraday and not counted as leave days
    if leave_type == LeaveType.PERMISSION:
        return Decimal("0")
    return total_days(drafts)


def _reserve_and_check(
    db: Session,
    employee: Employee,
    prepared: Dict[str, Any],
    exclude_request_id: Optional[int] = None,
) -> Decimal:
    drafts = prepared["drafts"]
    leave_type = prepared["leave_type"]
    check_conflicts(db, employee.id, drafts, exclude_request_id=exclude_request_id)
    amount = _amount(leave_type, drafts)
    policy = prepared["policy"]
    if policy is not None:
        validate_monthly_cap(
            db,
            employee.id,
            leave_type,
            drafts,
            policy.max_leave_per_month,
            exclude_request_id=exclude_request_id,
        )
    ledger.reserve(
        db,
        employee.id,
        leave_type,
        amount,
        exclude_request_id=exclude_request_id,
        annual_max=policy.annual_max if policy is not None else None,
    )
    return amount


def _build_days(leave_request: LeaveRequest, drafts: Sequence[DayDraft], actor_id: int) -> None:
    for draft in drafts:
        leave_request.days.append(LeaveDay(
            employee_id=leave_request.employee_id,
            leave_date=draft.leave_date,
            day_type=draft.day_type,
            day_status=DayStatus.PENDING,
            created_by=actor_id,
            updated_by=actor_id,
        ))


def apply_leave(
    db: Session,
    employee_id: int,
    leave_type: LeaveType,
    start_date: date,
    start_day_type: DayType,
    end_date: date,
    end_day_type: DayType,
    reason: Optional[str] = None,
    urgent: bool = False,
    doctor_note: Optional[str] = None,
    permission_start_time: Optional[time] = None,
    permission_end_time: Optional[time] = None,
    today: Optional[date] = None,
    calendar: Optional[CalendarService] = None,
) -> LeaveRequest:
    """
    Create a pending leave request with one pending LeaveDay per working date.

    All-or-nothing: any failure leaves no request, day or ledger row behind.

    Raises:
        InvalidRangeError, DateConflictError, InsufficientNoticeError,
        MonthlyLimitExceededError, InsufficientBalanceError, PolicyNotFoundError
    """
    employee = get_employee(db, employee_id)
    today = today or business_today()
    calendar = calendar or DatabaseCalendar(db)
    fields = {
        "leave_type": leave_type,
        "start_date": start_date,
        "end_date": end_date,
        "start_day_type": start_day_type,
        "end_day_type": end_day_type,
        "urgent": urgent,
        "doctor_note": doctor_note,
        "permission_start_time": permission_start_time,
        "permission_end_time": permission_end_time,
    }
    prepared = _prepare(db, employee, fields, today, calendar)
    leave_type = prepared["leave_type"]

    with ledger.balance_transaction(db, employee.id, employee.id):
        amount = _reserve_and_check(db, employee, prepared)
        leave_request = LeaveRequest(
            employee_id=employee.id,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            start_day_type=prepared["start_day_type"],
            end_day_type=prepared["end_day_type"],
            reason=reason,
            urgent=bool(urgent),
            doctor_note=doctor_note,
            permission_start_time=permission_start_time,
            permission_end_time=permission_end_time,
            no_of_days=amount,
            current_status=LeaveStatus.PENDING,
            created_by=employee.id,
            updated_by=employee.id,
        )
        _build_days(leave_request, prepared["drafts"], employee.id)
        db.add(leave_request)
        db.flush()

        meta = {
            "leave_type": leave_type,
            "start_date": start_date,
            "end_date": end_date,
            "no_of_days": amount,
            "day_count": len(prepared["drafts"]),
            "urgent": bool(urgent),
        }
        if prepared["bypass"]:
            meta["notice_bypass"] = prepared["bypass"]
        log_audit(
            db=db,
            actor_id=employee.id,
            action="LEAVE_APPLY",
            entity_type="leave_requests",
            entity_id=leave_request.id,
            meta=meta,
            commit=False,
        )

    logger.info(
        "leave applied: leave_request_id=%s employee_id=%s type=%s %s..%s days=%s urgent=%s",
        leave_request.id, employee.id, leave_type.value, start_date, end_date, amount, bool(urgent),
    )
    db.refresh(leave_request)
    return leave_request


def edit_request(
    db: Session,
    request_id: int,
    new_fields: Dict[str, Any],
    acting_user: Employee,
    today: Optional[date] = None,
    calendar: Optional[CalendarService] = None,
) -> LeaveRequest:
    """
    Change a fully pending, untouched request. The days are re-expanded and every
    apply-time check runs again, ignoring the request's own current days.

    Raises:
        RequestLockedError, InsufficientAuthorityError plus every apply_leave error
    """
    leave_request = load_request(db, request_id)
    ensure_editable(leave_request, acting_user)

    unknown = set(new_fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise InvalidRangeError(
            f"Fields {sorted(unknown)} cannot be edited",
            request_id=request_id,
        )

    merged = {field: getattr(leave_request, field) for field in EDITABLE_FIELDS}
    merged.update(new_fields)
    # Switching type drops the fields the old type carried unless resupplied
    if LeaveType(merged["leave_type"]) != LeaveType.PERMISSION:
        for field in ("permission_start_time", "permission_end_time"):
            if field not in new_fields:
                merged[field] = None
    if LeaveType(merged["leave_type"]) != LeaveType.SICK and "doctor_note" not in new_fields:
        merged["doctor_note"] = None

    employee = get_employee(db, leave_request.employee_id)
    today = today or business_today()
    calendar = calendar or DatabaseCalendar(db)
    prepared = _prepare(db, employee, merged, today, calendar)

    with ledger.balance_transaction(db, employee.id, acting_user.id):
        db.refresh(leave_request)
        # An approver may have acted between the first check and the lock
        ensure_editable(leave_request, acting_user)
        amount = _reserve_and_check(db, employee, prepared, exclude_request_id=leave_request.id)

        before = {
            "leave_type": leave_request.leave_type,
            "start_date": leave_request.start_date,
            "end_date": leave_request.end_date,
            "no_of_days": leave_request.no_of_days,
        }
        leave_request.days.clear()
        db.flush()

        leave_request.leave_type = prepared["leave_type"]
        leave_request.start_date = merged["start_date"]
        leave_request.end_date = merged["end_date"]
        leave_request.start_day_type = prepared["start_day_type"]
        leave_request.end_day_type = prepared["end_day_type"]
        leave_request.reason = merged.get("reason")
        leave_request.urgent = bool(merged.get("urgent"))
        leave_request.doctor_note = merged.get("doctor_note")
        leave_request.permission_start_time = merged.get("permission_start_time")
        leave_request.permission_end_time = merged.get("permission_end_time")
        leave_request.no_of_days = amount
        leave_request.updated_by = acting_user.id
        _build_days(leave_request, prepared["drafts"], acting_user.id)
        db.flush()

        meta = {
            "before": before,
            "after": {
                "leave_type": leave_request.leave_type,
                "start_date": leave_request.start_date,
                "end_date": leave_request.end_date,
                "no_of_days": amount,
            },
        }
        if prepared["bypass"]:
            meta["notice_bypass"] = prepared["bypass"]
        log_audit(
            db=db,
            actor_id=acting_user.id,
            action="LEAVE_EDIT",
            entity_type="leave_requests",
            entity_id=leave_request.id,
            meta=meta,
            commit=False,
        )

    logger.info("leave edited: leave_request_id=%s employee_id=%s", request_id, employee.id)
    db.refresh(leave_request)
    return leave_request


def delete_request(db: Session, request_id: int, acting_user: Employee) -> None:
    """
    Remove a fully pending, untouched request and its days.

    Raises:
        RequestLockedError, InsufficientAuthorityError, LeaveRequestNotFoundError
    """
    leave_request = load_request(db, request_id)
    ensure_editable(leave_request, acting_user)
    employee_id = leave_request.employee_id

    with ledger.balance_transaction(db, employee_id, acting_user.id):
        db.refresh(leave_request)
        ensure_editable(leave_request, acting_user)
        meta = {
            "leave_type": leave_request.leave_type,
            "start_date": leave_request.start_date,
            "end_date": leave_request.end_date,
            "no_of_days": leave_request.no_of_days,
        }
        db.delete(leave_request)
        db.flush()
        log_audit(
            db=db,
            actor_id=acting_user.id,
            action="LEAVE_DELETE",
            entity_type="leave_requests",
            entity_id=request_id,
            meta=meta,
            commit=False,
        )

    logger.info("leave deleted: leave_request_id=%s employee_id=%s", request_id, employee_id)


def cancel_request(
    db: Session,
    request_id: int,
    acting_user: Employee,
    remark: Optional[str] = None,
) -> LeaveRequest:
    """
    Withdraw a decided request that has approved days. The applicant, HR or super_admin
    may cancel. Approved days are released back to the balance; the request becomes
    cancelled and no longer blocks its dates.

    Raises:
        InsufficientAuthorityError, RequestLockedError
    """
    leave_request = load_request(db, request_id)
    actor_role = role_name(acting_user.role)
    if leave_request.employee_id != acting_user.id and actor_role not in (Role.HR.value, Role.SUPER_ADMIN.value):
        raise InsufficientAuthorityError(
            "Only the applicant, HR or super_admin can cancel leave",
            request_id=request_id,
            acting_user_id=acting_user.id,
        )
    employee_id = leave_request.employee_id

    with ledger.balance_transaction(db, employee_id, acting_user.id):
        db.refresh(leave_request)
        days = list(leave_request.days)
        if leave_request.cancelled_at is not None:
            raise RequestLockedError(f"Leave request {request_id} is already cancelled", request_id=request_id)
        if any(d.day_status == DayStatus.PENDING for d in days):
            raise RequestLockedError(
                f"Leave request {request_id} still has pending days; edit or delete it instead",
                request_id=request_id,
            )
        approved = [d for d in days if d.day_status == DayStatus.APPROVED]
        if not approved:
            raise RequestLockedError(
                f"Leave request {request_id} has no approved days to cancel",
                request_id=request_id,
            )

        before_status = LeaveStatus(leave_request.current_status).value
        for day in approved:
            ledger.release(
                db,
                employee_id,
                leave_request.leave_type,
                day_weight(day.day_type),
                idempotency_key=f"leave_day:{day.id}:cancel",
                committed=True,
                actor_id=acting_user.id,
                leave_request_id=leave_request.id,
                leave_day_id=day.id,
            )
        leave_request.cancelled_at = now_utc()
        leave_request.updated_by = acting_user.id
        new_status = recompute_status(db, leave_request)
        db.add(LeaveApproval(
            leave_request_id=leave_request.id,
            action_by=acting_user.id,
            action_by_role=actor_role,
            action=ApprovalAction.CANCEL,
            day_ids=[d.id for d in approved],
            remarks=remark,
        ))
        log_audit(
            db=db,
            actor_id=acting_user.id,
            action="LEAVE_CANCEL",
            entity_type="leave_requests",
            entity_id=leave_request.id,
            meta={
                "employee_id": employee_id,
                "released_day_ids": [d.id for d in approved],
                "before_status": before_status,
                "after_status": new_status,
                "remark": remark,
            },
            commit=False,
        )

    logger.info(
        "leave status transition: leave_request_id=%s before=%s after=cancelled action=cancel by=%s",
        request_id, before_status, acting_user.id,
    )
    db.refresh(leave_request)
    return leave_request


def convert_lop_to_casual(
    db: Session,
    request_id: int,
    acting_user: Employee,
    proof_ref: str,
    remark: Optional[str] = None,
) -> LeaveRequest:
    """
    Re-book an lop request as casual leave once proof has been provided (super_admin only).

    Approved days move between balances: casual is debited and the lop debt refunded.
    Pending days become pending casual days. Casual must cover both. Notice and the
    monthly cap are not re-checked.

    Raises:
        InsufficientAuthorityError, InvalidRangeError, RequestLockedError,
        InsufficientBalanceError, LeaveRequestNotFoundError
    """
    if role_name(acting_user.role) != Role.SUPER_ADMIN.value:
        raise InsufficientAuthorityError(
            "Only super_admin can convert lop to casual leave",
            request_id=request_id,
            acting_user_id=acting_user.id,
        )
    if not proof_ref or not proof_ref.strip():
        raise InvalidRangeError(
            "Converting lop to casual leave requires a proof document reference",
            request_id=request_id,
        )

    leave_request = load_request(db, request_id)
    employee_id = leave_request.employee_id

    with ledger.balance_transaction(db, employee_id, acting_user.id):
        db.refresh(leave_request)
        if LeaveType(leave_request.leave_type) != LeaveType.LOP:
            raise InvalidRangeError(
                f"Only lop requests can be converted; leave request {request_id} is "
                f"{LeaveType(leave_request.leave_type).value}",
                request_id=request_id,
            )
        if leave_request.cancelled_at is not None:
            raise RequestLockedError(f"Leave request {request_id} is cancelled", request_id=request_id)

        days = list(leave_request.days)
        approved = [d for d in days if d.day_status == DayStatus.APPROVED]
        pending = [d for d in days if d.day_status == DayStatus.PENDING]
        if not approved and not pending:
            raise RequestLockedError(
                f"Leave request {request_id} has no approved or pending days to convert",
                request_id=request_id,
            )

        amount = sum((day_weight(d.day_type) for d in approved + pending), Decimal("0"))
        ledger.reserve(db, employee_id, LeaveType.CASUAL, amount)

        for day in approved:
            ledger.release(
                db,
                employee_id,
                LeaveType.LOP,
                day_weight(day.day_type),
                idempotency_key=f"leave_day:{day.id}:convert:lop",
                committed=True,
                actor_id=acting_user.id,
                leave_request_id=leave_request.id,
                leave_day_id=day.id,
            )
            ledger.commit(
                db,
                employee_id,
                LeaveType.CASUAL,
                day_weight(day.day_type),
                idempotency_key=f"leave_day:{day.id}:convert:casual",
                actor_id=acting_user.id,
                leave_request_id=leave_request.id,
                leave_day_id=day.id,
            )

        leave_request.leave_type = LeaveType.CASUAL
        leave_request.updated_by = acting_user.id
        db.flush()
        log_audit(
            db=db,
            actor_id=acting_user.id,
            action="LEAVE_CONVERT_LOP_TO_CASUAL",
            entity_type="leave_requests",
            entity_id=leave_request.id,
            meta={
                "employee_id": employee_id,
                "proof_ref": proof_ref,
                "converted_days": amount,
                "approved_day_ids": [d.id for d in approved],
                "pending_day_ids": [d.id for d in pending],
                "remark": remark,
            },
            commit=False,
        )

    logger.info(
        "leave converted lop -> casual: leave_request_id=%s employee_id=%s days=%s by=%s",
        request_id, employee_id, amount, acting_user.id,
    )
    db.refresh(leave_request)
    return leave_request


def get_request_for_user(db: Session, request_id: int, acting_user: Employee) -> LeaveRequest:
    """Applicant, HR, super_admin or a manager above the applicant may view a request."""
    leave_request = load_request(db, request_id)
    if leave_request.employee_id == acting_user.id:
        return leave_request
    actor_role = role_name(acting_user.role)
    if actor_role in (Role.HR.value, Role.SUPER_ADMIN.value):
        return leave_request
    if actor_role == Role.MANAGER.value and leave_request.employee_id in get_subordinate_ids(db, acting_user.id):
        return leave_request
    raise InsufficientAuthorityError(
        "You are not allowed to view this leave request",
        request_id=request_id,
        acting_user_id=acting_user.id,
    )


def list_my_requests(
    db: Session,
    employee_id: int,
    status: Optional[LeaveStatus] = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple:
    query = db.query(LeaveRequest).filter(LeaveRequest.employee_id == employee_id)
    if status:
        query = query.filter(LeaveRequest.current_status == status)
    total = query.count()
    items = query.order_by(LeaveRequest.start_date.desc(), LeaveRequest.id.desc()).offset(offset).limit(limit).all()
    return items, total


def list_pending_for_approver(db: Session, approver: Employee) -> List[LeaveRequest]:
    """
    Requests with pending days the approver could decide: a manager sees their
    reporting subtree, HR and super_admin see everyone. Own requests are excluded.
    """
    if not is_approver(approver.role):
        return []
    query = db.query(LeaveRequest).filter(
        LeaveRequest.current_status.in_((LeaveStatus.PENDING, LeaveStatus.PARTIALLY_APPROVED)),
        LeaveRequest.employee_id != approver.id,
    )
    if role_name(approver.role) == Role.MANAGER.value:
        subordinate_ids = get_subordinate_ids(db, approver.id)
        if not subordinate_ids:
            return []
        query = query.filter(LeaveRequest.employee_id.in_(subordinate_ids))
    requests = query.order_by(LeaveRequest.start_date, LeaveRequest.id).all()
    return [
        r for r in requests
        if any(d.day_status == DayStatus.PENDING for d in r.days)
    ]
