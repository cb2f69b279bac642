"""
Approval state machine for leave days and the aggregate request status.

Day states: pending -> approved | rejected. Both targets are terminal.
The request status is never set by hand; derive_request_status() recomputes it
from the day statuses after every transition.
"""
import logging
from collections import deque
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.exceptions import (
    ConcurrentModificationError,
    InsufficientAuthorityError,
    InvalidDaySelectionError,
    LeaveRequestNotFoundError,
    RequestLockedError,
)
from app.models.employee import Employee, Role
from app.models.leave import (
    ApprovalAction,
    DayStatus,
    LeaveApproval,
    LeaveDay,
    LeaveRequest,
    LeaveStatus,
)
from app.services import balance_ledger as ledger
from app.services.audit_service import log_audit
from app.services.day_expander import day_weight
from app.utils.roles import can_override, is_approver, role_name

logger = logging.getLogger(__name__)


def derive_request_status(day_statuses: Iterable, cancelled: bool = False) -> LeaveStatus:
    """
    Aggregate status over a request's day statuses:

    - all approved -> approved
    - all rejected -> rejected
    - pending left and at least one approved -> partially_approved
    - pending left and nothing approved -> pending
    - approved and rejected, nothing pending -> partially_approved

    A cancelled request stays cancelled whatever its days say.
    """
    if cancelled:
        return LeaveStatus.CANCELLED

    statuses = [DayStatus(s) for s in day_statuses]
    if not statuses:
        return LeaveStatus.PENDING

    pending = statuses.count(DayStatus.PENDING)
    approved = statuses.count(DayStatus.APPROVED)
    rejected = statuses.count(DayStatus.REJECTED)

    if approved == len(statuses):
        return LeaveStatus.APPROVED
    if rejected == len(statuses):
        return LeaveStatus.REJECTED
    if pending:
        return LeaveStatus.PARTIALLY_APPROVED if approved else LeaveStatus.PENDING
    return LeaveStatus.PARTIALLY_APPROVED


def get_subordinate_ids(db: Session, manager_id: int) -> List[int]:
    """
    All direct and indirect reports of a manager (breadth-first over reporting_manager_id).
    """
    subordinate_ids: List[int] = []
    seen = {manager_id}
    queue = deque([manager_id])

    while queue:
        current_manager_id = queue.popleft()
        direct_reports = db.query(Employee.id).filter(
            Employee.reporting_manager_id == current_manager_id
        ).all()
        for (employee_id,) in direct_reports:
            if employee_id in seen:
                continue
            seen.add(employee_id)
            subordinate_ids.append(employee_id)
            queue.append(employee_id)

    return subordinate_ids


def load_request(db: Session, request_id: int) -> LeaveRequest:
    leave_request = db.query(LeaveRequest).filter(LeaveRequest.id == request_id).first()
    if not leave_request:
        raise LeaveRequestNotFoundError(request_id)
    return leave_request


def validate_authority(db: Session, leave_request: LeaveRequest, acting_user: Employee) -> None:
    """
    Who may decide a request:
    - an approver role (manager, hr, super_admin), never the applicant;
    - ranking at least as high as last_updated_by_role (super_admin > hr > manager);
    - a manager only for employees in their reporting subtree.

    Raises:
        InsufficientAuthorityError
    """
    context = {
        "request_id": leave_request.id,
        "employee_id": leave_request.employee_id,
        "acting_user_id": acting_user.id,
        "acting_role": role_name(acting_user.role),
        "last_updated_by_role": leave_request.last_updated_by_role,
    }
    if leave_request.employee_id == acting_user.id:
        raise InsufficientAuthorityError("You cannot decide your own leave request", **context)
    if not is_approver(acting_user.role):
        raise InsufficientAuthorityError("Your role cannot approve or reject leave", **context)
    if not can_override(acting_user.role, leave_request.last_updated_by_role):
        raise InsufficientAuthorityError(
            f"A {role_name(acting_user.role)} cannot override a decision made by "
            f"{leave_request.last_updated_by_role}",
            **context,
        )
    if role_name(acting_user.role) == Role.MANAGER.value:
        if leave_request.employee_id not in get_subordinate_ids(db, acting_user.id):
            raise InsufficientAuthorityError(
                "Managers can only decide leave for their reporting hierarchy", **context
            )


def ensure_editable(leave_request: LeaveRequest, acting_user: Employee) -> None:
    """
    The applicant may edit or delete a request only while it is fully pending and no
    approver has touched it.

    Raises:
        InsufficientAuthorityError: acting user is not the applicant
        RequestLockedError: request already decided, partly decided or cancelled
    """
    if leave_request.employee_id != acting_user.id:
        raise InsufficientAuthorityError(
            "Only the applicant can modify this leave request",
            request_id=leave_request.id,
            acting_user_id=acting_user.id,
        )
    if leave_request.current_status != LeaveStatus.PENDING or leave_request.last_updated_by_role:
        raise RequestLockedError(
            f"Leave request {leave_request.id} can no longer be modified "
            f"(status={LeaveStatus(leave_request.current_status).value}, "
            f"last_updated_by_role={leave_request.last_updated_by_role})",
            request_id=leave_request.id,
            employee_id=leave_request.employee_id,
        )


def transition_day(db: Session, day: LeaveDay, target: DayStatus, actor_id: int) -> None:
    """
    Move one day from pending to target with a conditional UPDATE.

    Raises:
        ConcurrentModificationError: the day was no longer pending
    """
    result = db.execute(
        update(LeaveDay)
        .where(LeaveDay.id == day.id, LeaveDay.day_status == DayStatus.PENDING)
        .values(day_status=target, updated_by=actor_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrentModificationError(
            f"Leave day {day.id} on {day.leave_date.isoformat()} was already decided",
            request_id=day.leave_request_id,
            day_id=day.id,
            date=day.leave_date,
        )
    db.refresh(day)


def _fresh_days(db: Session, leave_request: LeaveRequest) -> List[LeaveDay]:
    return (
        db.query(LeaveDay)
        .filter(LeaveDay.leave_request_id == leave_request.id)
        .order_by(LeaveDay.leave_date)
        .populate_existing()
        .all()
    )


def recompute_status(db: Session, leave_request: LeaveRequest) -> LeaveStatus:
    days = _fresh_days(db, leave_request)
    new_status = derive_request_status(
        [d.day_status for d in days],
        cancelled=leave_request.cancelled_at is not None,
    )
    leave_request.current_status = new_status
    return new_status


def decide(
    db: Session,
    request_id: int,
    day_ids: Optional[Sequence[int]],
    outcome: ApprovalAction,
    acting_user: Employee,
    comment: Optional[str] = None,
) -> LeaveRequest:
    """
    Approve or reject the pending days of a request.

    approve: the selected days (all pending days when day_ids is empty) are approved and
    committed to the balance; every other pending day of the request is rejected.
    reject: every pending day is rejected (day_ids is ignored).

    Raises:
        LeaveRequestNotFoundError, InsufficientAuthorityError, InvalidDaySelectionError,
        ConcurrentModificationError, BalanceExceededError
    """
    outcome = ApprovalAction(outcome)
    if outcome == ApprovalAction.CANCEL:
        raise InvalidDaySelectionError("Use cancel_request to cancel leave", request_id=request_id)

    leave_request = load_request(db, request_id)
    validate_authority(db, leave_request, acting_user)
    employee_id = leave_request.employee_id
    actor_role = role_name(acting_user.role)

    with ledger.balance_transaction(db, employee_id, acting_user.id):
        db.refresh(leave_request)
        # Authority is re-checked under the lock: another approver may have acted meanwhile
        validate_authority(db, leave_request, acting_user)
        if leave_request.cancelled_at is not None:
            raise RequestLockedError(
                f"Leave request {request_id} is cancelled",
                request_id=request_id,
                employee_id=employee_id,
            )

        days = _fresh_days(db, leave_request)
        by_id = {d.id: d for d in days}
        pending = [d for d in days if d.day_status == DayStatus.PENDING]
        if not pending:
            raise ConcurrentModificationError(
                f"Leave request {request_id} has no pending days",
                request_id=request_id,
                employee_id=employee_id,
            )

        selected_ids = list(dict.fromkeys(day_ids or []))
        unknown = [i for i in selected_ids if i not in by_id]
        if unknown:
            raise InvalidDaySelectionError(
                f"Days {unknown} do not belong to leave request {request_id}",
                request_id=request_id,
                day_ids=unknown,
            )
        decided = [i for i in selected_ids if by_id[i].day_status != DayStatus.PENDING]
        if decided:
            raise ConcurrentModificationError(
                f"Days {decided} of leave request {request_id} were already decided",
                request_id=request_id,
                day_ids=decided,
            )

        if outcome == ApprovalAction.APPROVE:
            chosen = set(selected_ids) if selected_ids else {d.id for d in pending}
            to_approve = [d for d in pending if d.id in chosen]
            to_reject = [d for d in pending if d.id not in chosen]
        else:
            to_approve = []
            to_reject = pending

        before_status = LeaveStatus(leave_request.current_status).value
        for day in to_approve:
            transition_day(db, day, DayStatus.APPROVED, acting_user.id)
            ledger.commit(
                db,
                employee_id,
                leave_request.leave_type,
                day_weight(day.day_type),
                idempotency_key=f"leave_day:{day.id}:approve",
                actor_id=acting_user.id,
                leave_request_id=leave_request.id,
                leave_day_id=day.id,
            )
        for day in to_reject:
            transition_day(db, day, DayStatus.REJECTED, acting_user.id)
            ledger.release(
                db,
                employee_id,
                leave_request.leave_type,
                day_weight(day.day_type),
                idempotency_key=f"leave_day:{day.id}:reject",
                actor_id=acting_user.id,
                leave_request_id=leave_request.id,
                leave_day_id=day.id,
            )

        leave_request.last_updated_by = acting_user.id
        leave_request.last_updated_by_role = actor_role
        leave_request.updated_by = acting_user.id
        if comment is not None:
            leave_request.approval_comment = comment
        new_status = recompute_status(db, leave_request)

        db.add(LeaveApproval(
            leave_request_id=leave_request.id,
            action_by=acting_user.id,
            action_by_role=actor_role,
            action=outcome,
            day_ids=[d.id for d in (to_approve if outcome == ApprovalAction.APPROVE else to_reject)],
            remarks=comment,
        ))
        log_audit(
            db=db,
            actor_id=acting_user.id,
            action="LEAVE_APPROVE" if outcome == ApprovalAction.APPROVE else "LEAVE_REJECT",
            entity_type="leave_requests",
            entity_id=leave_request.id,
            meta={
                "employee_id": employee_id,
                "leave_type": leave_request.leave_type,
                "approved_day_ids": [d.id for d in to_approve],
                "rejected_day_ids": [d.id for d in to_reject],
                "before_status": before_status,
                "after_status": new_status,
                "acting_role": actor_role,
                "comment": comment,
            },
            commit=False,
        )

    logger.info(
        "leave status transition: leave_request_id=%s before=%s after=%s action=%s by=%s(%s) approved=%s rejected=%s",
        request_id, before_status, new_status.value, outcome.value, acting_user.id, actor_role,
        len(to_approve), len(to_reject),
    )
    db.refresh(leave_request)
    return leave_request
