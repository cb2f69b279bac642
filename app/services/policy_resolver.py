"""
Policy resolution and maintenance for (role, leave type) entitlements
"""
import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.core.exceptions import PolicyNotFoundError
from app.models.leave import LeaveType
from app.models.policy import LeavePolicyConfiguration
from app.services.audit_service import log_audit
from app.utils.roles import role_name

logger = logging.getLogger(__name__)


def find_policy(
    db: Session,
    role,
    leave_type: LeaveType,
    as_of: date,
) -> Optional[LeavePolicyConfiguration]:
    """The row for (role, leave_type) with the greatest effective_from <= as_of, or None."""
    return (
        db.query(LeavePolicyConfiguration)
        .filter(
            LeavePolicyConfiguration.role == role_name(role),
            LeavePolicyConfiguration.leave_type == LeaveType(leave_type),
            LeavePolicyConfiguration.effective_from <= as_of,
        )
        .order_by(LeavePolicyConfiguration.effective_from.desc())
        .first()
    )


def resolve(db: Session, role, leave_type: LeaveType, as_of: date) -> LeavePolicyConfiguration:
    """
    Resolve the authoritative policy for (role, leave_type) as of a date.

    Raises:
        PolicyNotFoundError: no row is in effect; the leave type is disabled for the role
    """
    policy = find_policy(db, role, leave_type, as_of)
    if policy is None:
        raise PolicyNotFoundError(role_name(role), LeaveType(leave_type).value, as_of)
    return policy


def list_policies(
    db: Session,
    role: Optional[str] = None,
    leave_type: Optional[LeaveType] = None,
) -> List[LeavePolicyConfiguration]:
    query = db.query(LeavePolicyConfiguration)
    if role:
        query = query.filter(LeavePolicyConfiguration.role == role_name(role))
    if leave_type:
        query = query.filter(LeavePolicyConfiguration.leave_type == LeaveType(leave_type))
    return query.order_by(
        LeavePolicyConfiguration.role,
        LeavePolicyConfiguration.leave_type,
        LeavePolicyConfiguration.effective_from,
    ).all()


def create_policy(
    db: Session,
    role: str,
    leave_type: LeaveType,
    annual_credit: Decimal,
    annual_max: Decimal,
    carry_forward_limit: Decimal,
    effective_from: date,
    max_leave_per_month: Optional[Decimal] = None,
    anniversary_3_year_bonus: Decimal = Decimal("0"),
    anniversary_5_year_bonus: Decimal = Decimal("0"),
    actor_id: Optional[int] = None,
) -> LeavePolicyConfiguration:
    """
    Add a policy row. Existing rows are never edited; a later effective_from supersedes them.

    Raises:
        HTTPException 409: a row with the same (role, leave_type, effective_from) exists
    """
    role = role_name(role)
    leave_type = LeaveType(leave_type)
    existing = db.query(LeavePolicyConfiguration).filter(
        LeavePolicyConfiguration.role == role,
        LeavePolicyConfiguration.leave_type == leave_type,
        LeavePolicyConfiguration.effective_from == effective_from,
    ).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Policy for {role}/{leave_type.value} effective {effective_from} already exists",
        )
    if carry_forward_limit > annual_max and annual_max > 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="carry_forward_limit cannot exceed annual_max",
        )

    policy = LeavePolicyConfiguration(
        role=role,
        leave_type=leave_type,
        annual_credit=annual_credit,
        annual_max=annual_max,
        carry_forward_limit=carry_forward_limit,
        max_leave_per_month=max_leave_per_month,
        anniversary_3_year_bonus=anniversary_3_year_bonus,
        anniversary_5_year_bonus=anniversary_5_year_bonus,
        effective_from=effective_from,
        created_by=actor_id,
        updated_by=actor_id,
    )
    db.add(policy)
    db.flush()
    log_audit(
        db=db,
        actor_id=actor_id,
        action="POLICY_CREATE",
        entity_type="leave_policy_configurations",
        entity_id=policy.id,
        meta={
            "role": role,
            "leave_type": leave_type.value,
            "annual_credit": annual_credit,
            "annual_max": annual_max,
            "carry_forward_limit": carry_forward_limit,
            "effective_from": effective_from,
        },
    )
    db.refresh(policy)
    logger.info("policy created: id=%s role=%s leave_type=%s effective_from=%s",
                policy.id, role, leave_type.value, effective_from)
    return policy
