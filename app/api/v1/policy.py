"""
Leave policy configuration endpoints
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from app.core.deps import get_db, get_current_user, require_roles
from app.models.employee import Employee, Role
from app.models.leave import LeaveType
from app.schemas.policy import PolicyCreate, PolicyOut
from app.services.policy_resolver import create_policy, list_policies

router = APIRouter()


@router.get("", response_model=List[PolicyOut])
async def get_policies(
    role: Optional[Role] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """All policy rows, oldest effective_from first per (role, leave_type)"""
    return list_policies(db, role=role, leave_type=leave_type)


@router.post("", response_model=PolicyOut, status_code=status.HTTP_201_CREATED)
def add_policy(
    payload: PolicyCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR)),
):
    """Add a policy row (HR / super_admin). Rows are never edited, only superseded."""
    return create_policy(db, actor_id=current_user.id, **payload.model_dump())
