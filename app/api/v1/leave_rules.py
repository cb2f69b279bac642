"""
Notice rule (leave_rules) endpoints

The table is maintained directly in the database; the application only reads it.
"""
from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.core.deps import get_db, get_current_user
from app.models.employee import Employee
from app.schemas.policy import LeaveRuleOut
from app.services.notice_validator import list_rules

router = APIRouter()


@router.get("", response_model=List[LeaveRuleOut])
async def get_rules(
    active_only: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """Notice bands: a casual leave of a given length must be filed prior_information_days ahead"""
    return list_rules(db, active_only=active_only)
