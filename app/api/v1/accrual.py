"""
Accrual management endpoints (HR-only)
"""
from fastapi import APIRouter, Depends, Query, HTTPException, status
from sqlalchemy.orm import Session
from app.core.deps import get_db, require_roles
from app.models.employee import Role, Employee
from app.services.accrual_engine import TRIGGER_MONTHLY, run_accrual

router = APIRouter()


@router.post("/run")
def run_accrual_endpoint(
    period: str = Query(..., description="YYYY-MM (monthly), YYYY-MM-DD (anniversary) or YYYY (year_end)"),
    trigger: str = Query(TRIGGER_MONTHLY, description="monthly, anniversary or year_end"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR)),
):
    """
    Run one accrual period (HR-only). Idempotent: running a period twice does not double-credit.

    POST /api/v1/accrual/run?period=2026-02 - monthly credit for February 2026
    POST /api/v1/accrual/run?period=2026-03-15&trigger=anniversary - 3/5-year bonuses due that day
    POST /api/v1/accrual/run?period=2026&trigger=year_end - carry forward and lop reset
    """
    try:
        return run_accrual(db, period, trigger=trigger, actor_id=current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
