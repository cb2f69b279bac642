"""
Leave balance endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.core.deps import get_db, get_current_user, require_roles
from app.models.employee import Employee, Role
from app.schemas.balance import BalanceOut
from app.services import balance_ledger as ledger
from app.services.leave_service import get_employee

router = APIRouter()


def _balance_out(db: Session, employee_id: int) -> BalanceOut:
    summary = ledger.get_balance_summary(db, employee_id)
    balance = ledger.get_balance(db, employee_id)
    return BalanceOut(employee_id=employee_id, balances=summary, last_updated=balance.last_updated)


@router.get("/me", response_model=BalanceOut)
def balance_me(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """Current user's casual, sick and lop balances with pending days deducted"""
    return _balance_out(db, current_user.id)


@router.get("/{employee_id}", response_model=BalanceOut)
def balance_for_employee(
    employee_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR)),
):
    """Any employee's balances (HR / super_admin)"""
    get_employee(db, employee_id)
    return _balance_out(db, employee_id)
