"""
Module access list endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.core.deps import get_db, get_current_user, require_roles
from app.models.employee import Employee, Role
from app.schemas.access import AccessToggleOut, AccessToggleRequest, ModuleMembersOut
from app.services.access_service import list_members, toggle_access
from app.services.leave_service import get_employee

router = APIRouter()


@router.post("/modules/{module_id}/toggle", response_model=AccessToggleOut)
def toggle_module_access(
    module_id: str,
    payload: AccessToggleRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR)),
):
    """Add or remove one employee; concurrent toggles for different employees never lose updates"""
    get_employee(db, payload.employee_id)
    changed = toggle_access(db, module_id, payload.employee_id, payload.action, requested_by=current_user.id)
    return AccessToggleOut(
        module_id=module_id,
        employee_id=payload.employee_id,
        action=payload.action,
        changed=changed,
    )


@router.get("/modules/{module_id}", response_model=ModuleMembersOut)
async def get_module_members(
    module_id: str,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    return ModuleMembersOut(module_id=module_id, employee_ids=list_members(db, module_id))
