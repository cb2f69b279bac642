"""
Module access lists - membership toggled with single keyed statements
"""
import logging
from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy import delete
from sqlalchemy.orm import Session

from app.db.upsert import insert_ignore
from app.models.access import ModuleAccess
from app.services.audit_service import log_audit
from app.utils.datetime_utils import now_utc

logger = logging.getLogger(__name__)

ACTION_ADD = "add"
ACTION_REMOVE = "remove"


def toggle_access(
    db: Session,
    module_id: str,
    employee_id: int,
    action: str,
    requested_by: Optional[int] = None,
) -> bool:
    """
    Add an employee to, or remove them from, a module's access list.

    add is INSERT ... ON CONFLICT DO NOTHING and remove is a DELETE keyed by
    (module_id, employee_id), so simultaneous toggles for different employees never
    overwrite each other.

    Returns:
        True if membership changed, False if it was already in the requested state
    """
    if action not in (ACTION_ADD, ACTION_REMOVE):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid action: {action}. Use '{ACTION_ADD}' or '{ACTION_REMOVE}'",
        )

    try:
        if action == ACTION_ADD:
            changed = insert_ignore(
                db,
                ModuleAccess,
                {
                    "module_id": module_id,
                    "employee_id": employee_id,
                    "granted_by": requested_by,
                    "created_by": requested_by,
                    "updated_by": requested_by,
                    "created_at": now_utc(),
                    "updated_at": now_utc(),
                },
                ["module_id", "employee_id"],
            ) == 1
        else:
            result = db.execute(
                delete(ModuleAccess).where(
                    ModuleAccess.module_id == module_id,
                    ModuleAccess.employee_id == employee_id,
                )
            )
            changed = result.rowcount == 1

        if changed:
            log_audit(
                db=db,
                actor_id=requested_by,
                action="MODULE_ACCESS_ADD" if action == ACTION_ADD else "MODULE_ACCESS_REMOVE",
                entity_type="module_access",
                entity_id=employee_id,
                meta={"module_id": module_id, "employee_id": employee_id},
                commit=False,
            )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "module access %s: module_id=%s employee_id=%s changed=%s by=%s",
        action, module_id, employee_id, changed, requested_by,
    )
    return changed


def list_members(db: Session, module_id: str) -> List[int]:
    rows = (
        db.query(ModuleAccess.employee_id)
        .filter(ModuleAccess.module_id == module_id)
        .order_by(ModuleAccess.employee_id)
        .all()
    )
    return [employee_id for (employee_id,) in rows]
