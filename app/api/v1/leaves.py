"""
Leave endpoints

Handlers that touch the balance ledger are plain `def` so FastAPI runs them on its
threadpool; each request holds its own session and the per-employee lock.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from app.core.deps import get_db, get_current_user
from app.models.employee import Employee
from app.models.leave import LeaveStatus
from app.schemas.leave import (
    CancelRequest,
    ConvertLopRequest,
    DecisionRequest,
    LeaveApplyRequest,
    LeaveEditRequest,
    LeaveListResponse,
    LeaveOut,
)
from app.services.approval_state_machine import decide
from app.services.leave_service import (
    apply_leave,
    cancel_request,
    convert_lop_to_casual,
    delete_request,
    edit_request,
    get_request_for_user,
    list_my_requests,
    list_pending_for_approver,
)

router = APIRouter()


@router.post("/apply", response_model=LeaveOut, status_code=status.HTTP_201_CREATED)
def apply_leave_endpoint(
    leave_data: LeaveApplyRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """
    Apply for leave (creates a pending request with one pending day per working date)

    Any working employee can apply for themselves. Validations:
    - date window per leave type (sick may be backdated a few days, casual must be future)
    - weekends and holidays are skipped; a range with no working day is rejected
    - no overlap with pending or approved leave on any date
    - notice band from leave rules (casual), unless urgent
    - monthly cap and available balance (lop: headroom under the cap)
    """
    return apply_leave(
        db,
        employee_id=current_user.id,
        leave_type=leave_data.leave_type,
        start_date=leave_data.start_date,
        start_day_type=leave_data.start_day_type,
        end_date=leave_data.end_date,
        end_day_type=leave_data.end_day_type,
        reason=leave_data.reason,
        urgent=leave_data.urgent,
        doctor_note=leave_data.doctor_note,
        permission_start_time=leave_data.permission_start_time,
        permission_end_time=leave_data.permission_end_time,
    )


@router.get("/my", response_model=LeaveListResponse)
async def list_my_leaves(
    status_filter: Optional[LeaveStatus] = Query(None, alias="status", description="Filter by status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """List the current user's leave requests, newest first"""
    items, total = list_my_requests(
        db, current_user.id, status=status_filter, offset=(page - 1) * page_size, limit=page_size,
    )
    return LeaveListResponse(items=items, total=total)


@router.get("/pending", response_model=LeaveListResponse)
async def list_pending_leaves(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """Requests awaiting a decision the current user is allowed to make"""
    items = list_pending_for_approver(db, current_user)
    return LeaveListResponse(items=items, total=len(items))


@router.get("/{leave_id}", response_model=LeaveOut)
async def get_leave(
    leave_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    return get_request_for_user(db, leave_id, current_user)


@router.put("/{leave_id}", response_model=LeaveOut)
def edit_leave(
    leave_id: int,
    leave_data: LeaveEditRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """Edit a request while every day is still pending and no approver has acted"""
    return edit_request(db, leave_id, leave_data.model_dump(exclude_unset=True), current_user)


@router.delete("/{leave_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_leave(
    leave_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """Delete a request while every day is still pending and no approver has acted"""
    delete_request(db, leave_id, current_user)


@router.post("/{leave_id}/decide", response_model=LeaveOut)
def decide_leave(
    leave_id: int,
    decision: DecisionRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """
    Approve or reject a request (manager for their reporting hierarchy, HR, super_admin)

    approve with day_ids approves those days and rejects the remaining pending days;
    approve without day_ids approves every pending day; reject rejects them all.
    A lower-ranked approver cannot override a higher-ranked one.
    """
    return decide(
        db,
        request_id=leave_id,
        day_ids=decision.day_ids,
        outcome=decision.action,
        acting_user=current_user,
        comment=decision.comment,
    )


@router.post("/{leave_id}/cancel", response_model=LeaveOut)
def cancel_leave(
    leave_id: int,
    payload: Optional[CancelRequest] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """Cancel approved leave (applicant, HR or super_admin); approved days go back to the balance"""
    return cancel_request(db, leave_id, current_user, remark=payload.remarks if payload else None)


@router.post("/{leave_id}/convert-to-casual", response_model=LeaveOut)
def convert_leave_to_casual(
    leave_id: int,
    payload: ConvertLopRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """
    Convert an lop request to casual leave (super_admin, with proof)

    Approved days are debited from casual and refunded from the lop balance.
    """
    return convert_lop_to_casual(db, leave_id, current_user, payload.proof_ref, remark=payload.remarks)
