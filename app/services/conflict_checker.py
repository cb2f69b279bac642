"""
Overlap detection between a new set of leave days and the employee's existing leave
"""
from typing import Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.exceptions import DateConflictError
from app.models.leave import DayStatus, LeaveDay, LeaveRequest, LeaveStatus
from app.services.day_expander import DayDraft

# Rejected days never block; cancelled requests never block
BLOCKING_DAY_STATUSES = (DayStatus.PENDING, DayStatus.APPROVED)


def find_blocking_days(
    db: Session,
    employee_id: int,
    drafts: Sequence[DayDraft],
    exclude_request_id: Optional[int] = None,
) -> Dict:
    """Existing pending/approved days of the employee on any of the draft dates, keyed by date."""
    dates = [d.leave_date for d in drafts]
    if not dates:
        return {}
    query = (
        db.query(LeaveDay)
        .join(LeaveRequest, LeaveRequest.id == LeaveDay.leave_request_id)
        .filter(
            LeaveDay.employee_id == employee_id,
            LeaveDay.leave_date.in_(dates),
            LeaveDay.day_status.in_(BLOCKING_DAY_STATUSES),
            LeaveRequest.current_status != LeaveStatus.CANCELLED,
        )
    )
    if exclude_request_id is not None:
        query = query.filter(LeaveDay.leave_request_id != exclude_request_id)

    existing: Dict = {}
    for day in query.order_by(LeaveDay.leave_date, LeaveDay.id).all():
        existing.setdefault(day.leave_date, []).append(day)
    return existing


def check_conflicts(
    db: Session,
    employee_id: int,
    drafts: Sequence[DayDraft],
    exclude_request_id: Optional[int] = None,
) -> None:
    """
    Fail on the first draft that overlaps an existing pending/approved leave day.

    A full existing day blocks any new day. A half existing day blocks a new full
    day and also a new half day: two half-day leaves never share a date, whichever
    halves they cover.

    Raises:
        DateConflictError: naming the offending date and the existing day's status
    """
    existing = find_blocking_days(db, employee_id, drafts, exclude_request_id)
    for draft in drafts:
        days: List[LeaveDay] = existing.get(draft.leave_date, [])
        if days:
            day = days[0]
            raise DateConflictError(
                employee_id=employee_id,
                leave_date=draft.leave_date,
                existing_status=DayStatus(day.day_status).value,
                request_id=day.leave_request_id,
            )
