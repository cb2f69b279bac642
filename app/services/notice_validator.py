"""
Notice-period and date-window validation for leave applications.

Notice bands come from the leave_rules table: a request whose duration falls in
[leave_required_min, leave_required_max] must be filed prior_information_days ahead.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import InsufficientNoticeError, InvalidRangeError
from app.models.leave import LeaveType
from app.models.policy import LeaveRule
from app.services.day_expander import DayDraft, total_days

logger = logging.getLogger(__name__)


def find_rule(db: Session, duration: Decimal) -> Optional[LeaveRule]:
    """Active band containing duration; if several overlap, the one with the highest minimum wins."""
    rules = (
        db.query(LeaveRule)
        .filter(LeaveRule.is_active == True)  # noqa: E712
        .order_by(LeaveRule.leave_required_min.desc())
        .all()
    )
    for rule in rules:
        low = Decimal(str(rule.leave_required_min))
        high = Decimal(str(rule.leave_required_max)) if rule.leave_required_max is not None else None
        if duration >= low and (high is None or duration <= high):
            return rule
    return None


def validate_notice(
    db: Session,
    leave_type: LeaveType,
    drafts: Sequence[DayDraft],
    start_date: date,
    application_date: date,
    urgent: bool = False,
    employee_id: Optional[int] = None,
) -> Optional[dict]:
    """
    Check the notice gap for leave types listed in settings.NOTICE_LEAVE_TYPES.

    Returns:
        None when the rule was met or does not apply; a dict describing the bypass
        when an urgent request skipped an unmet rule (the caller records it in audit).

    Raises:
        InsufficientNoticeError: gap shorter than the band requires and not urgent
    """
    leave_type = LeaveType(leave_type)
    if leave_type.value not in settings.get_notice_leave_types():
        return None

    duration = total_days(drafts)
    rule = find_rule(db, duration)
    if rule is None:
        return None

    gap = (start_date - application_date).days
    if gap >= rule.prior_information_days:
        return None

    if urgent:
        logger.warning(
            "urgent notice bypass: employee_id=%s leave_type=%s start=%s duration=%s required=%s given=%s",
            employee_id, leave_type.value, start_date, duration, rule.prior_information_days, gap,
        )
        return {
            "rule_id": rule.id,
            "required_days": rule.prior_information_days,
            "notice_days": gap,
            "duration": duration,
        }

    raise InsufficientNoticeError(
        required_days=rule.prior_information_days,
        notice_days=gap,
        duration=duration,
        employee_id=employee_id,
        start_date=start_date,
        rule_id=rule.id,
    )


def validate_date_window(
    leave_type: LeaveType,
    start_date: date,
    application_date: date,
    employee_id: Optional[int] = None,
) -> None:
    """
    Per-type limits on how far back or ahead a leave may start.

    - sick: from SICK_BACKDATE_DAYS in the past up to SICK_ADVANCE_DAYS ahead
    - casual: strictly after the application date
    - lop, permission: not in the past
    """
    leave_type = LeaveType(leave_type)
    if leave_type == LeaveType.SICK:
        earliest = application_date - timedelta(days=settings.SICK_BACKDATE_DAYS)
        latest = application_date + timedelta(days=settings.SICK_ADVANCE_DAYS)
        if start_date < earliest or start_date > latest:
            raise InvalidRangeError(
                f"Sick leave must start between {earliest.isoformat()} and {latest.isoformat()}",
                employee_id=employee_id,
                start_date=start_date,
            )
    elif leave_type == LeaveType.CASUAL:
        if start_date <= application_date:
            raise InvalidRangeError(
                "Casual leave cannot start today or in the past",
                employee_id=employee_id,
                start_date=start_date,
            )
    elif start_date < application_date:
        raise InvalidRangeError(
            f"{leave_type.value} cannot start in the past",
            employee_id=employee_id,
            start_date=start_date,
        )


def list_rules(db: Session, active_only: bool = False) -> List[LeaveRule]:
    """Notice bands ordered by duration. leave_rules is read-only to the application."""
    query = db.query(LeaveRule)
    if active_only:
        query = query.filter(LeaveRule.is_active == True)  # noqa: E712
    return query.order_by(LeaveRule.leave_required_min).all()
