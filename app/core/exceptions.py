"""
Domain exceptions for the leave engine.

Every exception is an HTTPException so the central handler in app.core.errors renders it
without per-endpoint try/except. Each one also carries an error_code and a context dict
(employee_id, request_id, date, ...) so callers can build a precise message.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Union
from fastapi import HTTPException, status


class LeaveError(HTTPException):
    """Base class for leave engine failures."""

    http_status: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "LEAVE_ERROR"

    def __init__(self, message: str, **context: Any):
        super().__init__(status_code=self.http_status, detail=message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def __str__(self) -> str:
        return self.message


# Validation errors: caller mistakes, never retried

class InvalidRangeError(LeaveError):
    error_code = "INVALID_RANGE"


class DateConflictError(LeaveError):
    http_status = status.HTTP_409_CONFLICT
    error_code = "DATE_CONFLICT"

    def __init__(self, employee_id: int, leave_date: date, existing_status: str, request_id: Optional[int] = None):
        super().__init__(
            f"Leave already exists on {leave_date.isoformat()} with status {existing_status}",
            employee_id=employee_id,
            date=leave_date,
            existing_status=existing_status,
            request_id=request_id,
        )
        self.leave_date = leave_date
        self.existing_status = existing_status


class InsufficientNoticeError(LeaveError):
    error_code = "INSUFFICIENT_NOTICE"

    def __init__(self, required_days: int, notice_days: int, duration: Decimal, **context: Any):
        super().__init__(
            f"Leave of {duration} day(s) requires {required_days} day(s) prior notice; "
            f"only {notice_days} given",
            required_days=required_days,
            notice_days=notice_days,
            duration=duration,
            **context,
        )
        self.required_days = required_days
        self.notice_days = notice_days


class MonthlyLimitExceededError(LeaveError):
    error_code = "MONTHLY_LIMIT_EXCEEDED"


class InvalidDaySelectionError(LeaveError):
    error_code = "INVALID_DAY_SELECTION"


# Policy / authorization errors

class PolicyNotFoundError(LeaveError):
    http_status = status.HTTP_404_NOT_FOUND
    error_code = "POLICY_NOT_FOUND"

    def __init__(self, role: str, leave_type: str, as_of: date, **context: Any):
        super().__init__(
            f"No {leave_type} leave policy is active for role {role} as of {as_of.isoformat()}",
            role=role,
            leave_type=leave_type,
            as_of=as_of,
            **context,
        )


class InsufficientAuthorityError(LeaveError):
    http_status = status.HTTP_403_FORBIDDEN
    error_code = "INSUFFICIENT_AUTHORITY"


class RequestLockedError(LeaveError):
    http_status = status.HTTP_409_CONFLICT
    error_code = "REQUEST_LOCKED"


class LeaveRequestNotFoundError(LeaveError):
    http_status = status.HTTP_404_NOT_FOUND
    error_code = "LEAVE_REQUEST_NOT_FOUND"

    def __init__(self, request_id: int):
        super().__init__(f"Leave request with id {request_id} not found", request_id=request_id)


class EmployeeNotFoundError(LeaveError):
    http_status = status.HTTP_404_NOT_FOUND
    error_code = "EMPLOYEE_NOT_FOUND"

    def __init__(self, employee_id: int):
        super().__init__(f"Employee with id {employee_id} not found", employee_id=employee_id)


# Concurrency errors: safe to retry once after re-reading state

class ConcurrentModificationError(LeaveError):
    http_status = status.HTTP_409_CONFLICT
    error_code = "CONCURRENT_MODIFICATION"


# Invariant violations: the whole transaction is rolled back

class InsufficientBalanceError(LeaveError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "INSUFFICIENT_BALANCE"

    def __init__(
        self,
        employee_id: int,
        leave_type: str,
        requested: Union[Decimal, float],
        available: Union[Decimal, float],
        **context: Any,
    ):
        super().__init__(
            f"Insufficient {leave_type} balance: requested {requested}, available {available}",
            employee_id=employee_id,
            leave_type=leave_type,
            requested=requested,
            available=available,
            **context,
        )
        self.requested = requested
        self.available = available


class BalanceExceededError(LeaveError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "BALANCE_EXCEEDED"
