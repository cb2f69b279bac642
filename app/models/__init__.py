"""
Database models
"""
from app.models.employee import Employee, Role, EmployeeStatus
from app.models.audit_log import AuditLog
from app.models.leave import (
    LeaveRequest,
    LeaveDay,
    LeaveApproval,
    LeaveBalance,
    BalanceLedgerEntry,
    LeaveType,
    DayType,
    LeaveStatus,
    DayStatus,
    ApprovalAction,
    LedgerOperation,
    BALANCE_LEAVE_TYPES,
)
from app.models.policy import LeavePolicyConfiguration, LeaveRule
from app.models.holiday import Holiday
from app.models.access import ModuleAccess

__all__ = [
    "Employee",
    "Role",
    "EmployeeStatus",
    "AuditLog",
    "LeaveRequest",
    "LeaveDay",
    "LeaveApproval",
    "LeaveBalance",
    "BalanceLedgerEntry",
    "LeaveType",
    "DayType",
    "LeaveStatus",
    "DayStatus",
    "ApprovalAction",
    "LedgerOperation",
    "BALANCE_LEAVE_TYPES",
    "LeavePolicyConfiguration",
    "LeaveRule",
    "Holiday",
    "ModuleAccess",
]
