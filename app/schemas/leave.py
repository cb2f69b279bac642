"""
Leave schemas
"""
from datetime import date, datetime, time
from typing import Optional, List
from pydantic import BaseModel, Field, field_serializer, model_validator
from pydantic import ConfigDict
from app.utils.datetime_utils import iso_ist
from decimal import Decimal
from app.models.leave import ApprovalAction, DayStatus, DayType, LeaveStatus, LeaveType
from app.schemas.employee import EmployeeOut


class LeaveApplyRequest(BaseModel):
    """Schema for applying leave"""
    leave_type: LeaveType = Field(..., description="Type of leave")
    start_date: date = Field(..., description="First date of leave")
    end_date: date = Field(..., description="Last date of leave")
    start_day_type: DayType = Field(DayType.FULL, description="full, first_half or second_half for the first working day")
    end_day_type: DayType = Field(DayType.FULL, description="full, first_half or second_half for the last working day")
    reason: Optional[str] = Field(None, description="Reason for leave")
    urgent: bool = Field(False, description="Bypass the notice rule (recorded in audit)")
    doctor_note: Optional[str] = Field(None, description="Doctor note reference (sick leave only)")
    permission_start_time: Optional[time] = Field(None, description="Start time (permission only)")
    permission_end_time: Optional[time] = Field(None, description="End time (permission only)")

    @model_validator(mode="after")
    def check_range(self) -> "LeaveApplyRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class LeaveEditRequest(BaseModel):
    """Schema for editing a pending leave. Only supplied fields change."""
    leave_type: Optional[LeaveType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    start_day_type: Optional[DayType] = None
    end_day_type: Optional[DayType] = None
    reason: Optional[str] = None
    urgent: Optional[bool] = None
    doctor_note: Optional[str] = None
    permission_start_time: Optional[time] = None
    permission_end_time: Optional[time] = None


class DecisionRequest(BaseModel):
    """Schema for approving or rejecting a leave request"""
    action: ApprovalAction = Field(..., description="approve or reject")
    day_ids: List[int] = Field(default_factory=list, description="Days to approve; empty approves every pending day")
    comment: Optional[str] = Field(None, description="Approver comment")

    @model_validator(mode="after")
    def check_action(self) -> "DecisionRequest":
        if self.action == ApprovalAction.CANCEL:
            raise ValueError("Use POST /leaves/{id}/cancel to cancel leave")
        return self


class CancelRequest(BaseModel):
    """Schema for cancelling approved leave"""
    remarks: Optional[str] = Field(None, description="Reason for cancellation")


class ConvertLopRequest(BaseModel):
    """Schema for converting an lop request to casual leave"""
    proof_ref: str = Field(..., min_length=1, description="Reference to the uploaded proof document")
    remarks: Optional[str] = None


class LeaveDayOut(BaseModel):
    id: int
    leave_date: date
    day_type: DayType
    day_status: DayStatus

    model_config = ConfigDict(from_attributes=True)


class LeaveApprovalOut(BaseModel):
    id: int
    action_by: int
    action_by_role: str
    action: ApprovalAction
    day_ids: Optional[List[int]] = None
    remarks: Optional[str] = None
    action_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("action_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_ist(dt) if dt is not None else None


class LeaveOut(BaseModel):
    """Schema for leave output. Datetimes in IST (+05:30)."""
    id: int
    employee_id: int
    employee: Optional[EmployeeOut] = None
    leave_type: LeaveType
    start_date: date
    end_date: date
    start_day_type: DayType
    end_day_type: DayType
    reason: Optional[str] = None
    urgent: bool
    doctor_note: Optional[str] = None
    permission_start_time: Optional[time] = None
    permission_end_time: Optional[time] = None
    no_of_days: Decimal
    current_status: LeaveStatus
    last_updated_by: Optional[int] = None
    last_updated_by_role: Optional[str] = None
    approval_comment: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    days: List[LeaveDayOut] = []
    approvals: List[LeaveApprovalOut] = []

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at", "updated_at", "cancelled_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_ist(dt) if dt is not None else None


class LeaveListResponse(BaseModel):
    """Schema for leave list response"""
    items: List[LeaveOut]
    total: int
