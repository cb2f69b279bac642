"""
Policy and leave rule schemas
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_serializer
from app.models.employee import Role
from app.models.leave import LeaveType
from app.utils.datetime_utils import iso_ist


class PolicyCreate(BaseModel):
    """A new policy row; it supersedes older rows from effective_from onwards"""
    role: Role
    leave_type: LeaveType
    annual_credit: Decimal = Field(..., ge=0)
    annual_max: Decimal = Field(..., ge=0, description="Balance ceiling; 0 means no ceiling (lop: cap)")
    carry_forward_limit: Decimal = Field(Decimal("0"), ge=0)
    max_leave_per_month: Optional[Decimal] = Field(None, gt=0, description="Monthly cap; omit for none")
    anniversary_3_year_bonus: Decimal = Field(Decimal("0"), ge=0)
    anniversary_5_year_bonus: Decimal = Field(Decimal("0"), ge=0)
    effective_from: date


class PolicyOut(BaseModel):
    """Schema for policy output. Datetimes in IST (+05:30)."""
    id: int
    role: str
    leave_type: LeaveType
    annual_credit: Decimal
    annual_max: Decimal
    carry_forward_limit: Decimal
    max_leave_per_month: Optional[Decimal] = None
    anniversary_3_year_bonus: Decimal
    anniversary_5_year_bonus: Decimal
    effective_from: date
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at", "updated_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_ist(dt) if dt is not None else None


class LeaveRuleOut(BaseModel):
    id: int
    leave_required_min: Decimal
    leave_required_max: Optional[Decimal] = None
    prior_information_days: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at", "updated_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_ist(dt) if dt is not None else None
