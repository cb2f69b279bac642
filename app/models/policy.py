"""
Leave policy configuration and notice-rule models
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Boolean,
    Numeric,
    ForeignKey,
    Enum as SQLEnum,
    UniqueConstraint,
    Index,
)
from sqlalchemy.sql import func
from decimal import Decimal
from app.db.base import Base
from app.models.leave import LeaveType


class LeavePolicyConfiguration(Base):
    """
    Entitlement rules per (role, leave_type). Rows are never deleted; a newer
    effective_from supersedes older rows from that date on.
    """
    __tablename__ = "leave_policy_configurations"

    id = Column(Integer, primary_key=True, index=True)
    role = Column(String(32), nullable=False)
    leave_type = Column(
        SQLEnum(LeaveType, name="leavetype", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    annual_credit = Column(Numeric(5, 1), nullable=False, default=Decimal("0"))
    annual_max = Column(Numeric(5, 1), nullable=False, default=Decimal("0"))
    carry_forward_limit = Column(Numeric(5, 1), nullable=False, default=Decimal("0"))
    max_leave_per_month = Column(Numeric(5, 1), nullable=True)  # None = no monthly cap
    anniversary_3_year_bonus = Column(Numeric(5, 1), nullable=False, default=Decimal("0"))
    anniversary_5_year_bonus = Column(Numeric(5, 1), nullable=False, default=Decimal("0"))
    effective_from = Column(Date, nullable=False)
    created_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp(), nullable=False)

    __table_args__ = (
        UniqueConstraint("role", "leave_type", "effective_from", name="uq_leave_policy_role_type_effective"),
        Index("ix_leave_policy_role_type", "role", "leave_type"),
    )


class LeaveRule(Base):
    """Notice band: requests of leave_required_min..leave_required_max days need prior_information_days notice."""
    __tablename__ = "leave_rules"

    id = Column(Integer, primary_key=True, index=True)
    leave_required_min = Column(Numeric(5, 1), nullable=False)
    leave_required_max = Column(Numeric(5, 1), nullable=True)  # None = unbounded
    prior_information_days = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp(), nullable=False)
