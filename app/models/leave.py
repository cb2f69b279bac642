"""
Leave models: requests, per-day rows, approval history, balances and the balance ledger
"""
from sqlalchemy import (
    Column,
    Integer,
    Date,
    DateTime,
    Time,
    ForeignKey,
    String,
    Text,
    Numeric,
    Enum as SQLEnum,
    Boolean,
    JSON,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import text
from decimal import Decimal
import enum
from app.db.base import Base


def _values(enum_cls):
    return [member.value for member in enum_cls]


class LeaveType(str, enum.Enum):
    CASUAL = "casual"
    SICK = "sick"
    LOP = "lop"
    PERMISSION = "permission"


class DayType(str, enum.Enum):
    FULL = "full"
    FIRST_HALF = "first_half"
    SECOND_HALF = "second_half"


class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    PARTIALLY_APPROVED = "partially_approved"


class DayStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"


class LedgerOperation(str, enum.Enum):
    COMMIT = "commit"
    RELEASE = "release"
    CREDIT_MONTHLY = "credit_monthly"
    CREDIT_ANNIVERSARY = "credit_anniversary"
    YEAR_END = "year_end"


# Leave types tracked on the balance row (permission is not balance-tracked)
BALANCE_LEAVE_TYPES = (LeaveType.CASUAL, LeaveType.SICK, LeaveType.LOP)

# Spend-down balances; LOP is a debt counter that grows on approval
SPEND_DOWN_LEAVE_TYPES = (LeaveType.CASUAL, LeaveType.SICK)

BALANCE_COLUMNS = {
    LeaveType.CASUAL: "casual_balance",
    LeaveType.SICK: "sick_balance",
    LeaveType.LOP: "lop_balance",
}


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type = Column(SQLEnum(LeaveType, name="leavetype", values_callable=_values), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    start_day_type = Column(SQLEnum(DayType, name="daytype", values_callable=_values), nullable=False, default=DayType.FULL)
    end_day_type = Column(SQLEnum(DayType, name="daytype", values_callable=_values), nullable=False, default=DayType.FULL)
    reason = Column(Text, nullable=True)
    urgent = Column(Boolean, nullable=False, default=False)
    doctor_note = Column(String(512), nullable=True)  # Opaque storage reference, sick leave only
    permission_start_time = Column(Time, nullable=True)
    permission_end_time = Column(Time, nullable=True)
    no_of_days = Column(Numeric(5, 1), nullable=False, default=Decimal("0"))
    current_status = Column(
        SQLEnum(LeaveStatus, name="leavestatus", values_callable=_values),
        nullable=False,
        default=LeaveStatus.PENDING,
    )
    last_updated_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    last_updated_by_role = Column(String(32), nullable=True)
    approval_comment = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    # Relationships
    employee = relationship("Employee", foreign_keys=[employee_id], back_populates="leave_requests")
    last_updated_by_employee = relationship("Employee", foreign_keys=[last_updated_by])
    days = relationship(
        "LeaveDay",
        back_populates="leave_request",
        cascade="all, delete-orphan",
        order_by="LeaveDay.leave_date",
    )
    approvals = relationship("LeaveApproval", back_populates="leave_request", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_leave_requests_employee_dates", "employee_id", "start_date", "end_date"),
        CheckConstraint("start_date <= end_date", name="check_start_date_le_end_date"),
    )


class LeaveDay(Base):
    """One working date of a leave request; the unit of approval."""
    __tablename__ = "leave_days"

    id = Column(Integer, primary_key=True, index=True)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False)
    leave_date = Column(Date, nullable=False)
    day_type = Column(SQLEnum(DayType, name="daytype", values_callable=_values), nullable=False)
    day_status = Column(
        SQLEnum(DayStatus, name="daystatus", values_callable=_values),
        nullable=False,
        default=DayStatus.PENDING,
    )
    created_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    leave_request = relationship("LeaveRequest", back_populates="days")

    __table_args__ = (
        Index("ix_leave_days_employee_date", "employee_id", "leave_date"),
    )


class LeaveApproval(Base):
    __tablename__ = "leave_approvals"

    id = Column(Integer, primary_key=True, index=True)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    action_by = Column(Integer, ForeignKey("employees.id"), nullable=False)
    action_by_role = Column(String(32), nullable=False)
    action = Column(SQLEnum(ApprovalAction, name="approvalaction", values_callable=_values), nullable=False)
    day_ids = Column(JSON, nullable=True)
    remarks = Column(Text, nullable=True)
    action_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    # Relationships
    leave_request = relationship("LeaveRequest", back_populates="approvals")
    approver = relationship("Employee", foreign_keys=[action_by])


class LeaveBalance(Base):
    """
    Leave balance: one row per employee.
    casual/sick are spend-down balances; lop counts unpaid days taken (debt, capped at 10).
    Only app.services.balance_ledger writes to this table.
    """
    __tablename__ = "leave_balances"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, unique=True, index=True)
    casual_balance = Column(Numeric(4, 1), nullable=False, default=Decimal("0"))
    sick_balance = Column(Numeric(4, 1), nullable=False, default=Decimal("0"))
    lop_balance = Column(Numeric(4, 1), nullable=False, default=Decimal("0"))
    last_updated = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    employee = relationship("Employee", foreign_keys=[employee_id])

    __table_args__ = (
        CheckConstraint("lop_balance >= 0 AND lop_balance <= 10", name="ck_leave_balances_lop_range"),
        CheckConstraint("casual_balance >= 0", name="ck_leave_balances_casual_non_negative"),
        CheckConstraint("sick_balance >= 0", name="ck_leave_balances_sick_non_negative"),
    )

    def get_amount(self, leave_type: LeaveType) -> Decimal:
        return Decimal(str(getattr(self, BALANCE_COLUMNS[leave_type]) or 0))

    def set_amount(self, leave_type: LeaveType, value: Decimal) -> None:
        setattr(self, BALANCE_COLUMNS[leave_type], value)


class BalanceLedgerEntry(Base):
    """Audit trail of balance operations; idempotency_key doubles as the applied-operations set."""
    __tablename__ = "balance_ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type = Column(SQLEnum(LeaveType, name="leavetype", values_callable=_values), nullable=False)
    operation = Column(SQLEnum(LedgerOperation, name="ledgeroperation", values_callable=_values), nullable=False)
    delta = Column(Numeric(5, 1), nullable=False)  # + credit, - debit (lop: + adds debt)
    balance_after = Column(Numeric(5, 1), nullable=False)
    idempotency_key = Column(String(200), nullable=False)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id", ondelete="SET NULL"), nullable=True, index=True)
    leave_day_id = Column(Integer, ForeignKey("leave_days.id", ondelete="SET NULL"), nullable=True)
    remarks = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_balance_ledger_entries_idempotency_key"),
    )
