"""
Employee model
"""
from sqlalchemy import Column, Integer, String, DateTime, Date, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from app.db.base import Base


class Role(str, enum.Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"
    HR = "hr"
    INTERN = "intern"
    SUPER_ADMIN = "super_admin"
    ON_NOTICE = "on_notice"


class EmployeeStatus(str, enum.Enum):
    ACTIVE = "active"
    ON_LEAVE = "on_leave"
    ON_NOTICE = "on_notice"
    INACTIVE = "inactive"
    TERMINATED = "terminated"
    RESIGNED = "resigned"


# Employees in these states still accrue leave and may apply for it
WORKING_STATUSES = (EmployeeStatus.ACTIVE, EmployeeStatus.ON_LEAVE, EmployeeStatus.ON_NOTICE)


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    emp_code = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    role = Column(String, nullable=False)
    status = Column(String, nullable=False, default=EmployeeStatus.ACTIVE.value)
    reporting_manager_id = Column(Integer, ForeignKey("employees.id"), nullable=True, index=True)
    date_of_joining = Column(Date, nullable=False)
    created_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("employees.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp(), nullable=False)

    # Relationships
    reporting_manager = relationship(
        "Employee",
        remote_side=[id],
        foreign_keys=[reporting_manager_id],
        backref="direct_reports",
    )
    leave_requests = relationship(
        "LeaveRequest",
        foreign_keys="LeaveRequest.employee_id",
        back_populates="employee",
    )

    @property
    def is_working(self) -> bool:
        return self.status in {s.value for s in WORKING_STATUSES}
