"""
Audit log model
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from app.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("employees.id"), nullable=True)  # None for scheduler runs
    action = Column(String, nullable=False)  # e.g., "LEAVE_APPLY", "LEAVE_DECIDE", "ACCRUAL_RUN"
    entity_type = Column(String, nullable=False)  # e.g., "leave_requests", "leave_rules", "module_access"
    entity_id = Column(Integer, nullable=True)
    meta_json = Column(JSON, nullable=True)
    # Note: server_default handled by migration (CURRENT_TIMESTAMP for SQLite, now() for PostgreSQL)
    created_at = Column(DateTime(timezone=True), nullable=False)
