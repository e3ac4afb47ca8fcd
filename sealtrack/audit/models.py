"""SQLAlchemy models for the audit trail."""

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from sealtrack.db import Base


class AuditLog(Base):
    """Write-only record of a sensitive action. Never updated or deleted."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(64), nullable=False, index=True)
    entity_type = Column(String(100), nullable=False)
    entity_id = Column(String(64), nullable=True)
    user_id = Column(String(64), nullable=True)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
