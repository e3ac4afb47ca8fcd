"""SQLAlchemy models for field agents."""

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.sql import func

from sealtrack.db import Base


class Agent(Base):
    """Local mirror of an identity-provider agent."""

    __tablename__ = "agents"

    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
