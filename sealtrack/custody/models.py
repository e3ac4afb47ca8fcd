"""SQLAlchemy models for custody events."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from sealtrack.db import Base


class CustodyEvent(Base):
    """One immutable step of a task's chain of custody."""

    __tablename__ = "custody_events"
    __table_args__ = (
        UniqueConstraint("task_id", "event_type", name="uq_custody_events_task_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(
        Integer,
        ForeignKey("tasks.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    event_type = Column(String(20), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    server_timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    image_url = Column(Text, nullable=False)
    image_hash = Column(String(64), nullable=False)
    distance_from_target = Column(Float, nullable=True)
    is_within_geofence = Column(Boolean, nullable=True)
    submitted_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
