"""SQLAlchemy models for custody tasks."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.sql import func

from sealtrack.db import Base


class Task(Base):
    """A single custody assignment for one field agent."""

    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    pack_code = Column(String(100), unique=True, nullable=False, index=True)

    source_location = Column(Text, nullable=False)
    destination_location = Column(Text, nullable=False)
    source_latitude = Column(Float, nullable=True)
    source_longitude = Column(Float, nullable=True)
    destination_latitude = Column(Float, nullable=True)
    destination_longitude = Column(Float, nullable=True)

    # half-open window [start_time, end_time)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    expected_travel_time = Column(Integer, nullable=False)
    shift_type = Column(String(10), nullable=False, default="SINGLE")
    shift_session = Column(String(10), nullable=False, default="MORNING")
    geofence_radius = Column(Integer, nullable=False, default=100)

    assigned_user_id = Column(
        String(64), ForeignKey("agents.id"), nullable=False, index=True
    )
    status = Column(String(20), nullable=False, default="PENDING", index=True)
    # resolved on the first accepted event unless declared at creation
    stage_set = Column(String(20), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class TaskStatusTransition(Base):
    """Append-only history of status changes for review."""

    __tablename__ = "task_status_transitions"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(
        Integer,
        ForeignKey("tasks.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    from_status = Column(String(20), nullable=False)
    to_status = Column(String(20), nullable=False)
    reason = Column(String(100), nullable=False)
    event_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
