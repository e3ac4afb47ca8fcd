"""SQLAlchemy models for attendance checkpoints."""

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from sealtrack.db import Base


class AttendanceRecord(Base):
    """Presence log entry at a pickup or destination location."""

    __tablename__ = "attendance_records"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(
        Integer,
        ForeignKey("tasks.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(64), nullable=True)
    location_type = Column(String(20), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    server_timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    image_url = Column(Text, nullable=False)
    image_hash = Column(String(64), nullable=False)
    # computed at write time so later radius changes do not rewrite history
    is_within_geofence = Column(Boolean, nullable=False, default=False)
    distance_from_target = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
