"""Pydantic schemas for attendance."""
from typing import List, Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from sealtrack.schemas import LocationType


class AttendanceResponse(BaseModel):
    """Schema for attendance record response."""
    id: int
    task_id: int
    user_id: Optional[str] = None
    location_type: LocationType
    latitude: float
    longitude: float
    server_timestamp: datetime
    image_url: str
    image_hash: str
    is_within_geofence: bool
    distance_from_target: Optional[float] = Field(
        None, description="Meters from target; null when target is unknown"
    )

    model_config = ConfigDict(from_attributes=True)


class AttendanceListResponse(BaseModel):
    task_id: int
    records: List[AttendanceResponse]
