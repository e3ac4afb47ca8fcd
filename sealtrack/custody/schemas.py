"""Pydantic schemas for custody events."""
from typing import List, Optional
from datetime import datetime

from pydantic import BaseModel, Field, ConfigDict  # v2

from sealtrack.schemas import EventType


class CustodyEventResponse(BaseModel):
    """Schema for custody event response."""
    id: int
    task_id: int
    event_type: EventType
    latitude: float = Field(..., ge=-90, le=90, description="Latitude")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude")
    server_timestamp: datetime
    image_url: str
    image_hash: str = Field(..., description="SHA-256 of the evidence image")
    distance_from_target: Optional[float] = Field(None, description="Meters")
    is_within_geofence: Optional[bool] = None

    # pydantic v2 config
    model_config = ConfigDict(from_attributes=True)


class CustodyEventListResponse(BaseModel):
    """Events of one task in canonical stage order."""
    task_id: int
    events: List[CustodyEventResponse]


class DuplicateEventResponse(BaseModel):
    """409 body: the record that already holds this ledger slot."""
    detail: str
    existing: CustodyEventResponse
