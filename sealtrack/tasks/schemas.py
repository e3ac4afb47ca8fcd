"""Pydantic schemas for tasks."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sealtrack.attendance.schemas import AttendanceResponse
from sealtrack.custody.schemas import CustodyEventResponse
from sealtrack.schemas import EventType, ShiftSession, ShiftType, StageSet, TaskStatus


class TaskCreate(BaseModel):
    """Schema for scheduling a custody task."""

    pack_code: str = Field(
        ..., min_length=3, max_length=100, description="Sealed pack code"
    )
    source_location: str = Field(..., min_length=1, description="Pickup location")
    destination_location: str = Field(
        ..., min_length=1, description="Destination location"
    )
    assigned_user_id: str = Field(..., min_length=1, description="Field agent ID")
    start_time: datetime = Field(..., description="Window start (inclusive)")
    end_time: datetime = Field(..., description="Window end (exclusive)")

    source_latitude: Optional[float] = Field(None, ge=-90, le=90)
    source_longitude: Optional[float] = Field(None, ge=-180, le=180)
    destination_latitude: Optional[float] = Field(None, ge=-90, le=90)
    destination_longitude: Optional[float] = Field(None, ge=-180, le=180)

    geofence_radius: Optional[int] = Field(None, description="Radius in meters")
    expected_travel_time: Optional[int] = Field(
        None, ge=1, description="Expected pickup -> arrival minutes"
    )
    shift_type: Optional[ShiftType] = None
    shift_session: ShiftSession = ShiftSession.MORNING
    stage_set: Optional[StageSet] = Field(
        None, description="Declare the legacy chain for historical data"
    )

    @field_validator("pack_code")
    @classmethod
    def validate_pack_code(cls, v):
        """Validate pack code format."""
        if not v or not v.strip():
            raise ValueError("Pack code cannot be empty")
        return v.strip().upper()

    @field_validator("source_location", "destination_location")
    @classmethod
    def validate_location(cls, v):
        if not v.strip():
            raise ValueError("Location cannot be blank")
        return v.strip()


class TaskResponse(BaseModel):
    """Schema for task response."""

    id: int
    pack_code: str
    source_location: str
    destination_location: str
    source_latitude: Optional[float] = None
    source_longitude: Optional[float] = None
    destination_latitude: Optional[float] = None
    destination_longitude: Optional[float] = None
    start_time: datetime
    end_time: datetime
    expected_travel_time: int
    shift_type: ShiftType
    shift_session: ShiftSession
    geofence_radius: int
    assigned_user_id: str
    status: TaskStatus
    stage_set: Optional[StageSet] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class TaskListResponse(BaseModel):
    """Schema for paginated task list response."""

    tasks: List[TaskResponse]
    total: int
    limit: int
    offset: int


class StatusTransitionResponse(BaseModel):
    """One entry of a task's status history."""

    from_status: TaskStatus
    to_status: TaskStatus
    reason: str
    event_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AllowedEventsResponse(BaseModel):
    task_id: int
    allowed_event_types: List[EventType]


class TaskOverviewResponse(BaseModel):
    """Aggregated task state for administrative review."""

    task: TaskResponse
    events: List[CustodyEventResponse]
    attendance: List[AttendanceResponse]
    history: List[StatusTransitionResponse]
    allowed_event_types: List[EventType]
