"""FastAPI routes for attendance."""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from sealtrack.attendance.schemas import AttendanceListResponse, AttendanceResponse
from sealtrack.attendance.service import AttendanceTracker
from sealtrack.collaborators import Collaborators
from sealtrack.db import get_db
from sealtrack.deps import get_collaborators
from sealtrack.evidence import Evidence
from sealtrack.schemas import LocationType
from sealtrack.security_hmac import agent_guard

router = APIRouter(prefix="/tasks", tags=["attendance"])


@router.post(
    "/{task_id}/attendance", response_model=AttendanceResponse, status_code=201
)
async def mark_attendance(
    task_id: int,
    location_type: LocationType = Form(...),
    latitude: float = Form(..., ge=-90, le=90),
    longitude: float = Form(..., ge=-180, le=180),
    image_hash: str = Form(...),
    image: UploadFile = File(...),
    agent_id: Optional[str] = Depends(agent_guard),
    db: Session = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Mark presence at the pickup or destination location."""
    content = await image.read()
    evidence = Evidence(
        content=content,
        declared_hash=image_hash,
        filename=image.filename or "attendance.jpg",
    )
    service = AttendanceTracker(db, collaborators)
    return await run_in_threadpool(
        service.record,
        task_id,
        location_type,
        (latitude, longitude),
        evidence,
        submitted_by=agent_id,
    )


@router.get("/{task_id}/attendance", response_model=AttendanceListResponse)
async def list_attendance(
    task_id: int,
    db: Session = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    service = AttendanceTracker(db, collaborators)
    records = service.list_by_task(task_id)
    return AttendanceListResponse(
        task_id=task_id,
        records=[AttendanceResponse.model_validate(r) for r in records],
    )
