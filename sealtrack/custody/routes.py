"""FastAPI routes for custody events."""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from sealtrack.collaborators import Collaborators
from sealtrack.custody.schemas import (
    CustodyEventListResponse,
    CustodyEventResponse,
    DuplicateEventResponse,
)
from sealtrack.custody.service import CustodyEventStore
from sealtrack.db import get_db
from sealtrack.deps import get_collaborators
from sealtrack.evidence import Evidence
from sealtrack.schemas import EventType
from sealtrack.security_hmac import agent_guard

router = APIRouter(prefix="/tasks", tags=["custody"])


@router.post(
    "/{task_id}/events",
    response_model=CustodyEventResponse,
    status_code=201,
    responses={409: {"model": DuplicateEventResponse}},
)
async def record_event(
    task_id: int,
    event_type: EventType = Form(..., description="Custody stage"),
    latitude: float = Form(..., ge=-90, le=90),
    longitude: float = Form(..., ge=-180, le=180),
    image_hash: str = Form(..., description="SHA-256 computed on the device"),
    image: UploadFile = File(..., description="Photo evidence"),
    agent_id: Optional[str] = Depends(agent_guard),
    db: Session = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Record one custody step. Server time is authoritative."""
    content = await image.read()
    evidence = Evidence(
        content=content,
        declared_hash=image_hash,
        filename=image.filename or "evidence.jpg",
    )
    service = CustodyEventStore(db, collaborators)
    # per-task lock and DB I/O stay off the event loop
    return await run_in_threadpool(
        service.record,
        task_id,
        event_type,
        (latitude, longitude),
        evidence,
        submitted_by=agent_id,
    )


@router.get("/{task_id}/events", response_model=CustodyEventListResponse)
async def list_events(
    task_id: int,
    db: Session = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Events of a task in canonical stage order."""
    service = CustodyEventStore(db, collaborators)
    events = service.list_by_task(task_id)
    return CustodyEventListResponse(
        task_id=task_id,
        events=[CustodyEventResponse.model_validate(e) for e in events],
    )
