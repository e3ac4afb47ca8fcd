"""FastAPI routes for tasks."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from sealtrack.attendance.schemas import AttendanceResponse
from sealtrack.collaborators import Collaborators
from sealtrack.custody.schemas import CustodyEventResponse
from sealtrack.db import get_db
from sealtrack.deps import get_collaborators
from sealtrack.hooks import PostCommitHooks
from sealtrack.schemas import TaskStatus
from sealtrack.tasks.lifecycle import TaskLifecycle
from sealtrack.tasks.schemas import (
    AllowedEventsResponse,
    StatusTransitionResponse,
    TaskCreate,
    TaskListResponse,
    TaskOverviewResponse,
    TaskResponse,
)
from sealtrack.tasks.service import TaskScheduler

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _lifecycle(db: Session, collaborators: Collaborators) -> TaskLifecycle:
    return TaskLifecycle(
        db, PostCommitHooks(), collaborators.notifier, collaborators.audit
    )


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(
    task_data: TaskCreate,
    db: Session = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Schedule a custody task for one field agent."""
    service = TaskScheduler(db, collaborators)
    return service.create_task(task_data)


@router.get("", response_model=TaskListResponse)
async def get_tasks(
    status: Optional[TaskStatus] = Query(None, description="Filter by status"),
    assigned_user_id: Optional[str] = Query(None, description="Filter by agent"),
    include_inactive: bool = Query(False),
    limit: int = Query(50, ge=1, le=100, description="Page size"),
    offset: int = Query(0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """List tasks with filters and pagination."""
    service = TaskScheduler(db, collaborators)
    tasks, total = service.get_tasks(
        status=status,
        assigned_user_id=assigned_user_id,
        include_inactive=include_inactive,
        limit=limit,
        offset=offset,
    )
    return TaskListResponse(
        tasks=[TaskResponse.model_validate(t) for t in tasks],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{task_id}", response_model=TaskOverviewResponse)
async def get_task(
    task_id: int,
    db: Session = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Task with its ledger, attendance log and status history."""
    overview = _lifecycle(db, collaborators).get_overview(task_id)
    return TaskOverviewResponse(
        task=TaskResponse.model_validate(overview["task"]),
        events=[CustodyEventResponse.model_validate(e) for e in overview["events"]],
        attendance=[AttendanceResponse.model_validate(a) for a in overview["attendance"]],
        history=[StatusTransitionResponse.model_validate(h) for h in overview["history"]],
        allowed_event_types=overview["allowed_event_types"],
    )


@router.get("/{task_id}/history", response_model=List[StatusTransitionResponse])
async def get_task_history(
    task_id: int,
    db: Session = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    history = _lifecycle(db, collaborators).get_history(task_id)
    return [StatusTransitionResponse.model_validate(h) for h in history]


@router.get("/{task_id}/allowed-events", response_model=AllowedEventsResponse)
async def get_allowed_events(
    task_id: int,
    db: Session = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Stages the agent may still record, in canonical order."""
    allowed = _lifecycle(db, collaborators).allowed_event_types(task_id)
    return AllowedEventsResponse(task_id=task_id, allowed_event_types=allowed)


@router.post("/{task_id}/deactivate", response_model=TaskResponse)
async def deactivate_task(
    task_id: int,
    db: Session = Depends(get_db),
    collaborators: Collaborators = Depends(get_collaborators),
):
    """Soft-deactivate a task; its ledger is kept."""
    service = TaskScheduler(db, collaborators)
    return service.deactivate_task(task_id)
