"""Business logic for task scheduling."""
import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from sealtrack.agents.service import AgentDirectory
from sealtrack.audit.service import AuditAction
from sealtrack.clock import as_utc
from sealtrack.collaborators import Collaborators, default_collaborators
from sealtrack.errors import (
    DuplicatePackCodeError,
    ReferenceNotFoundError,
    ValidationError,
)
from sealtrack.geo import Coordinate, coordinate_or_none, distance, validate_coordinate
from sealtrack.hooks import PostCommitHooks
from sealtrack.schemas import ShiftType, TaskStatus
from sealtrack.settings import settings
from sealtrack.tasks.models import Task
from sealtrack.tasks.schemas import TaskCreate

logger = logging.getLogger(__name__)


def derive_expected_travel_time(
    source: Optional[Coordinate], destination: Optional[Coordinate]
) -> int:
    """
    Minutes for the pickup -> destination leg.

    Great-circle distance at the configured average speed, rounded up and
    never below the default; the default alone when coordinates are missing.
    """
    floor = settings.default_expected_travel_minutes
    if source is None or destination is None:
        return floor
    km = distance(source, destination) / 1000.0
    minutes = math.ceil(km / settings.average_travel_speed_kmh * 60)
    return max(floor, minutes)


def derive_shift_type(start_time: datetime, end_time: datetime) -> ShiftType:
    """DOUBLE when the window is longer than the double-shift threshold."""
    hours = (as_utc(end_time) - as_utc(start_time)).total_seconds() / 3600.0
    if hours > settings.double_shift_threshold_hours:
        return ShiftType.DOUBLE
    return ShiftType.SINGLE


def _pair(lat: Optional[float], lon: Optional[float], label: str) -> Optional[Coordinate]:
    if (lat is None) != (lon is None):
        raise ValidationError(f"{label} latitude and longitude must be given together")
    point = coordinate_or_none(lat, lon)
    return validate_coordinate(point) if point is not None else None


class TaskScheduler:
    """Creates custody tasks and exposes them to administrators."""

    def __init__(self, db: Session, collaborators: Optional[Collaborators] = None):
        self.db = db
        self.collaborators = collaborators or default_collaborators(db)
        self.agents = AgentDirectory(db)
        self.hooks = PostCommitHooks()

    def get_task_by_pack_code(self, pack_code: str) -> Optional[Task]:
        return (
            self.db.query(Task)
            .filter(Task.pack_code == pack_code.strip().upper())
            .one_or_none()
        )

    def get_task(self, task_id: int) -> Task:
        task = self.db.get(Task, task_id)
        if task is None:
            raise ReferenceNotFoundError(f"Task {task_id} not found")
        return task

    def get_tasks(
        self,
        status: Optional[TaskStatus] = None,
        assigned_user_id: Optional[str] = None,
        include_inactive: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[Task], int]:
        """Get tasks with filtering and pagination, newest first."""
        query = self.db.query(Task)
        if status is not None:
            query = query.filter(Task.status == TaskStatus(status).value)
        if assigned_user_id:
            query = query.filter(Task.assigned_user_id == assigned_user_id)
        if not include_inactive:
            query = query.filter(Task.is_active.is_(True))

        total = query.count()
        tasks = query.order_by(Task.id.desc()).limit(limit).offset(offset).all()
        return tasks, total

    def _validate(self, data: TaskCreate) -> Dict[str, Any]:
        start_time = as_utc(data.start_time)
        end_time = as_utc(data.end_time)
        if not start_time < end_time:
            raise ValidationError("End time must be after start time")

        radius = (
            settings.default_geofence_radius_m
            if data.geofence_radius is None
            else data.geofence_radius
        )
        if not settings.min_geofence_radius_m <= radius <= settings.max_geofence_radius_m:
            raise ValidationError(
                f"Geofence radius must be between {settings.min_geofence_radius_m} "
                f"and {settings.max_geofence_radius_m} meters"
            )

        source = _pair(data.source_latitude, data.source_longitude, "Source")
        destination = _pair(
            data.destination_latitude, data.destination_longitude, "Destination"
        )

        if self.get_task_by_pack_code(data.pack_code) is not None:
            raise DuplicatePackCodeError(
                f"Task with pack code '{data.pack_code}' already exists"
            )

        agent = self.agents.get_agent(data.assigned_user_id)
        if agent is None:
            raise ReferenceNotFoundError(f"Agent '{data.assigned_user_id}' not found")
        if not agent.is_active:
            raise ValidationError("Cannot assign task to an inactive agent")

        return {
            "start_time": start_time,
            "end_time": end_time,
            "geofence_radius": radius,
            "source": source,
            "destination": destination,
        }

    def create_task(self, data: TaskCreate) -> Task:
        """Validate and persist a task in PENDING with no events."""
        checked = self._validate(data)
        source, destination = checked["source"], checked["destination"]

        expected = data.expected_travel_time or derive_expected_travel_time(
            source, destination
        )
        shift_type = data.shift_type or derive_shift_type(
            checked["start_time"], checked["end_time"]
        )

        task = Task(
            pack_code=data.pack_code,
            source_location=data.source_location,
            destination_location=data.destination_location,
            source_latitude=source.latitude if source else None,
            source_longitude=source.longitude if source else None,
            destination_latitude=destination.latitude if destination else None,
            destination_longitude=destination.longitude if destination else None,
            start_time=checked["start_time"],
            end_time=checked["end_time"],
            expected_travel_time=expected,
            shift_type=shift_type.value,
            shift_session=data.shift_session.value,
            geofence_radius=checked["geofence_radius"],
            assigned_user_id=data.assigned_user_id,
            status=TaskStatus.PENDING.value,
            stage_set=data.stage_set.value if data.stage_set else None,
            is_active=True,
        )
        try:
            self.db.add(task)
            self.db.commit()
        except sa_exc.IntegrityError:
            self.db.rollback()
            raise DuplicatePackCodeError(
                f"Task with pack code '{data.pack_code}' already exists"
            )
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Task created",
            extra={"task_id": task.id, "pack_code": task.pack_code,
                   "assigned_user_id": task.assigned_user_id,
                   "expected_travel_time": expected, "shift_type": task.shift_type},
        )
        audit = self.collaborators.audit
        self.hooks.add(lambda: audit.append(AuditAction.TASK_CREATED, "Task", task.id))
        self.hooks.add(
            lambda: audit.append(
                AuditAction.TASK_ASSIGNED, "Task", task.id, task.assigned_user_id
            )
        )
        self.hooks.add(lambda: self.collaborators.notifier.task_assigned(task))
        self.hooks.run()
        return task

    def deactivate_task(self, task_id: int) -> Task:
        """Soft delete a task (is_active=False); tasks are never removed."""
        task = self.get_task(task_id)
        if not task.is_active:
            return task
        try:
            task.is_active = False
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.hooks.add(
            lambda: self.collaborators.audit.append(
                AuditAction.TASK_DEACTIVATED, "Task", task_id
            )
        )
        self.hooks.run()
        return task
