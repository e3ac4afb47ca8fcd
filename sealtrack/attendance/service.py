"""Business logic for attendance checkpoints."""
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from sealtrack import metrics
from sealtrack.attendance.models import AttendanceRecord
from sealtrack.audit.service import AuditAction
from sealtrack.clock import as_utc, utcnow
from sealtrack.collaborators import Collaborators, default_collaborators
from sealtrack.errors import (
    EvidenceIntegrityError,
    ReferenceNotFoundError,
    TaskClosedError,
    ValidationError,
)
from sealtrack.evidence import Evidence, check_evidence, discard_evidence
from sealtrack.geo import (
    Coordinate,
    coordinate_or_none,
    distance,
    validate_coordinate,
    within_geofence,
)
from sealtrack.hooks import PostCommitHooks
from sealtrack.locks import task_locks
from sealtrack.schemas import LocationType
from sealtrack.tasks.lifecycle import TaskLifecycle
from sealtrack.tasks.models import Task

logger = logging.getLogger(__name__)


class AttendanceTracker:
    """Presence log at pickup/destination, independent of the custody ledger."""

    def __init__(
        self,
        db: Session,
        collaborators: Optional[Collaborators] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.collaborators = collaborators or default_collaborators(db)
        self.clock = clock
        self.hooks = PostCommitHooks()
        self.lifecycle = TaskLifecycle(
            db, self.hooks, self.collaborators.notifier, self.collaborators.audit
        )

    def _get_task(self, task_id: int, for_update: bool = False) -> Task:
        query = self.db.query(Task).filter(Task.id == task_id)
        if for_update:
            query = query.with_for_update()
        task = query.one_or_none()
        if task is None:
            raise ReferenceNotFoundError(f"Task {task_id} not found")
        return task

    @staticmethod
    def default_target(task: Task, location_type: LocationType) -> Optional[Coordinate]:
        if location_type is LocationType.PICKUP:
            return coordinate_or_none(task.source_latitude, task.source_longitude)
        return coordinate_or_none(task.destination_latitude, task.destination_longitude)

    def record(
        self,
        task_id: int,
        location_type,
        coordinates: Tuple[float, float],
        evidence: Evidence,
        received_at: Optional[datetime] = None,
        target: Optional[Tuple[float, float]] = None,
        submitted_by: Optional[str] = None,
    ) -> AttendanceRecord:
        """
        Append an attendance record.

        Distance and geofence result are computed now and stored, so a later
        radius change does not alter history. A geofence miss never changes
        the task status; a timestamp outside the task window does.
        """
        try:
            location_type = LocationType(location_type)
        except ValueError:
            raise ValidationError("Location type must be PICKUP or DESTINATION")
        point = validate_coordinate(Coordinate(*coordinates))
        explicit_target = validate_coordinate(Coordinate(*target)) if target else None

        image_url = None
        with task_locks.hold(task_id):
            try:
                task = self._get_task(task_id, for_update=True)
                if not task.is_active:
                    raise TaskClosedError(f"Task {task_id} is deactivated")
                if submitted_by is not None and submitted_by != task.assigned_user_id:
                    raise ValidationError(
                        f"Agent {submitted_by} is not assigned to task {task_id}"
                    )

                image_hash = check_evidence(evidence, task_id, location_type.value)
                image_url = self.collaborators.evidence_store.save(
                    task_id, f"attendance_{location_type.value}",
                    evidence.content, evidence.filename,
                )

                goal = explicit_target or self.default_target(task, location_type)
                dist = distance(point, goal) if goal is not None else None
                record = AttendanceRecord(
                    task_id=task_id,
                    user_id=submitted_by or task.assigned_user_id,
                    location_type=location_type.value,
                    latitude=point.latitude,
                    longitude=point.longitude,
                    server_timestamp=as_utc(received_at) if received_at else self.clock(),
                    image_url=image_url,
                    image_hash=image_hash,
                    distance_from_target=dist,
                    is_within_geofence=(
                        goal is not None
                        and within_geofence(point, goal, task.geofence_radius)
                    ),
                )
                self.db.add(record)
                self.db.flush()

                self.lifecycle.on_attendance(task, record)
                self.db.commit()
            except EvidenceIntegrityError:
                self.db.rollback()
                self.hooks.discard()
                self.hooks.add(metrics.INTEGRITY_FAILURES.labels("attendance").inc)
                self.hooks.add(
                    lambda: self.collaborators.audit.append(
                        AuditAction.EVENT_REJECTED_INTEGRITY, "Attendance", None, submitted_by,
                        {"task_id": task_id, "location_type": location_type.value},
                    )
                )
                self.hooks.run()
                raise
            except Exception:
                self.db.rollback()
                self.hooks.discard()
                if image_url is not None:
                    discard_evidence(self.collaborators.evidence_store, image_url)
                raise

        logger.info(
            "Attendance recorded",
            extra={
                "task_id": task_id,
                "location_type": record.location_type,
                "distance_from_target": record.distance_from_target,
                "is_within_geofence": record.is_within_geofence,
            },
        )
        self.hooks.add(
            metrics.ATTENDANCE_RECORDS.labels(str(record.is_within_geofence).lower()).inc
        )
        self.hooks.add(
            lambda: self.collaborators.audit.append(
                f"{AuditAction.ATTENDANCE_MARKED}: {record.location_type}", "Attendance",
                record.id, record.user_id,
                {"task_id": task_id, "distance_from_target": record.distance_from_target,
                 "is_within_geofence": record.is_within_geofence},
            )
        )
        self.hooks.run()
        return record

    def list_by_task(self, task_id: int) -> List[AttendanceRecord]:
        """All attendance records for a task, oldest first."""
        self._get_task(task_id)
        return (
            self.db.query(AttendanceRecord)
            .filter(AttendanceRecord.task_id == task_id)
            .order_by(AttendanceRecord.server_timestamp.asc(), AttendanceRecord.id.asc())
            .all()
        )
