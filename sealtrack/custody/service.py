"""Business logic for the custody event ledger."""
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from sealtrack import metrics
from sealtrack.audit.service import AuditAction
from sealtrack.clock import as_utc, utcnow
from sealtrack.collaborators import Collaborators, default_collaborators
from sealtrack.custody.models import CustodyEvent
from sealtrack.errors import (
    DuplicateError,
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
from sealtrack.schemas import EventType, ShiftSession, ShiftType, StageSet, TaskStatus
from sealtrack.stages import (
    CANONICAL_ORDER,
    DESTINATION,
    GEOFENCE_TARGET,
    SOURCE,
    required_stages,
    resolve_stage_set,
)
from sealtrack.tasks.lifecycle import TaskLifecycle, canonical_sort_key
from sealtrack.tasks.models import Task

logger = logging.getLogger(__name__)


def parse_event_type(value) -> EventType:
    try:
        return EventType(value)
    except ValueError:
        allowed = ", ".join(e.value for e in EventType)
        raise ValidationError(f"Unknown event type {value!r}; expected one of: {allowed}")


def stage_target(task: Task, event_type: EventType) -> Optional[Coordinate]:
    """Coordinate an event of this type is expected near, if tracked."""
    which = GEOFENCE_TARGET.get(event_type)
    if which == SOURCE:
        return coordinate_or_none(task.source_latitude, task.source_longitude)
    if which == DESTINATION:
        return coordinate_or_none(task.destination_latitude, task.destination_longitude)
    return None


class CustodyEventStore:
    """Append-only, idempotent ledger: at most one event per (task, event type)."""

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

    # ---------- queries ----------

    def _get_task(self, task_id: int, for_update: bool = False) -> Task:
        query = self.db.query(Task).filter(Task.id == task_id)
        if for_update:
            query = query.with_for_update()
        task = query.one_or_none()
        if task is None:
            raise ReferenceNotFoundError(f"Task {task_id} not found")
        return task

    def _find(self, task_id: int, event_type: EventType) -> Optional[CustodyEvent]:
        return (
            self.db.query(CustodyEvent)
            .filter(
                CustodyEvent.task_id == task_id,
                CustodyEvent.event_type == event_type.value,
            )
            .one_or_none()
        )

    def list_by_task(self, task_id: int) -> List[CustodyEvent]:
        """Events for a task in canonical stage order (not insertion order)."""
        task = self._get_task(task_id)
        events = self.db.query(CustodyEvent).filter(CustodyEvent.task_id == task_id).all()
        stage_set = StageSet(task.stage_set or StageSet.FIVE_STAGE.value)
        return sorted(events, key=lambda e: canonical_sort_key(stage_set, e))

    # ---------- validation ----------

    @staticmethod
    def _check_agent(task: Task, submitted_by: Optional[str]) -> None:
        if submitted_by is not None and submitted_by != task.assigned_user_id:
            raise ValidationError(f"Agent {submitted_by} is not assigned to task {task.id}")

    def _check_task_accepts(self, task: Task, event_type: EventType) -> StageSet:
        """Reject submissions the task cannot take; return its stage set."""
        if not task.is_active:
            raise TaskClosedError(f"Task {task.id} is deactivated")
        if task.status == TaskStatus.COMPLETED.value:
            raise TaskClosedError(
                f"Task {task.id} is already completed. No more events can be recorded."
            )
        if task.stage_set:
            stage_set = StageSet(task.stage_set)
            if event_type not in CANONICAL_ORDER[stage_set]:
                raise ValidationError(
                    f"Event type {event_type.value} does not belong to the "
                    f"{stage_set.value} chain of task {task.id}"
                )
        else:
            stage_set = resolve_stage_set(event_type)

        required = required_stages(
            stage_set, ShiftType(task.shift_type), ShiftSession(task.shift_session)
        )
        if event_type not in required:
            raise ValidationError(
                f"Event type {event_type.value} is not part of this shift's custody chain"
            )
        return stage_set

    # ---------- write ----------

    def record(
        self,
        task_id: int,
        event_type,
        coordinates: Tuple[float, float],
        evidence: Evidence,
        received_at: Optional[datetime] = None,
        submitted_by: Optional[str] = None,
    ) -> CustodyEvent:
        """
        Append one custody event and re-evaluate the task status.

        Raises ValidationError, ReferenceNotFoundError, DuplicateError (with the
        original record on ``.existing``) or EvidenceIntegrityError. Order and
        time-window problems do not raise: the event is stored and the task is
        flagged SUSPICIOUS.
        """
        event_type = parse_event_type(event_type)
        point = validate_coordinate(Coordinate(*coordinates))

        image_url = None
        with task_locks.hold(task_id):
            try:
                task = self._get_task(task_id, for_update=True)
                # only the assigned agent may see an existing record
                self._check_agent(task, submitted_by)

                existing = self._find(task_id, event_type)
                if existing is not None:
                    raise DuplicateError(
                        f"Event type '{event_type.value}' has already been recorded for this task",
                        existing=existing,
                    )

                stage_set = self._check_task_accepts(task, event_type)
                image_hash = check_evidence(evidence, task_id, event_type.value)
                image_url = self.collaborators.evidence_store.save(
                    task_id, event_type.value, evidence.content, evidence.filename
                )

                target = stage_target(task, event_type)
                dist = distance(point, target) if target is not None else None
                event = CustodyEvent(
                    task_id=task_id,
                    event_type=event_type.value,
                    latitude=point.latitude,
                    longitude=point.longitude,
                    server_timestamp=as_utc(received_at) if received_at else self.clock(),
                    image_url=image_url,
                    image_hash=image_hash,
                    distance_from_target=dist,
                    is_within_geofence=(
                        None if target is None
                        else within_geofence(point, target, task.geofence_radius)
                    ),
                    submitted_by=submitted_by,
                )
                if task.stage_set is None:
                    task.stage_set = stage_set.value
                self.db.add(event)
                self.db.flush()

                recorded = (
                    self.db.query(CustodyEvent)
                    .filter(CustodyEvent.task_id == task_id)
                    .all()
                )
                self.lifecycle.on_custody_event(task, event, recorded)
                self.db.commit()

            except sa_exc.IntegrityError:
                # another process won the unique (task_id, event_type) race
                self._abort(image_url)
                winner = self._find(task_id, event_type)
                if winner is None:
                    raise
                self._reject_duplicate(task_id, event_type, submitted_by)
                raise DuplicateError(
                    f"Event type '{event_type.value}' has already been recorded for this task",
                    existing=winner,
                )
            except DuplicateError as exc:
                self._abort()
                # rollback expired it; reload so callers can read it detached
                self.db.refresh(exc.existing)
                self._reject_duplicate(task_id, event_type, submitted_by)
                raise
            except EvidenceIntegrityError:
                self._abort()
                self._reject_integrity(task_id, event_type, submitted_by)
                raise
            except TaskClosedError:
                self._abort()
                self.hooks.add(
                    lambda: self.collaborators.audit.append(
                        AuditAction.EVENT_REJECTED_TASK_LOCKED, "CustodyEvent", None,
                        submitted_by, {"task_id": task_id, "event_type": event_type.value},
                    )
                )
                self.hooks.run()
                raise
            except Exception:
                self._abort(image_url)
                raise

        self._after_accept(event, submitted_by)
        return event

    def _abort(self, image_url: Optional[str] = None) -> None:
        self.db.rollback()
        self.hooks.discard()
        if image_url is not None:
            discard_evidence(self.collaborators.evidence_store, image_url)

    def _reject_duplicate(self, task_id: int, event_type: EventType, user_id: Optional[str]) -> None:
        logger.info(
            "Duplicate custody event rejected",
            extra={"task_id": task_id, "event_type": event_type.value},
        )
        self.hooks.add(metrics.CUSTODY_DUPLICATES.inc)
        self.hooks.add(
            lambda: self.collaborators.audit.append(
                AuditAction.EVENT_REJECTED_DUPLICATE, "CustodyEvent", None, user_id,
                {"task_id": task_id, "event_type": event_type.value},
            )
        )
        self.hooks.run()

    def _reject_integrity(self, task_id: int, event_type: EventType, user_id: Optional[str]) -> None:
        self.hooks.add(metrics.INTEGRITY_FAILURES.labels("custody_event").inc)
        self.hooks.add(
            lambda: self.collaborators.audit.append(
                AuditAction.EVENT_REJECTED_INTEGRITY, "CustodyEvent", None, user_id,
                {"task_id": task_id, "event_type": event_type.value},
            )
        )
        self.hooks.run()

    def _after_accept(self, event: CustodyEvent, user_id: Optional[str]) -> None:
        logger.info(
            "Custody event recorded",
            extra={
                "task_id": event.task_id,
                "event_id": event.id,
                "event_type": event.event_type,
                "distance_from_target": event.distance_from_target,
                "is_within_geofence": event.is_within_geofence,
            },
        )
        self.hooks.add(metrics.CUSTODY_EVENTS.labels(event.event_type).inc)
        self.hooks.add(
            lambda: self.collaborators.audit.append(
                AuditAction.EVENT_UPLOADED, "CustodyEvent", event.id, user_id,
                {"task_id": event.task_id, "event_type": event.event_type,
                 "image_hash": event.image_hash},
            )
        )
        self.hooks.run()
