"""
Task status state machine and anomaly rules.

PENDING -> IN_PROGRESS -> COMPLETED | SUSPICIOUS

Violations (order, time window, travel time) are recorded as a transition
to SUSPICIOUS, never raised. SUSPICIOUS is sticky and COMPLETED is final;
when one evaluation sees both a violation and a complete ledger the task
is flagged.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from sealtrack import metrics
from sealtrack.attendance.models import AttendanceRecord
from sealtrack.audit.service import AuditAction
from sealtrack.clock import as_utc, utcnow
from sealtrack.custody.models import CustodyEvent
from sealtrack.errors import ReferenceNotFoundError
from sealtrack.hooks import AuditSink, Notifier, PostCommitHooks
from sealtrack.schemas import EventType, ShiftSession, ShiftType, StageSet, TaskStatus
from sealtrack.settings import settings
from sealtrack.stages import (
    CANONICAL_ORDER,
    TRAVEL_LEG_END,
    predecessors,
    required_stages,
    stage_index,
)
from sealtrack.tasks.models import Task, TaskStatusTransition

logger = logging.getLogger(__name__)

ORDER_VIOLATION = "order_violation"
TIME_WINDOW_VIOLATION = "time_window_violation"
TRAVEL_TIME_EXCEEDED = "travel_time_exceeded"
ATTENDANCE_OUTSIDE_WINDOW = "attendance_outside_window"
FIRST_EVENT = "first_event"
ALL_STAGES_RECORDED = "all_stages_recorded"


# ---------- pure rule helpers ----------

def in_window(timestamp: datetime, start_time: datetime, end_time: datetime) -> bool:
    """Half-open window check: start <= ts < end."""
    ts = as_utc(timestamp)
    return as_utc(start_time) <= ts < as_utc(end_time)


def travel_time_exceeded(
    pickup_at: datetime,
    arrived_at: datetime,
    expected_minutes: int,
    tolerance: float,
) -> bool:
    """True when the leg took longer than expected * (1 + tolerance)."""
    elapsed_min = (as_utc(arrived_at) - as_utc(pickup_at)).total_seconds() / 60.0
    return elapsed_min > expected_minutes * (1.0 + tolerance)


def task_required_stages(task: Task) -> Tuple[EventType, ...]:
    stage_set = StageSet(task.stage_set or StageSet.FIVE_STAGE.value)
    return required_stages(
        stage_set, ShiftType(task.shift_type), ShiftSession(task.shift_session)
    )


@dataclass
class Evaluation:
    """Outcome of evaluating one accepted event."""

    violations: List[str]
    completes: bool


def evaluate_custody_event(
    task: Task,
    event: CustodyEvent,
    recorded: Sequence[CustodyEvent],
    tolerance: float,
) -> Evaluation:
    """
    Apply the order, time-window and travel-time rules to a newly accepted event.

    ``recorded`` is the task's full ledger including ``event``.
    """
    required = task_required_stages(task)
    event_type = EventType(event.event_type)
    by_type = {EventType(e.event_type): e for e in recorded}
    violations: List[str] = []

    # any predecessor missing at acceptance time is an order violation
    missing = [p for p in predecessors(required, event_type) if p not in by_type]
    if missing:
        violations.append(ORDER_VIOLATION)

    if not in_window(event.server_timestamp, task.start_time, task.end_time):
        violations.append(TIME_WINDOW_VIOLATION)

    stage_set = StageSet(task.stage_set)
    pickup = by_type.get(EventType.PICKUP)
    if event_type is TRAVEL_LEG_END[stage_set] and pickup is not None:
        if travel_time_exceeded(
            pickup.server_timestamp,
            event.server_timestamp,
            task.expected_travel_time,
            tolerance,
        ):
            violations.append(TRAVEL_TIME_EXCEEDED)

    completes = all(stage in by_type for stage in required)
    return Evaluation(violations=violations, completes=completes)


class TaskLifecycle:
    """Owns task status writes and the status history."""

    def __init__(
        self,
        db: Session,
        hooks: PostCommitHooks,
        notifier: Notifier,
        audit: AuditSink,
        tolerance: Optional[float] = None,
    ):
        self.db = db
        self.hooks = hooks
        self.notifier = notifier
        self.audit = audit
        self.tolerance = (
            settings.travel_time_tolerance if tolerance is None else tolerance
        )

    # ---------- reactions ----------

    def on_custody_event(
        self, task: Task, event: CustodyEvent, recorded: Sequence[CustodyEvent]
    ) -> List[TaskStatusTransition]:
        """Re-evaluate status after an accepted custody event (caller commits)."""
        if task.status == TaskStatus.COMPLETED.value:
            return []

        outcome = evaluate_custody_event(task, event, recorded, self.tolerance)
        transitions: List[TaskStatusTransition] = []

        if task.status == TaskStatus.PENDING.value:
            transitions.append(
                self._transition(task, TaskStatus.IN_PROGRESS, FIRST_EVENT, event.id)
            )

        if outcome.violations:
            reason = ",".join(outcome.violations)
            if task.status != TaskStatus.SUSPICIOUS.value:
                transitions.append(
                    self._transition(task, TaskStatus.SUSPICIOUS, reason, event.id)
                )
            else:
                logger.warning(
                    "Further violation on flagged task",
                    extra={"task_id": task.id, "event_id": event.id, "reason": reason},
                )
            if TRAVEL_TIME_EXCEEDED in outcome.violations:
                self._queue_audit(AuditAction.RED_FLAG_TRAVEL_TIME, task, {"event_id": event.id})
        elif outcome.completes and task.status == TaskStatus.IN_PROGRESS.value:
            transitions.append(
                self._transition(task, TaskStatus.COMPLETED, ALL_STAGES_RECORDED, event.id)
            )

        return transitions

    def on_attendance(
        self, task: Task, record: AttendanceRecord
    ) -> List[TaskStatusTransition]:
        """Attendance only feeds the time-window rule; geofence misses never flag."""
        if not task.is_active:
            return []
        if task.status in (TaskStatus.COMPLETED.value, TaskStatus.SUSPICIOUS.value):
            return []
        if in_window(record.server_timestamp, task.start_time, task.end_time):
            return []
        return [
            self._transition(
                task, TaskStatus.SUSPICIOUS, ATTENDANCE_OUTSIDE_WINDOW, None
            )
        ]

    def _transition(
        self, task: Task, to_status: TaskStatus, reason: str, event_id: Optional[int]
    ) -> TaskStatusTransition:
        from_status = task.status
        task.status = to_status.value
        transition = TaskStatusTransition(
            task_id=task.id,
            from_status=from_status,
            to_status=to_status.value,
            reason=reason,
            event_id=event_id,
            created_at=utcnow(),
        )
        self.db.add(transition)

        logger.info(
            "Task status change",
            extra={"task_id": task.id, "from_status": from_status,
                   "to_status": to_status.value, "reason": reason},
        )

        action = {
            TaskStatus.SUSPICIOUS: AuditAction.TASK_MARKED_SUSPICIOUS,
            TaskStatus.COMPLETED: AuditAction.TASK_COMPLETED,
        }.get(to_status, AuditAction.TASK_STATUS_CHANGED)
        self._queue_audit(
            action, task,
            {"from_status": from_status, "to_status": to_status.value, "reason": reason},
        )
        self.hooks.add(lambda: metrics.STATUS_TRANSITIONS.labels(to_status.value).inc())
        if to_status is TaskStatus.SUSPICIOUS:
            self.hooks.add(lambda: self.notifier.task_flagged(task, reason))
        return transition

    def _queue_audit(self, action: str, task: Task, details: Dict[str, Any]) -> None:
        task_id = task.id
        user_id = task.assigned_user_id
        self.hooks.add(
            lambda: self.audit.append(action, "Task", task_id, user_id, details)
        )

    # ---------- read side ----------

    def _get_task(self, task_id: int) -> Task:
        task = self.db.get(Task, task_id)
        if task is None:
            raise ReferenceNotFoundError(f"Task {task_id} not found")
        return task

    def get_status(self, task_id: int) -> TaskStatus:
        return TaskStatus(self._get_task(task_id).status)

    def get_history(self, task_id: int) -> List[TaskStatusTransition]:
        """Status transitions in the order they happened."""
        self._get_task(task_id)
        return (
            self.db.query(TaskStatusTransition)
            .filter(TaskStatusTransition.task_id == task_id)
            .order_by(TaskStatusTransition.id.asc())
            .all()
        )

    def allowed_event_types(self, task_id: int) -> List[EventType]:
        """Required stages not yet recorded, in canonical order."""
        task = self._get_task(task_id)
        if task.status == TaskStatus.COMPLETED.value or not task.is_active:
            return []
        recorded = {
            EventType(row.event_type)
            for row in self.db.query(CustodyEvent.event_type)
            .filter(CustodyEvent.task_id == task_id)
            .all()
        }
        return [stage for stage in task_required_stages(task) if stage not in recorded]

    def get_overview(self, task_id: int) -> Dict[str, Any]:
        """Aggregated state for administrative review."""
        task = self._get_task(task_id)
        events = (
            self.db.query(CustodyEvent).filter(CustodyEvent.task_id == task_id).all()
        )
        stage_set = StageSet(task.stage_set or StageSet.FIVE_STAGE.value)
        events.sort(key=lambda e: canonical_sort_key(stage_set, e))
        attendance = (
            self.db.query(AttendanceRecord)
            .filter(AttendanceRecord.task_id == task_id)
            .order_by(AttendanceRecord.server_timestamp.asc(), AttendanceRecord.id.asc())
            .all()
        )
        return {
            "task": task,
            "events": events,
            "attendance": attendance,
            "history": self.get_history(task_id),
            "allowed_event_types": self.allowed_event_types(task_id),
        }


def canonical_sort_key(stage_set: StageSet, event: CustodyEvent) -> Tuple[int, int]:
    """Sort by canonical stage position; foreign types (should not exist) last."""
    event_type = EventType(event.event_type)
    if event_type in CANONICAL_ORDER[stage_set]:
        return (stage_index(stage_set, event_type), event.id or 0)
    return (len(CANONICAL_ORDER[stage_set]), event.id or 0)
