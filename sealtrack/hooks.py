"""Post-commit side effects: notifications and audit logging."""
import logging
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class Notifier:
    """Notification collaborator (fire-and-forget)."""

    def task_assigned(self, task: Any) -> None:
        raise NotImplementedError

    def task_flagged(self, task: Any, reason: str) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    """Default notifier: writes the notice to the application log."""

    def task_assigned(self, task: Any) -> None:
        logger.info(
            "Task assigned",
            extra={"task_id": task.id, "pack_code": task.pack_code,
                   "assigned_user_id": task.assigned_user_id},
        )

    def task_flagged(self, task: Any, reason: str) -> None:
        logger.warning(
            "Task flagged for review",
            extra={"task_id": task.id, "pack_code": task.pack_code, "reason": reason},
        )


class AuditSink:
    """Audit log collaborator (append-only)."""

    def append(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[Any] = None,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        raise NotImplementedError


class PostCommitHooks:
    """
    Callbacks queued during a unit of work and run after it commits.

    A failing callback is logged and skipped; it never reaches the caller,
    and discard() drops everything queued when the unit of work fails.
    """

    def __init__(self):
        self._pending: List[Callable[[], None]] = []

    def add(self, callback: Callable[[], None]) -> None:
        self._pending.append(callback)

    def discard(self) -> None:
        self._pending.clear()

    def run(self) -> int:
        """Run queued callbacks; return how many failed."""
        pending, self._pending = self._pending, []
        failures = 0
        for callback in pending:
            try:
                callback()
            except Exception:
                failures += 1
                logger.error(
                    "Post-commit hook failed",
                    exc_info=True,
                    extra={"hook": getattr(callback, "__name__", repr(callback))},
                )
        return failures

    def __len__(self) -> int:
        return len(self._pending)
