"""Database-backed audit trail."""
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from sealtrack.audit.models import AuditLog
from sealtrack.hooks import AuditSink

logger = logging.getLogger(__name__)


class AuditAction:
    """Audit action names."""

    TASK_CREATED = "TASK_CREATED"
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_DEACTIVATED = "TASK_DEACTIVATED"
    TASK_STATUS_CHANGED = "TASK_STATUS_CHANGED"
    TASK_MARKED_SUSPICIOUS = "TASK_MARKED_SUSPICIOUS"
    TASK_COMPLETED = "TASK_COMPLETED"
    RED_FLAG_TRAVEL_TIME = "RED_FLAG_TRAVEL_TIME"
    EVENT_UPLOADED = "EVENT_UPLOADED"
    EVENT_REJECTED_DUPLICATE = "EVENT_REJECTED_DUPLICATE"
    EVENT_REJECTED_TASK_LOCKED = "EVENT_REJECTED_TASK_LOCKED"
    EVENT_REJECTED_INTEGRITY = "EVENT_REJECTED_INTEGRITY"
    ATTENDANCE_MARKED = "ATTENDANCE_MARKED"


class DatabaseAuditSink(AuditSink):
    """Append audit rows in a session of their own, never the caller's."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def append(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[Any] = None,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        db = self.session_factory()
        try:
            db.add(
                AuditLog(
                    action=action,
                    entity_type=entity_type,
                    entity_id=None if entity_id is None else str(entity_id),
                    user_id=user_id,
                    details=json.dumps(details, default=str) if details else None,
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


def list_audit_logs(
    db: Session, entity_type: Optional[str] = None, entity_id: Optional[Any] = None
) -> List[AuditLog]:
    """Audit rows, oldest first, optionally filtered by entity."""
    query = db.query(AuditLog)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.filter(AuditLog.entity_id == str(entity_id))
    return query.order_by(AuditLog.id.asc()).all()
