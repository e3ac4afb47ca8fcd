"""Wiring of the external collaborators used by the services."""
from dataclasses import dataclass

from sqlalchemy.orm import Session, sessionmaker

from sealtrack.audit.service import DatabaseAuditSink
from sealtrack.evidence import EvidenceStore, LocalEvidenceStore
from sealtrack.hooks import AuditSink, LoggingNotifier, Notifier


@dataclass
class Collaborators:
    notifier: Notifier
    audit: AuditSink
    evidence_store: EvidenceStore


def default_collaborators(db: Session) -> Collaborators:
    """Logging notifier, audit rows on the same database, local evidence files."""
    audit_sessions = sessionmaker(bind=db.get_bind(), expire_on_commit=False)
    return Collaborators(
        notifier=LoggingNotifier(),
        audit=DatabaseAuditSink(audit_sessions),
        evidence_store=LocalEvidenceStore(),
    )
