"""Shared pytest fixtures: a fresh SQLite database per test and recording collaborators."""
import itertools
import os
import tempfile
from datetime import datetime, timezone
from unittest.mock import Mock

# must be set before sealtrack.settings is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("EVIDENCE_DIR", tempfile.mkdtemp(prefix="sealtrack-evidence-"))
os.environ.setdefault("LOG_FORMAT", "text")

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from sealtrack.agents.service import AgentDirectory  # noqa: E402
from sealtrack.collaborators import Collaborators  # noqa: E402
from sealtrack.custody.service import CustodyEventStore  # noqa: E402
from sealtrack.db import init_db, make_engine  # noqa: E402
from sealtrack.evidence import Evidence, LocalEvidenceStore, compute_hash  # noqa: E402
from sealtrack.hooks import AuditSink, Notifier  # noqa: E402
from sealtrack.tasks.schemas import TaskCreate  # noqa: E402
from sealtrack.tasks.service import TaskScheduler  # noqa: E402

# Nagaon district education office and an exam center ~650 m away
SOURCE = (26.3480, 92.6840)
DESTINATION = (26.3500, 92.6900)


def at(hour, minute=0, day=2):
    """A UTC instant on the test exam day (2026-03-02)."""
    return datetime(2026, 3, day, hour, minute, tzinfo=timezone.utc)


def evidence_files(root):
    """Paths of every stored evidence file under root, relative to it."""
    if not os.path.isdir(root):
        return []
    return sorted(
        os.path.relpath(os.path.join(dirpath, name), root)
        for dirpath, _, names in os.walk(root)
        for name in names
    )


class RecordingAuditSink(AuditSink):
    """Keeps audit entries in memory for assertions."""

    def __init__(self):
        self.entries = []

    def append(self, action, entity_type, entity_id=None, user_id=None, details=None):
        self.entries.append(
            {
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "user_id": user_id,
                "details": details or {},
            }
        )

    def actions(self):
        return [e["action"] for e in self.entries]


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'sealtrack.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return Mock(spec=Notifier)


@pytest.fixture
def audit():
    return RecordingAuditSink()


@pytest.fixture
def collaborators(notifier, audit, tmp_path):
    return Collaborators(
        notifier=notifier,
        audit=audit,
        evidence_store=LocalEvidenceStore(str(tmp_path / "evidence")),
    )


@pytest.fixture
def make_agent(db):
    def _make(agent_id="agent-1", name="Field Agent", is_active=True):
        return AgentDirectory(db).register(agent_id, name, is_active)

    return _make


@pytest.fixture
def task_data():
    """Valid TaskCreate arguments for a 09:00-13:00 window."""
    counter = itertools.count(1)

    def _data(**overrides):
        data = {
            "pack_code": f"PK-{next(counter):04d}",
            "source_location": "District Education Office, Nagaon",
            "destination_location": "Exam Center 12, Nagaon",
            "assigned_user_id": "agent-1",
            "start_time": at(9),
            "end_time": at(13),
            "source_latitude": SOURCE[0],
            "source_longitude": SOURCE[1],
            "destination_latitude": DESTINATION[0],
            "destination_longitude": DESTINATION[1],
            "expected_travel_time": 60,
        }
        data.update(overrides)
        return data

    return _data


@pytest.fixture
def make_task(db, collaborators, make_agent, task_data):
    def _make(**overrides):
        data = task_data(**overrides)
        if AgentDirectory(db).get_agent(data["assigned_user_id"]) is None:
            make_agent(data["assigned_user_id"])
        return TaskScheduler(db, collaborators).create_task(TaskCreate(**data))

    return _make


@pytest.fixture
def evidence():
    def _make(content=b"\xff\xd8\xff\xe0 sealed pack photo", declared_hash=None):
        if declared_hash is None:
            declared_hash = compute_hash(content)
        return Evidence(content=content, declared_hash=declared_hash)

    return _make


@pytest.fixture
def submit(db, collaborators, evidence):
    """Record a custody event at a given server time."""

    def _submit(task, event_type, when, coordinates=DESTINATION, **kwargs):
        store = CustodyEventStore(db, collaborators)
        return store.record(
            task.id, event_type, coordinates, evidence(), received_at=when, **kwargs
        )

    return _submit


@pytest.fixture
def client(session_factory, collaborators):
    from fastapi.testclient import TestClient

    from sealtrack.db import get_db
    from sealtrack.deps import get_collaborators
    from sealtrack.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_collaborators] = lambda: collaborators
    yield TestClient(app)
    app.dependency_overrides.clear()
