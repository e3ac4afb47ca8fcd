"""
Bulk task creation for administrative loads and stress testing.

Transient database failures are retried with exponential backoff; domain
rejections (duplicate pack code, bad window, unknown agent) are reported
and never retried.
"""
import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from sealtrack.clock import utcnow
from sealtrack.collaborators import Collaborators
from sealtrack.errors import SealTrackError
from sealtrack.settings import settings
from sealtrack.tasks.schemas import TaskCreate
from sealtrack.tasks.service import TaskScheduler

logger = logging.getLogger(__name__)

# relative share of tasks per district when generating load
DISTRICT_WEIGHTS: Mapping[str, int] = MappingProxyType(
    {
        "Kamrup Metropolitan": 8,
        "Nagaon": 6,
        "Dibrugarh": 4,
        "Cachar": 4,
        "Jorhat": 3,
        "Tinsukia": 3,
        "Dhubri": 2,
        "Majuli": 1,
    }
)


def weighted_choice(weights: Mapping[str, float], rng: random.Random) -> str:
    """Pick a key with probability proportional to its weight."""
    if not weights:
        raise ValueError("weights must not be empty")
    if any(w < 0 for w in weights.values()):
        raise ValueError("weights must be non-negative")
    total = sum(weights.values())
    if total <= 0:
        raise ValueError("at least one weight must be positive")

    pick = rng.random() * total
    running = 0.0
    for key, weight in weights.items():
        running += weight
        if pick < running:
            return key
    # float rounding at the upper edge
    return next(k for k in reversed(list(weights)) if weights[k] > 0)


def generate_task_specs(
    count: int,
    agents: Sequence[str],
    districts: Mapping[str, float] = DISTRICT_WEIGHTS,
    start: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> List[TaskCreate]:
    """Synthetic task definitions spread over districts and the coming week."""
    if not agents:
        raise ValueError("at least one agent is required")
    rng = rng or random.Random()
    start = start or utcnow().replace(hour=9, minute=0, second=0, microsecond=0)

    specs = []
    for i in range(count):
        district = weighted_choice(districts, rng)
        window_start = start + timedelta(days=rng.randint(0, 6))
        specs.append(
            TaskCreate(
                pack_code=f"PK-{district[:3]}-{i:05d}",
                source_location=f"District Education Office, {district}",
                destination_location=f"Exam Center {rng.randint(1, 40)}, {district}",
                assigned_user_id=agents[i % len(agents)],
                start_time=window_start,
                end_time=window_start + timedelta(hours=4),
            )
        )
    return specs


def is_transient(exc: Exception) -> bool:
    """Errors worth retrying: lost connections, locks, timeouts."""
    if isinstance(exc, sa_exc.OperationalError):
        return True
    return isinstance(exc, sa_exc.DBAPIError) and bool(exc.connection_invalidated)


@dataclass
class BulkReport:
    created: List[int] = field(default_factory=list)
    rejected: List[Tuple[str, str]] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)


class BulkTaskLoader:
    """Create many tasks, one session per attempt."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        collaborators_factory: Optional[Callable[[Session], Collaborators]] = None,
        max_retries: Optional[int] = None,
        base_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_factory = session_factory
        self.collaborators_factory = collaborators_factory
        self.max_retries = max_retries or settings.bulk_max_retries
        self.base_seconds = (
            settings.bulk_retry_base_seconds if base_seconds is None else base_seconds
        )
        self.sleep = sleep

    def _create_once(self, spec: TaskCreate) -> int:
        db = self.session_factory()
        try:
            collaborators = (
                self.collaborators_factory(db) if self.collaborators_factory else None
            )
            return TaskScheduler(db, collaborators).create_task(spec).id
        finally:
            db.close()

    def create_many(self, specs: Sequence[TaskCreate]) -> BulkReport:
        report = BulkReport()
        for spec in specs:
            last_exc: Optional[Exception] = None
            for attempt in range(self.max_retries):
                try:
                    report.created.append(self._create_once(spec))
                    last_exc = None
                    break
                except SealTrackError as exc:
                    # domain rejection; retrying cannot help
                    report.rejected.append((spec.pack_code, exc.message))
                    last_exc = None
                    break
                except sa_exc.DBAPIError as exc:
                    if not is_transient(exc):
                        last_exc = exc
                        break
                    last_exc = exc
                    if attempt + 1 == self.max_retries:
                        break
                    backoff = self.base_seconds * (2 ** attempt)
                    logger.warning(
                        "Transient database error, retrying",
                        extra={"pack_code": spec.pack_code, "attempt": attempt + 1,
                               "backoff": backoff, "error": str(exc.orig)},
                    )
                    self.sleep(backoff)
            if last_exc is not None:
                logger.error(
                    "Bulk task creation failed",
                    extra={"pack_code": spec.pack_code, "error": str(last_exc)},
                )
                report.failed.append((spec.pack_code, str(last_exc)))

        logger.info(
            "Bulk load finished",
            extra={"created_count": len(report.created),
                   "rejected_count": len(report.rejected),
                   "failed_count": len(report.failed)},
        )
        return report
