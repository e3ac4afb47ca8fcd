from fastapi import APIRouter
from starlette.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST, Counter

router = APIRouter()

# incremented by the services, not at import time
CUSTODY_EVENTS = Counter(
    "custody_events_total", "Custody events accepted", ["event_type"]
)
CUSTODY_DUPLICATES = Counter(
    "custody_duplicates_total", "Custody events rejected as duplicates"
)
INTEGRITY_FAILURES = Counter(
    "evidence_integrity_failures_total", "Evidence hash mismatches", ["kind"]
)
ATTENDANCE_RECORDS = Counter(
    "attendance_records_total", "Attendance records stored", ["within_geofence"]
)
STATUS_TRANSITIONS = Counter(
    "task_status_transitions_total", "Task status transitions", ["to_status"]
)


@router.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
