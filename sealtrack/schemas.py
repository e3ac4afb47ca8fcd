"""Shared enumerations."""
from enum import Enum


class TaskStatus(str, Enum):
    """Custody task status."""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    SUSPICIOUS = "SUSPICIOUS"


class EventType(str, Enum):
    """Custody event types (five-stage chain plus legacy three-stage values)."""
    PICKUP = "PICKUP"
    ARRIVAL = "ARRIVAL"
    SEAL_OPEN = "SEAL_OPEN"
    SEAL_CLOSE = "SEAL_CLOSE"
    SUBMISSION = "SUBMISSION"
    # legacy
    TRANSIT = "TRANSIT"
    FINAL = "FINAL"


class StageSet(str, Enum):
    """Which event enumeration a task's ledger follows."""
    FIVE_STAGE = "FIVE_STAGE"
    LEGACY_THREE_STAGE = "LEGACY_THREE_STAGE"


class LocationType(str, Enum):
    """Attendance checkpoint kind."""
    PICKUP = "PICKUP"
    DESTINATION = "DESTINATION"


class ShiftType(str, Enum):
    SINGLE = "SINGLE"
    DOUBLE = "DOUBLE"


class ShiftSession(str, Enum):
    MORNING = "MORNING"
    AFTERNOON = "AFTERNOON"
