"""Canonical stage order for custody ledgers."""
from typing import Dict, List, Optional, Tuple

from sealtrack.errors import ValidationError
from sealtrack.schemas import EventType, ShiftSession, ShiftType, StageSet

# explicit order lookup; never rely on insertion or arrival order
CANONICAL_ORDER: Dict[StageSet, Tuple[EventType, ...]] = {
    StageSet.FIVE_STAGE: (
        EventType.PICKUP,
        EventType.ARRIVAL,
        EventType.SEAL_OPEN,
        EventType.SEAL_CLOSE,
        EventType.SUBMISSION,
    ),
    StageSet.LEGACY_THREE_STAGE: (
        EventType.PICKUP,
        EventType.TRANSIT,
        EventType.FINAL,
    ),
}

# the event that closes the pickup -> first checkpoint travel leg
TRAVEL_LEG_END: Dict[StageSet, EventType] = {
    StageSet.FIVE_STAGE: EventType.ARRIVAL,
    StageSet.LEGACY_THREE_STAGE: EventType.TRANSIT,
}

SOURCE = "source"
DESTINATION = "destination"

# which task coordinate a stage is checked against (None: untracked)
GEOFENCE_TARGET: Dict[EventType, Optional[str]] = {
    EventType.PICKUP: SOURCE,
    EventType.ARRIVAL: DESTINATION,
    EventType.SEAL_OPEN: DESTINATION,
    EventType.SEAL_CLOSE: DESTINATION,
    EventType.SUBMISSION: None,
    EventType.TRANSIT: None,
    EventType.FINAL: DESTINATION,
}


def stage_sets_for(event_type: EventType) -> List[StageSet]:
    """Stage sets whose enumeration contains this event type."""
    return [s for s, order in CANONICAL_ORDER.items() if event_type in order]


def resolve_stage_set(event_type: EventType) -> StageSet:
    """
    Pick a stage set from a task's first event.

    PICKUP belongs to both enumerations and resolves to the current
    five-stage chain.
    """
    candidates = stage_sets_for(event_type)
    if not candidates:
        raise ValidationError(f"Unknown event type {event_type!r}")
    if StageSet.FIVE_STAGE in candidates:
        return StageSet.FIVE_STAGE
    return candidates[0]


def required_stages(
    stage_set: StageSet, shift_type: ShiftType, shift_session: ShiftSession
) -> Tuple[EventType, ...]:
    """Stages a task must record to complete."""
    order = CANONICAL_ORDER[stage_set]
    if (
        stage_set is StageSet.FIVE_STAGE
        and shift_type is ShiftType.DOUBLE
        and shift_session is ShiftSession.AFTERNOON
    ):
        # afternoon session of a double shift starts at the exam center
        return order[2:]
    return order


def stage_index(stage_set: StageSet, event_type: EventType) -> int:
    return CANONICAL_ORDER[stage_set].index(event_type)


def predecessors(
    required: Tuple[EventType, ...], event_type: EventType
) -> Tuple[EventType, ...]:
    """Required stages that must exist before event_type."""
    return required[: required.index(event_type)]
