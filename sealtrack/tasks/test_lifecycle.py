"""Tests for the task status state machine and anomaly rules."""
from datetime import timedelta

import pytest
from freezegun import freeze_time

from conftest import SOURCE, at
from sealtrack.clock import as_utc
from sealtrack.errors import TaskClosedError, ValidationError
from sealtrack.hooks import PostCommitHooks
from sealtrack.schemas import EventType, ShiftSession, ShiftType, StageSet, TaskStatus
from sealtrack.tasks.lifecycle import (
    TaskLifecycle,
    in_window,
    travel_time_exceeded,
)
from sealtrack.tasks.models import Task

FIVE = [
    EventType.PICKUP,
    EventType.ARRIVAL,
    EventType.SEAL_OPEN,
    EventType.SEAL_CLOSE,
    EventType.SUBMISSION,
]


@pytest.fixture
def lifecycle(db, notifier, audit):
    return TaskLifecycle(db, PostCommitHooks(), notifier, audit)


def history_of(lifecycle, task):
    return [(h.from_status, h.to_status, h.reason) for h in lifecycle.get_history(task.id)]


class TestRuleHelpers:

    def test_window_is_half_open(self):
        assert in_window(at(9), at(9), at(13)) is True
        assert in_window(at(12, 59), at(9), at(13)) is True
        assert in_window(at(13), at(9), at(13)) is False
        assert in_window(at(8, 59), at(9), at(13)) is False

    def test_window_accepts_naive_utc(self):
        assert in_window(at(10).replace(tzinfo=None), at(9), at(13)) is True

    def test_travel_time_boundary(self):
        # expected 60 min, tolerance 0.5 -> 90 min allowed
        assert travel_time_exceeded(at(9), at(10, 30), 60, 0.5) is False
        assert travel_time_exceeded(at(9), at(10, 31), 60, 0.5) is True

    def test_travel_time_zero_tolerance(self):
        assert travel_time_exceeded(at(9), at(10, 1), 60, 0.0) is True


class TestScenarios:
    """End-to-end ledger scenarios."""

    def test_in_order_within_window_completes(self, make_task, submit, lifecycle):
        task = make_task()
        times = [at(9, 15), at(10), at(10, 30), at(11), at(11, 30)]
        for event_type, when in zip(FIVE, times):
            coords = SOURCE if event_type is EventType.PICKUP else (26.35, 92.69)
            submit(task, event_type, when, coordinates=coords)

        assert lifecycle.get_status(task.id) is TaskStatus.COMPLETED
        assert task.stage_set == StageSet.FIVE_STAGE.value
        assert history_of(lifecycle, task) == [
            ("PENDING", "IN_PROGRESS", "first_event"),
            ("IN_PROGRESS", "COMPLETED", "all_stages_recorded"),
        ]

    def test_pickup_before_window_is_flagged_and_stored(
        self, make_task, submit, lifecycle, notifier
    ):
        task = make_task()
        event = submit(task, EventType.PICKUP, at(8), coordinates=SOURCE)

        assert event.id is not None
        assert lifecycle.get_status(task.id) is TaskStatus.SUSPICIOUS
        assert history_of(lifecycle, task)[-1] == (
            "IN_PROGRESS", "SUSPICIOUS", "time_window_violation"
        )
        notifier.task_flagged.assert_called_once_with(task, "time_window_violation")

    def test_arrival_before_pickup_is_flagged_and_stays_flagged(
        self, make_task, submit, lifecycle
    ):
        task = make_task()
        submit(task, EventType.ARRIVAL, at(9, 30))
        assert lifecycle.get_status(task.id) is TaskStatus.SUSPICIOUS

        pickup = submit(task, EventType.PICKUP, at(9, 40), coordinates=SOURCE)
        assert pickup.id is not None
        for event_type, when in zip(FIVE[2:], [at(10), at(10, 30), at(11)]):
            submit(task, event_type, when)

        # complete ledger, but never un-flagged
        assert lifecycle.get_status(task.id) is TaskStatus.SUSPICIOUS
        assert [h[2] for h in history_of(lifecycle, task)] == [
            "first_event", "order_violation"
        ]

    def test_violations_are_joined(self, make_task, submit, lifecycle):
        task = make_task()
        submit(task, EventType.ARRIVAL, at(8, 30))
        assert history_of(lifecycle, task)[-1][2] == "order_violation,time_window_violation"


class TestStatusInvariants:

    def test_first_event_starts_task(self, make_task, submit, lifecycle):
        task = make_task()
        assert lifecycle.get_status(task.id) is TaskStatus.PENDING
        submit(task, EventType.PICKUP, at(9, 5), coordinates=SOURCE)
        assert lifecycle.get_status(task.id) is TaskStatus.IN_PROGRESS

    def test_completed_is_final(self, make_task, submit, lifecycle, audit):
        task = make_task()
        for i, event_type in enumerate(FIVE):
            submit(task, event_type, at(9, 10) + timedelta(minutes=20 * i))
        assert lifecycle.get_status(task.id) is TaskStatus.COMPLETED

        with pytest.raises(TaskClosedError):
            submit(task, EventType.TRANSIT, at(12))
        assert lifecycle.get_status(task.id) is TaskStatus.COMPLETED
        assert audit.actions()[-1] == "EVENT_REJECTED_TASK_LOCKED"

    def test_deactivated_task_rejects_events(self, db, collaborators, make_task, submit):
        from sealtrack.tasks.service import TaskScheduler

        task = make_task()
        TaskScheduler(db, collaborators).deactivate_task(task.id)
        with pytest.raises(TaskClosedError):
            submit(task, EventType.PICKUP, at(9, 5), coordinates=SOURCE)

    def test_travel_time_exceeded_raises_red_flag(self, make_task, submit, lifecycle, audit):
        task = make_task(expected_travel_time=60)
        submit(task, EventType.PICKUP, at(9, 5), coordinates=SOURCE)
        submit(task, EventType.ARRIVAL, at(10, 40))

        assert lifecycle.get_status(task.id) is TaskStatus.SUSPICIOUS
        assert history_of(lifecycle, task)[-1][2] == "travel_time_exceeded"
        assert "RED_FLAG_TRAVEL_TIME" in audit.actions()

    def test_travel_time_within_tolerance(self, make_task, submit, lifecycle):
        task = make_task(expected_travel_time=60)
        submit(task, EventType.PICKUP, at(9, 5), coordinates=SOURCE)
        submit(task, EventType.ARRIVAL, at(10, 35))
        assert lifecycle.get_status(task.id) is TaskStatus.IN_PROGRESS

    def test_tolerance_is_configurable(self, db, make_task, submit, notifier, audit):
        task = make_task(expected_travel_time=60)
        submit(task, EventType.PICKUP, at(9, 5), coordinates=SOURCE)
        submit(task, EventType.ARRIVAL, at(10, 35))

        strict = TaskLifecycle(db, PostCommitHooks(), notifier, audit, tolerance=0.0)
        assert strict.tolerance == 0.0
        assert travel_time_exceeded(at(9, 5), at(10, 35), 60, strict.tolerance) is True

    def test_notifier_failure_does_not_undo_transition(
        self, make_task, submit, notifier, session_factory
    ):
        notifier.task_flagged.side_effect = RuntimeError("push gateway down")
        task = make_task()

        submit(task, EventType.PICKUP, at(7), coordinates=SOURCE)

        fresh = session_factory()
        try:
            assert fresh.get(Task, task.id).status == TaskStatus.SUSPICIOUS.value
        finally:
            fresh.close()


class TestStageSets:

    def test_double_shift_afternoon_starts_at_exam_center(self, make_task, submit, lifecycle):
        task = make_task(shift_type=ShiftType.DOUBLE, shift_session=ShiftSession.AFTERNOON)
        assert lifecycle.allowed_event_types(task.id) == FIVE[2:]

        with pytest.raises(ValidationError):
            submit(task, EventType.PICKUP, at(9, 5), coordinates=SOURCE)

        for event_type, when in zip(FIVE[2:], [at(9, 10), at(10), at(11)]):
            submit(task, event_type, when)
        assert lifecycle.get_status(task.id) is TaskStatus.COMPLETED

    def test_declared_legacy_chain(self, make_task, submit, lifecycle):
        task = make_task(stage_set=StageSet.LEGACY_THREE_STAGE)
        with pytest.raises(ValidationError):
            submit(task, EventType.ARRIVAL, at(9, 10))

        submit(task, EventType.PICKUP, at(9, 5), coordinates=SOURCE)
        submit(task, EventType.TRANSIT, at(9, 50))
        submit(task, EventType.FINAL, at(10, 30))
        assert lifecycle.get_status(task.id) is TaskStatus.COMPLETED

    def test_legacy_travel_leg_ends_at_transit(self, make_task, submit, lifecycle):
        task = make_task(stage_set=StageSet.LEGACY_THREE_STAGE, expected_travel_time=30)
        submit(task, EventType.PICKUP, at(9, 5), coordinates=SOURCE)
        submit(task, EventType.TRANSIT, at(10, 5))
        assert history_of(lifecycle, task)[-1][2] == "travel_time_exceeded"

    def test_stage_set_fixed_by_first_event(self, make_task, submit):
        task = make_task()
        submit(task, EventType.PICKUP, at(9, 5), coordinates=SOURCE)
        with pytest.raises(ValidationError):
            submit(task, EventType.TRANSIT, at(9, 30))


class TestReadSide:

    def test_allowed_event_types_shrink(self, make_task, submit, lifecycle):
        task = make_task()
        assert lifecycle.allowed_event_types(task.id) == FIVE
        submit(task, EventType.PICKUP, at(9, 5), coordinates=SOURCE)
        submit(task, EventType.SEAL_OPEN, at(9, 30))
        assert lifecycle.allowed_event_types(task.id) == [
            EventType.ARRIVAL, EventType.SEAL_CLOSE, EventType.SUBMISSION
        ]

    def test_allowed_event_types_empty_when_completed(self, make_task, submit, lifecycle):
        task = make_task()
        for i, event_type in enumerate(FIVE):
            submit(task, event_type, at(9, 10) + timedelta(minutes=20 * i))
        assert lifecycle.allowed_event_types(task.id) == []

    def test_overview_lists_events_in_canonical_order(self, make_task, submit, lifecycle):
        task = make_task()
        submit(task, EventType.SEAL_OPEN, at(9, 20))
        submit(task, EventType.PICKUP, at(9, 30), coordinates=SOURCE)
        submit(task, EventType.ARRIVAL, at(9, 40))

        overview = lifecycle.get_overview(task.id)
        assert [e.event_type for e in overview["events"]] == ["PICKUP", "ARRIVAL", "SEAL_OPEN"]
        assert overview["task"].id == task.id
        assert overview["allowed_event_types"] == [EventType.SEAL_CLOSE, EventType.SUBMISSION]
        assert [h.to_status for h in overview["history"]] == ["IN_PROGRESS", "SUSPICIOUS"]

    def test_server_clock_is_authoritative(self, db, collaborators, make_task, evidence):
        from sealtrack.custody.service import CustodyEventStore

        task = make_task()
        with freeze_time("2026-03-02 09:45:00"):
            event = CustodyEventStore(db, collaborators).record(
                task.id, "PICKUP", SOURCE, evidence()
            )
        assert as_utc(event.server_timestamp) == at(9, 45)
        assert event.distance_from_target == pytest.approx(0.0, abs=0.01)
        assert event.is_within_geofence is True
