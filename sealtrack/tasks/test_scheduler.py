"""Unit tests for task scheduling."""
from datetime import timedelta

import pytest
from pydantic import ValidationError as SchemaError

from conftest import DESTINATION, SOURCE, at
from sealtrack.errors import (
    DuplicatePackCodeError,
    ReferenceNotFoundError,
    ValidationError,
)
from sealtrack.geo import Coordinate
from sealtrack.schemas import ShiftType, StageSet, TaskStatus
from sealtrack.tasks.schemas import TaskCreate
from sealtrack.tasks.service import (
    TaskScheduler,
    derive_expected_travel_time,
    derive_shift_type,
)


class TestTaskSchemas:
    """Test cases for task schemas."""

    def test_pack_code_normalized(self, task_data):
        data = TaskCreate(**task_data(pack_code="  pk-2026-nag-01 "))
        assert data.pack_code == "PK-2026-NAG-01"

    def test_pack_code_too_short(self, task_data):
        with pytest.raises(SchemaError):
            TaskCreate(**task_data(pack_code="P"))

    def test_latitude_range(self, task_data):
        with pytest.raises(SchemaError):
            TaskCreate(**task_data(source_latitude=95.0))


class TestDerivedFields:

    def test_expected_travel_time_defaults_without_coordinates(self):
        assert derive_expected_travel_time(None, Coordinate(*DESTINATION)) == 30

    def test_expected_travel_time_never_below_floor(self):
        # ~650 m apart
        assert derive_expected_travel_time(Coordinate(*SOURCE), Coordinate(*DESTINATION)) == 30

    def test_expected_travel_time_from_distance(self):
        # Guwahati -> Nagaon is roughly 97 km great-circle; about 195 min at 30 km/h
        minutes = derive_expected_travel_time(
            Coordinate(26.1445, 91.7362), Coordinate(26.3480, 92.6840)
        )
        assert 185 <= minutes <= 205

    def test_shift_type(self):
        assert derive_shift_type(at(9), at(13)) is ShiftType.SINGLE
        assert derive_shift_type(at(9), at(15)) is ShiftType.SINGLE
        assert derive_shift_type(at(9), at(17)) is ShiftType.DOUBLE


class TestTaskScheduler:
    """Test cases for TaskScheduler."""

    def test_create_task_pending_with_defaults(self, make_task, audit, notifier):
        task = make_task(expected_travel_time=None, geofence_radius=None)

        assert task.id is not None
        assert task.status == TaskStatus.PENDING.value
        assert task.is_active is True
        assert task.stage_set is None
        assert task.geofence_radius == 100
        assert task.expected_travel_time == 30
        assert task.shift_type == ShiftType.SINGLE.value
        assert audit.actions() == ["TASK_CREATED", "TASK_ASSIGNED"]
        notifier.task_assigned.assert_called_once_with(task)

    def test_create_task_declared_legacy_chain(self, make_task):
        task = make_task(stage_set=StageSet.LEGACY_THREE_STAGE)
        assert task.stage_set == "LEGACY_THREE_STAGE"

    def test_end_before_start(self, make_task):
        with pytest.raises(ValidationError):
            make_task(start_time=at(13), end_time=at(9))

    def test_empty_window(self, make_task):
        with pytest.raises(ValidationError):
            make_task(start_time=at(9), end_time=at(9))

    @pytest.mark.parametrize("radius", [5, 1001])
    def test_radius_bounds(self, make_task, radius):
        with pytest.raises(ValidationError):
            make_task(geofence_radius=radius)

    def test_half_coordinate_pair(self, make_task):
        with pytest.raises(ValidationError):
            make_task(source_longitude=None)

    def test_duplicate_pack_code(self, make_task):
        make_task(pack_code="PK-DUP")
        with pytest.raises(DuplicatePackCodeError):
            make_task(pack_code="pk-dup")

    def test_unknown_agent(self, db, collaborators, task_data):
        with pytest.raises(ReferenceNotFoundError):
            TaskScheduler(db, collaborators).create_task(
                TaskCreate(**task_data(assigned_user_id="ghost"))
            )

    def test_inactive_agent(self, db, collaborators, make_agent, task_data):
        make_agent("retired", is_active=False)
        with pytest.raises(ValidationError):
            TaskScheduler(db, collaborators).create_task(
                TaskCreate(**task_data(assigned_user_id="retired"))
            )

    def test_get_task_missing(self, db, collaborators):
        with pytest.raises(ReferenceNotFoundError):
            TaskScheduler(db, collaborators).get_task(999)

    def test_get_tasks_filters_and_pagination(self, db, collaborators, make_task, make_agent):
        make_agent("agent-2")
        first = make_task()
        second = make_task(assigned_user_id="agent-2")
        third = make_task(start_time=at(9) + timedelta(days=1), end_time=at(13, day=3))

        service = TaskScheduler(db, collaborators)
        tasks, total = service.get_tasks()
        assert total == 3
        assert [t.id for t in tasks] == [third.id, second.id, first.id]

        tasks, total = service.get_tasks(assigned_user_id="agent-2")
        assert (total, [t.id for t in tasks]) == (1, [second.id])

        tasks, total = service.get_tasks(limit=1, offset=1)
        assert total == 3
        assert [t.id for t in tasks] == [second.id]

        tasks, _ = service.get_tasks(status=TaskStatus.COMPLETED)
        assert tasks == []

    def test_deactivate_is_soft(self, db, collaborators, make_task, audit):
        task = make_task()
        service = TaskScheduler(db, collaborators)

        service.deactivate_task(task.id)

        assert service.get_task(task.id).is_active is False
        tasks, total = service.get_tasks()
        assert total == 0
        _, total = service.get_tasks(include_inactive=True)
        assert total == 1
        assert audit.actions()[-1] == "TASK_DEACTIVATED"

    def test_get_task_by_pack_code(self, db, collaborators, make_task):
        task = make_task(pack_code="PK-LOOKUP")
        found = TaskScheduler(db, collaborators).get_task_by_pack_code(" pk-lookup")
        assert found.id == task.id
