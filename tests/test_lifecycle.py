"""Tests for the task lifecycle state machine."""

from datetime import date

import pytest

from daygrid.engine.lifecycle import TaskEvent, is_visible, next_state, transition
from daygrid.errors import InvalidTransition
from daygrid.models.task import ScheduledTask, TaskState


def _task(state=TaskState.DRAFT, **overrides):
    data = {"id": "tmp-1", "owner_id": "owner-1", "day": date(2024, 1, 1), "slot": "Morning", "state": state}
    data.update(overrides)
    return ScheduledTask(**data)


class TestLifecycle:
    """Test allowed and rejected transitions."""

    def test_create_path(self):
        """Test DRAFT to PENDING to CONFIRMED."""
        task = transition(_task(), TaskEvent.SUBMIT)
        assert task.state == TaskState.PENDING.value
        task = transition(task, TaskEvent.CONFIRM)
        assert task.state == TaskState.CONFIRMED.value

    def test_failed_create_is_gone(self):
        """Test a discarded create is gone."""
        task = transition(_task(TaskState.PENDING), TaskEvent.DISCARD)
        assert task.state == TaskState.GONE.value
        assert is_visible(task) is False

    def test_failed_update_returns_to_confirmed(self):
        """Test a rejected update goes back to CONFIRMED."""
        assert next_state(TaskState.PENDING, TaskEvent.REJECT) == TaskState.CONFIRMED

    def test_delete_path(self):
        """Test CONFIRMED to DELETING to GONE."""
        task = transition(_task(TaskState.CONFIRMED), TaskEvent.DELETE)
        assert task.state == TaskState.DELETING.value
        assert is_visible(task) is False
        assert next_state(task.state, TaskEvent.DELETE_CONFIRMED) == TaskState.GONE
        assert next_state(task.state, TaskEvent.DELETE_FAILED) == TaskState.CONFIRMED

    def test_gone_is_terminal(self):
        """Test nothing leaves GONE."""
        for event in (TaskEvent.SUBMIT, TaskEvent.CONFIRM, TaskEvent.DELETE):
            with pytest.raises(InvalidTransition):
                next_state(TaskState.GONE, event)

    def test_draft_cannot_be_deleted_remotely(self):
        """Test a draft has no remote delete."""
        with pytest.raises(InvalidTransition):
            transition(_task(), TaskEvent.DELETE)

    def test_transition_copies(self):
        """Test transition returns a new task."""
        original = _task()
        transition(original, TaskEvent.SUBMIT)
        assert original.state == TaskState.DRAFT.value

    def test_deleted_flag_hides_task(self):
        """Test the deleted flag hides a task."""
        assert is_visible(_task(TaskState.CONFIRMED, deleted=True)) is False
