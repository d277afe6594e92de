"""Task lifecycle state machine for daygrid.

Every optimistic mutation moves a task through an explicit transition, and
every failure path is a transition too (no ad-hoc reverts at call sites).

    DRAFT -> PENDING -> CONFIRMED -> DELETING -> GONE
"""

from typing import Dict, FrozenSet

from daygrid.errors import InvalidTransition
from daygrid.models.task import ScheduledTask, TaskState


class TaskEvent:
    """Names of lifecycle triggers."""
    SUBMIT = "submit"  # create or update sent to the server
    CONFIRM = "confirm"  # server accepted
    REJECT = "reject"  # server refused or unreachable
    DELETE = "delete"  # delete sent to the server
    DELETE_CONFIRMED = "delete_confirmed"
    DELETE_FAILED = "delete_failed"
    DISCARD = "discard"  # dropped locally (failed create, record gone server side)


# (current state, event) -> next state
#
# A rejected update returns to CONFIRMED, not DRAFT: the reverted fields are
# the last values the server accepted, so the task is still persisted.
TRANSITIONS: Dict[tuple, TaskState] = {
    (TaskState.DRAFT, TaskEvent.SUBMIT): TaskState.PENDING,
    (TaskState.DRAFT, TaskEvent.CONFIRM): TaskState.CONFIRMED,  # bulk save
    (TaskState.DRAFT, TaskEvent.DISCARD): TaskState.GONE,
    (TaskState.DRAFT, TaskEvent.DELETE_CONFIRMED): TaskState.GONE,  # never persisted
    (TaskState.PENDING, TaskEvent.SUBMIT): TaskState.PENDING,
    (TaskState.PENDING, TaskEvent.CONFIRM): TaskState.CONFIRMED,
    (TaskState.PENDING, TaskEvent.REJECT): TaskState.CONFIRMED,  # update revert
    (TaskState.PENDING, TaskEvent.DISCARD): TaskState.GONE,  # create revert
    (TaskState.PENDING, TaskEvent.DELETE): TaskState.DELETING,
    (TaskState.CONFIRMED, TaskEvent.SUBMIT): TaskState.PENDING,
    (TaskState.CONFIRMED, TaskEvent.CONFIRM): TaskState.CONFIRMED,
    (TaskState.CONFIRMED, TaskEvent.REJECT): TaskState.CONFIRMED,
    (TaskState.CONFIRMED, TaskEvent.DELETE): TaskState.DELETING,
    (TaskState.CONFIRMED, TaskEvent.DISCARD): TaskState.GONE,
    (TaskState.DELETING, TaskEvent.DELETE_CONFIRMED): TaskState.GONE,
    (TaskState.DELETING, TaskEvent.DELETE_FAILED): TaskState.CONFIRMED,
    (TaskState.DELETING, TaskEvent.DISCARD): TaskState.GONE,
}

VISIBLE_STATES: FrozenSet[TaskState] = frozenset(
    {TaskState.DRAFT, TaskState.PENDING, TaskState.CONFIRMED}
)


def next_state(current, event: str) -> TaskState:
    """Look up the state reached from `current` on `event`.

    Raises:
        InvalidTransition: If the pair is not in the transition table
    """
    current = TaskState(current)
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransition(current.value, event) from None


def transition(task: ScheduledTask, event: str) -> ScheduledTask:
    """Return a copy of `task` moved along `event`."""
    target = next_state(task.state, event)
    return task.model_copy(update={"state": target.value})


def is_visible(task: ScheduledTask) -> bool:
    """Whether a task should be shown in a view."""
    return not task.deleted and TaskState(task.state) in VISIBLE_STATES
