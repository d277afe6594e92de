"""Scheduled task data model for daygrid."""

from datetime import date
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


TEMP_ID_PREFIX = "tmp-"


class TaskState(str, Enum):
    """Client-visible lifecycle state of a scheduled task."""
    DRAFT = "draft"  # Composed locally, never sent to the server
    PENDING = "pending"  # Optimistic, reconciliation in flight
    CONFIRMED = "confirmed"  # Server id assigned
    DELETING = "deleting"  # Delete in flight
    GONE = "gone"  # Removed from all views


class ScheduledTask(BaseModel):
    """A task placed in one slot on one calendar day."""

    id: str = Field(..., description="Server id, or a temporary id prefixed 'tmp-' pending confirmation")
    owner_id: str = Field(..., description="User scope supplied by the identity provider")
    day: date = Field(..., description="Calendar day (day granularity only)")
    slot: str = Field(..., description="Canonical slot label")
    description: str = Field("", description="Free text task description")
    completed: bool = Field(False, description="Whether the task is done")
    deleted: bool = Field(False, description="Soft-delete marker")
    state: TaskState = Field(TaskState.DRAFT, description="Client-side lifecycle state (never sent to the server)")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True

    @property
    def is_temporary(self) -> bool:
        return is_temporary_id(self.id)

    @property
    def is_active(self) -> bool:
        return not self.deleted and self.state != TaskState.GONE.value


class TaskRecord(BaseModel):
    """Task as returned by the persistence service."""

    id: str
    day: date
    slot: str
    description: str = ""
    completed: bool = False


class TaskPatch(BaseModel):
    """Partial update of a task (only the fields that are set are sent)."""

    completed: Optional[bool] = None
    slot: Optional[str] = None
    description: Optional[str] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


def is_temporary_id(task_id: Optional[str]) -> bool:
    """Check whether an id was generated locally and is awaiting a server id."""
    return bool(task_id) and task_id.startswith(TEMP_ID_PREFIX)
