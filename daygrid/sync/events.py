"""Typed messages exchanged between views in one tab."""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from daygrid.models.slot import RenameEntry, SlotState
from daygrid.models.task import ScheduledTask


class ViewKind(str, Enum):
    """Which view published a message."""
    DAY = "day"
    WEEK = "week"


class SyncEvent(BaseModel):
    """Base for every bus message."""

    origin: str = Field(..., description="Id of the view that published the message")


class TaskUpserted(SyncEvent):
    kind: Literal["task-upserted"] = "task-upserted"
    task: ScheduledTask


class TaskDeleted(SyncEvent):
    kind: Literal["task-deleted"] = "task-deleted"
    task: ScheduledTask


class SlotsUpdated(SyncEvent):
    kind: Literal["slots-updated"] = "slots-updated"
    labels: List[str]


class SlotRenamed(SyncEvent):
    kind: Literal["slot-renamed"] = "slot-renamed"
    rename: RenameEntry


class BulkSync(SyncEvent):
    """Full state of one view, sent in answer to ViewMounted."""
    kind: Literal["bulk-sync"] = "bulk-sync"
    target: Optional[str] = Field(None, description="View the snapshot is meant for (None = everyone)")
    tasks: List[ScheduledTask] = Field(default_factory=list)
    slots: SlotState = Field(default_factory=SlotState)


class ViewMounted(SyncEvent):
    kind: Literal["view-mounted"] = "view-mounted"
    view_kind: ViewKind

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


AnySyncEvent = Annotated[
    Union[TaskUpserted, TaskDeleted, SlotsUpdated, SlotRenamed, BulkSync, ViewMounted],
    Field(discriminator="kind"),
]
