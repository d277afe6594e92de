"""Data models for daygrid."""

from daygrid.models.task import ScheduledTask, TaskRecord, TaskPatch, TaskState, is_temporary_id
from daygrid.models.slot import RenameEntry, SlotState
from daygrid.models.notification import Notification, NotificationLevel
from daygrid.models.identity import Identity

__all__ = [
    "ScheduledTask",
    "TaskRecord",
    "TaskPatch",
    "TaskState",
    "is_temporary_id",
    "RenameEntry",
    "SlotState",
    "Notification",
    "NotificationLevel",
    "Identity",
]
