"""Scheduling state engine for daygrid."""

from daygrid.engine.slot_parser import parse_start, sort_slots, split_legacy_description
from daygrid.engine.slot_registry import SlotRegistry, RenameHistory
from daygrid.engine.task_store import TaskStore, StoreChange, ChangeKind, make_key
from daygrid.engine.lifecycle import TaskEvent, transition

__all__ = [
    "parse_start",
    "sort_slots",
    "split_legacy_description",
    "SlotRegistry",
    "RenameHistory",
    "TaskStore",
    "StoreChange",
    "ChangeKind",
    "make_key",
    "TaskEvent",
    "transition",
]
