"""Cross-view synchronization for daygrid."""

from daygrid.sync.bus import EventBus
from daygrid.sync.events import (
    BulkSync,
    SlotRenamed,
    SlotsUpdated,
    TaskDeleted,
    TaskUpserted,
    ViewKind,
    ViewMounted,
)
from daygrid.sync.snapshot_store import Snapshot, SnapshotStore
from daygrid.sync.synchronizer import CrossViewSynchronizer, ViewLink

__all__ = [
    "EventBus",
    "BulkSync",
    "SlotRenamed",
    "SlotsUpdated",
    "TaskDeleted",
    "TaskUpserted",
    "ViewKind",
    "ViewMounted",
    "Snapshot",
    "SnapshotStore",
    "CrossViewSynchronizer",
    "ViewLink",
]
