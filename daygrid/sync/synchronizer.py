"""Keeps every view of one owner consistent.

Each mounted view gets a `ViewLink`. The link

- publishes the view's task and slot changes on the tab's `EventBus`
  (synchronous, so other views in the tab see them immediately),
- writes the owner's durable snapshot after every change so other tabs and
  later page loads can hydrate from it,
- applies messages and snapshots coming from elsewhere to its own view
  without echoing them back.

Mount handshake: a mounting view hydrates from the durable snapshot, then
publishes `ViewMounted`; every hydrated view answers with a `BulkSync`
addressed to it.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional

from daygrid.engine.slot_registry import SlotRegistry
from daygrid.engine.task_store import ChangeKind, StoreChange, TaskStore
from daygrid.models.slot import RenameEntry
from daygrid.sync.bus import EventBus
from daygrid.sync.events import (
    BulkSync,
    SlotRenamed,
    SlotsUpdated,
    SyncEvent,
    TaskDeleted,
    TaskUpserted,
    ViewKind,
    ViewMounted,
)
from daygrid.sync.snapshot_store import Snapshot, SnapshotStore

logger = logging.getLogger(__name__)


class CrossViewSynchronizer:
    """Shared plumbing for all views of one owner in one tab."""

    def __init__(self, owner_id: str, bus: EventBus = None, snapshots: Optional[SnapshotStore] = None):
        self.owner_id = owner_id
        self.bus = bus or EventBus()
        self.snapshots = snapshots
        self.links: Dict[str, "ViewLink"] = {}

    def link(self, view_id: str, kind: ViewKind, tasks: TaskStore, slots: SlotRegistry) -> "ViewLink":
        """Create (but do not attach) the link for a view."""
        return ViewLink(self, view_id, kind, tasks, slots)

    def poll_snapshot(self) -> bool:
        """Check once for snapshot changes from other tabs."""
        if self.snapshots is None:
            return False
        return self.snapshots.poll()


class ViewLink:
    """Connection between one view and the rest of the owner's views."""

    def __init__(self, sync: CrossViewSynchronizer, view_id: str, kind: ViewKind, tasks: TaskStore, slots: SlotRegistry):
        self.sync = sync
        self.view_id = view_id
        self.kind = ViewKind(kind)
        self.tasks = tasks
        self.slots = slots
        self.hydrated = False
        self.attached = False
        self._applying_remote = False
        self._awaiting_bulk = False
        self._unsubscribers: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Lifecycle

    def attach(self) -> bool:
        """Mount the view. Returns True if it was hydrated without the network."""
        if self.attached:
            return self.hydrated
        self.attached = True
        self.sync.links[self.view_id] = self

        snapshots = self.sync.snapshots
        if snapshots is not None:
            snapshot = snapshots.load()
            if snapshot is not None:
                self.apply_snapshot(snapshot)
            self._unsubscribers.append(snapshots.subscribe(self.apply_snapshot))

        self.tasks.subscribe(self._on_store_change)
        self._unsubscribers.append(lambda: self.tasks.unsubscribe(self._on_store_change))
        self._unsubscribers.append(self.sync.bus.subscribe(self._on_event))

        self._awaiting_bulk = True
        self.sync.bus.publish(ViewMounted(origin=self.view_id, view_kind=self.kind))
        self._awaiting_bulk = False
        logger.debug(f"Mounted {self.kind.value} view {self.view_id} (hydrated={self.hydrated})")
        return self.hydrated

    def detach(self) -> None:
        """Unmount the view.

        Reconciliation still in flight keeps reporting to the other views, so
        they learn the server id of a task created here.
        """
        if not self.attached:
            return
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        if self.tasks.busy:
            self.tasks.subscribe(self._on_store_change)
        self.sync.links.pop(self.view_id, None)
        self.tasks.close()
        self.attached = False

    # ------------------------------------------------------------------
    # Outbound

    def _on_store_change(self, change: StoreChange) -> None:
        if not self.attached:
            self._relay(change)
            return
        if self._applying_remote:
            return
        if change.kind == ChangeKind.UPSERTED:
            self._publish(TaskUpserted(origin=self.view_id, task=change.task))
        elif change.kind == ChangeKind.DELETED:
            self._publish(TaskDeleted(origin=self.view_id, task=change.task))
        else:
            self.hydrated = True
            self._publish(self._bulk(target=None))
        self.persist()

    def _relay(self, change: StoreChange) -> None:
        """Forward a late reconciliation result from an unmounted view."""
        if change.kind == ChangeKind.UPSERTED:
            self.sync.bus.publish(TaskUpserted(origin=self.view_id, task=change.task))
        elif change.kind == ChangeKind.DELETED:
            self.sync.bus.publish(TaskDeleted(origin=self.view_id, task=change.task))
        else:
            return
        live = next(iter(self.sync.links.values()), None)
        if live is not None:
            live.persist()

    def slots_changed(self) -> None:
        """Broadcast the registry after add/remove/reset."""
        self._publish(SlotsUpdated(origin=self.view_id, labels=self.slots.labels))
        self.persist()

    def slot_renamed(self, entry: RenameEntry) -> None:
        """Broadcast a rename (tasks were already moved locally)."""
        self._publish(SlotRenamed(origin=self.view_id, rename=entry))
        self.persist(last_rename=entry)

    def persist(self, last_rename: RenameEntry = None) -> None:
        """Write the owner's durable snapshot from this view's state."""
        snapshots = self.sync.snapshots
        if snapshots is None or not self.attached:
            return
        try:
            snapshots.save(self.tasks.snapshot(), self.slots.state(), last_rename)
        except OSError as e:
            logger.error(f"Snapshot not saved for view {self.view_id}: {type(e).__name__}: {str(e)}")

    def _publish(self, event: SyncEvent) -> None:
        if self.attached:
            self.sync.bus.publish(event)

    def _bulk(self, target: Optional[str]) -> BulkSync:
        return BulkSync(
            origin=self.view_id,
            target=target,
            tasks=self.tasks.snapshot(),
            slots=self.slots.state(),
        )

    # ------------------------------------------------------------------
    # Inbound

    @contextmanager
    def _remote(self):
        self._applying_remote = True
        try:
            yield
        finally:
            self._applying_remote = False

    def _on_event(self, event: SyncEvent) -> None:
        if event.origin == self.view_id:
            return
        with self._remote():
            if isinstance(event, TaskUpserted):
                self.tasks.apply_upsert(event.task)
            elif isinstance(event, TaskDeleted):
                self.tasks.apply_delete(event.task)
            elif isinstance(event, SlotsUpdated):
                self.slots.replace(event.labels)
            elif isinstance(event, SlotRenamed):
                self.slots.apply_rename(event.rename.from_label, event.rename.to_label, event.rename.at)
            elif isinstance(event, ViewMounted):
                if self.hydrated:
                    self.sync.bus.publish(self._bulk(target=event.origin))
            elif isinstance(event, BulkSync):
                self._apply_bulk(event)

    def _apply_bulk(self, event: BulkSync) -> None:
        if event.target is not None and event.target != self.view_id:
            return
        if event.target == self.view_id and not self._awaiting_bulk:
            return
        self.slots.replace(event.slots.labels, event.slots.history)
        self.tasks.replace_all(event.tasks)
        self.hydrated = True
        self._awaiting_bulk = False
        logger.debug(f"View {self.view_id} hydrated from {event.origin} ({len(event.tasks)} tasks)")

    def apply_snapshot(self, snapshot: Snapshot) -> None:
        """Adopt a snapshot written by another tab (or a previous page load)."""
        with self._remote():
            self.slots.replace(snapshot.slots.labels, snapshot.slots.history)
            self.tasks.replace_all(snapshot.tasks)
            if snapshot.last_rename is not None:
                rename = snapshot.last_rename
                self.slots.apply_rename(rename.from_label, rename.to_label, rename.at)
        self.hydrated = True
