"""In-memory task store for daygrid.

Tasks are keyed by the composite key "<ISO day>|<slot>". Every user mutation
is applied locally first and then reconciled with the persistence service in
the background; the outcome of reconciliation is a lifecycle transition
(see `daygrid.engine.lifecycle`).

Mutating methods are synchronous. Reconciliation calls are scheduled on the
running asyncio loop, so a store with an adapter must be driven from inside
that loop. `flush()` waits for everything in flight.
"""

import asyncio
import logging
import uuid
from datetime import date
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, NamedTuple, Optional, Set, Tuple

from daygrid.engine.lifecycle import TaskEvent, is_visible, transition
from daygrid.errors import NotFound, ReconciliationFailed, SlotOccupied
from daygrid.models.constants import GRID_DESCRIPTION_MAX_LENGTH, KEY_SEPARATOR
from daygrid.models.task import (
    TEMP_ID_PREFIX,
    ScheduledTask,
    TaskPatch,
    TaskRecord,
    TaskState,
    is_temporary_id,
)

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    """What happened to the store."""
    UPSERTED = "upserted"
    DELETED = "deleted"
    RESET = "reset"  # many tasks replaced at once (refresh, bulk save)


class StoreChange(NamedTuple):
    kind: ChangeKind
    task: Optional[ScheduledTask] = None


def make_key(day: date, slot: str) -> str:
    """Composite key for a (day, slot) pair."""
    return f"{day.isoformat()}{KEY_SEPARATOR}{slot}"


def new_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4()}"


class TaskStore:
    """Per-owner map of scheduled tasks with optimistic reconciliation."""

    def __init__(self, owner_id: str, adapter=None, resolve_slot: Callable[[str], str] = None):
        """Initialize the store.

        Args:
            owner_id: User scope for every task in the store
            adapter: ReconciliationAdapter, or None for a local-only store
            resolve_slot: Maps a possibly stale slot label to its current form
        """
        self.owner_id = owner_id
        self.adapter = adapter
        self.resolve_slot = resolve_slot or (lambda label: label)
        self.closed = False

        self._tasks: Dict[str, ScheduledTask] = {}
        self._deleting: Dict[str, ScheduledTask] = {}
        self._creating_keys: Set[str] = set()
        self._pending_creates: Dict[str, "asyncio.Task"] = {}
        self._id_aliases: Dict[str, str] = {}
        self._inflight: Set["asyncio.Task"] = set()
        self._listeners: List[Callable[[StoreChange], None]] = []

    # ------------------------------------------------------------------
    # Queries

    def get(self, day: date, slot: str) -> Optional[ScheduledTask]:
        """Visible task at (day, slot), if any."""
        task = self._tasks.get(make_key(day, slot))
        if task is not None and is_visible(task):
            return task
        return None

    def get_by_id(self, task_id: str) -> Optional[ScheduledTask]:
        _, task = self._find(task_id)
        return task

    def list_for_day(self, day: date) -> List[ScheduledTask]:
        """All visible tasks on a day."""
        prefix = f"{day.isoformat()}{KEY_SEPARATOR}"
        return [t for k, t in self._tasks.items() if k.startswith(prefix) and is_visible(t)]

    def list_for_range(self, start: date, end: date) -> List[ScheduledTask]:
        """All visible tasks with start <= day <= end, ordered by day."""
        tasks = [t for t in self._tasks.values() if start <= t.day <= end and is_visible(t)]
        return sorted(tasks, key=lambda t: t.day)

    def all_tasks(self) -> List[ScheduledTask]:
        return [t for t in self._tasks.values() if is_visible(t)]

    def slot_in_use(self, slot: str) -> bool:
        return any(t.slot == slot for t in self.all_tasks())

    def progress(self, tasks: Iterable[ScheduledTask] = None) -> float:
        """Percentage of non-empty tasks that are completed."""
        tasks = [t for t in (self.all_tasks() if tasks is None else tasks) if t.description.strip()]
        if not tasks:
            return 0.0
        done = sum(1 for t in tasks if t.completed)
        return done / len(tasks) * 100

    # ------------------------------------------------------------------
    # Listeners

    def subscribe(self, listener: Callable[[StoreChange], None]) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[StoreChange], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, kind: ChangeKind, task: ScheduledTask = None) -> None:
        change = StoreChange(kind, task)
        for listener in list(self._listeners):
            listener(change)

    # ------------------------------------------------------------------
    # User mutations (optimistic)

    def create(self, day: date, slot: str, description: str) -> ScheduledTask:
        """Add a task to an empty slot and reconcile it with the server.

        Raises:
            SlotOccupied: If the slot already has a task or a create for it is in flight
        """
        key = make_key(day, slot)
        if key in self._creating_keys or self.get(day, slot) is not None:
            raise SlotOccupied(day, slot)

        task = ScheduledTask(
            id=new_temp_id(),
            owner_id=self.owner_id,
            day=day,
            slot=slot,
            description=description,
        )
        if self.adapter is None:
            self._put(task)
            return task

        task = transition(task, TaskEvent.SUBMIT)
        self._creating_keys.add(key)
        self._put(task)
        self._pending_creates[task.id] = self._spawn(self._reconcile_create(task))
        logger.debug(f"Optimistically created task {task.id} at {key}")
        return task

    def stage(self, day: date, slot: str, description: str) -> Optional[ScheduledTask]:
        """Write a grid cell locally; it is persisted later by `save_all`.

        Nothing is sent to the server here. Empty text clears the cell.
        Descriptions are cut to the grid limit.
        Returns the staged task, or None when the cell was cleared.
        """
        description = (description or "")[:GRID_DESCRIPTION_MAX_LENGTH]
        key = make_key(day, slot)
        existing = self.get(day, slot)
        if not description.strip():
            # The server drops it on the next save_all (range prune).
            if existing is not None:
                del self._tasks[key]
                self._emit(ChangeKind.DELETED, transition(existing, TaskEvent.DISCARD))
            return None
        if existing is not None:
            staged = existing.model_copy(update={"description": description})
            self._put(staged)
            return staged

        if key in self._creating_keys:
            raise SlotOccupied(day, slot)
        task = ScheduledTask(
            id=new_temp_id(),
            owner_id=self.owner_id,
            day=day,
            slot=slot,
            description=description,
        )
        self._put(task)
        return task

    def update(self, task_id: str, patch: TaskPatch) -> ScheduledTask:
        """Apply a patch locally and reconcile it with the server.

        Raises:
            NotFound: If the task is not in this store
            SlotOccupied: If the patch moves the task onto an occupied slot
            ReconciliationFailed: If the task is still being created by another view
        """
        key, current = self._find(task_id)
        if current is None:
            raise NotFound(f"Task {task_id} not found")

        changes = patch.changes()
        if "slot" in changes:
            changes["slot"] = self.resolve_slot(changes["slot"])
            occupant = self.get(current.day, changes["slot"])
            if occupant is not None and occupant.id != current.id:
                raise SlotOccupied(current.day, changes["slot"])
        if not changes:
            return current

        local_only = self.adapter is None or current.state == TaskState.DRAFT.value
        if self._awaiting_foreign_create(current):
            raise ReconciliationFailed("Task is still being saved")

        prior = current
        updated = current.model_copy(update=changes)
        if not local_only:
            updated = transition(updated, TaskEvent.SUBMIT)
        self._move(key, updated)

        if not local_only:
            self._spawn(self._reconcile_update(prior, updated, changes))
        return updated

    def toggle_completed(self, task_id: str) -> ScheduledTask:
        """Flip the completed flag (same revert-on-failure rules as update)."""
        _, current = self._find(task_id)
        if current is None:
            raise NotFound(f"Task {task_id} not found")
        return self.update(current.id, TaskPatch(completed=not current.completed))

    def delete(self, task_id: str) -> bool:
        """Soft-delete a task.

        Returns False when the task is unknown or a delete for it is already
        in flight (the second request is suppressed).

        Raises:
            ReconciliationFailed: If the task is still being created by another view
        """
        if self._delete_in_flight(task_id):
            logger.debug(f"Delete already in flight for task {task_id}")
            return False

        key, current = self._find(task_id)
        if current is None:
            return False
        if self._awaiting_foreign_create(current):
            raise ReconciliationFailed("Task is still being saved")

        del self._tasks[key]
        if self.adapter is None or current.state == TaskState.DRAFT.value:
            gone = transition(current, TaskEvent.DELETE_CONFIRMED).model_copy(update={"deleted": True})
            self._emit(ChangeKind.DELETED, gone)
            return True

        deleting = transition(current, TaskEvent.DELETE).model_copy(update={"deleted": True})
        self._deleting[deleting.id] = deleting
        self._emit(ChangeKind.DELETED, deleting)
        self._spawn(self._reconcile_delete(key, deleting))
        return True

    def remap_slot(self, old: str, new: str, persist: bool = True) -> List[ScheduledTask]:
        """Move every task at slot `old` to slot `new`.

        With `persist`, one best-effort update per moved task is sent; failures
        are logged and never reverted. A task that would land on an occupied
        key is dropped (and deleted server side with `persist`). Returns the
        moved tasks.
        """
        moved: List[ScheduledTask] = []
        for key, task in list(self._tasks.items()):
            if task.slot != old:
                continue
            target = make_key(task.day, new)
            occupant = self._tasks.get(target)
            if occupant is not None and occupant.id != task.id:
                logger.warning(f"Rename {old!r} -> {new!r} collides on {target}; keeping {occupant.id}")
                self._drop_collided(key, task, persist)
                continue
            updated = task.model_copy(update={"slot": new})
            self._move(key, updated)
            moved.append(updated)
            if persist and self.adapter is not None and task.state != TaskState.DRAFT.value:
                self._spawn(self._persist_rename(updated, new))
        return moved

    def _drop_collided(self, key: str, task: ScheduledTask, persist: bool) -> None:
        del self._tasks[key]
        if persist and self.adapter is not None and task.state != TaskState.DRAFT.value:
            deleting = transition(task, TaskEvent.DELETE).model_copy(update={"deleted": True})
            self._deleting[deleting.id] = deleting
            self._emit(ChangeKind.DELETED, deleting)
            self._spawn(self._reconcile_delete(key, deleting))
            return
        self._emit(ChangeKind.DELETED, transition(task, TaskEvent.DISCARD))

    # ------------------------------------------------------------------
    # Ingest (state learned from another view, a snapshot or the server)

    def apply_upsert(self, task: ScheduledTask) -> ScheduledTask:
        """Store a task produced elsewhere, without any network call.

        Tasks this store is deleting are not brought back.
        """
        task = task.model_copy(update={"slot": self.resolve_slot(task.slot)})
        if not is_visible(task):
            self.apply_delete(task)
            return task
        if self._delete_in_flight(task.id):
            return task
        key = make_key(task.day, task.slot)
        for other_key, other in list(self._tasks.items()):
            if other.id == task.id and other_key != key:
                del self._tasks[other_key]
        self._tasks[key] = task
        return task

    def apply_delete(self, task: ScheduledTask) -> None:
        """Forget a task deleted elsewhere."""
        key = make_key(task.day, self.resolve_slot(task.slot))
        current = self._tasks.get(key)
        if current is not None and current.id == task.id:
            del self._tasks[key]
            return
        found_key, _ = self._find(task.id)
        if found_key is not None:
            del self._tasks[found_key]

    def replace_all(self, tasks: Iterable[ScheduledTask]) -> None:
        """Replace the whole visible state (bulk sync, snapshot hydration)."""
        self._tasks = {}
        for task in tasks:
            self.apply_upsert(task)

    def ingest_records(self, records: Iterable[TaskRecord], start: date = None, end: date = None) -> None:
        """Load server records, keeping local work the server does not know yet.

        With a range, only tasks inside it are replaced.
        """
        def in_range(day: date) -> bool:
            return (start is None or day >= start) and (end is None or day <= end)

        kept = {
            k: t for k, t in self._tasks.items()
            if not in_range(t.day) or t.state in (TaskState.DRAFT.value, TaskState.PENDING.value)
        }
        self._tasks = kept
        for record in records:
            if self._delete_in_flight(record.id):
                continue
            task = self._from_record(record)
            key = make_key(task.day, task.slot)
            local = self._tasks.get(key)
            if local is not None and local.id != task.id and local.id in self._pending_creates:
                continue
            self._tasks[key] = task
        self._emit(ChangeKind.RESET)

    def snapshot(self) -> List[ScheduledTask]:
        """Every visible task (used for bulk sync and durable snapshots)."""
        return self.all_tasks()

    # ------------------------------------------------------------------
    # Server round trips

    async def refresh(self, start: date = None, end: date = None) -> bool:
        """Reload tasks from the server. Returns False on failure."""
        if self.adapter is None:
            return False
        try:
            records = await self.adapter.list(start, end)
        except ReconciliationFailed as e:
            logger.warning(f"Failed to refresh tasks for {self.owner_id}: {type(e).__name__}: {str(e)}")
            return False
        if self.closed:
            return False
        self.ingest_records(records, start, end)
        return True

    async def save_all(self, start: date, end: date, exclude_ids: Iterable[str] = ()) -> bool:
        """Bulk-save every task in [start, end] and reload the range.

        The server prunes records in the range that are absent from the
        payload (unless excluded), so the payload is the full range.
        """
        if self.adapter is None:
            return False
        await self.flush()
        tasks = self.list_for_range(start, end)
        entries = [
            {
                "id": None if t.is_temporary else t.id,
                "day": t.day,
                "slot": t.slot,
                "description": t.description,
                "completed": t.completed,
            }
            for t in tasks
        ]
        try:
            await self.adapter.bulk_save(entries, start, end, list(exclude_ids))
            records = await self.adapter.list(start, end)
        except ReconciliationFailed as e:
            logger.warning(f"Failed to bulk save {len(entries)} tasks: {type(e).__name__}: {str(e)}")
            return False
        if self.closed:
            return True

        saved_keys = {make_key(t.day, t.slot) for t in tasks}
        for key in saved_keys:
            task = self._tasks.get(key)
            if task is not None and task.state == TaskState.DRAFT.value:
                self._tasks[key] = transition(task, TaskEvent.CONFIRM)
        self.ingest_records(records, start, end)
        return True

    async def flush(self) -> None:
        """Wait until no reconciliation is in flight."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight))

    @property
    def busy(self) -> bool:
        """True while any reconciliation is in flight."""
        return bool(self._inflight)

    def close(self) -> None:
        """Stop loading server state into this store.

        Reconciliation already in flight still finishes and is reported to
        listeners; `refresh` and `save_all` no longer touch local state.
        """
        self.closed = True

    # ------------------------------------------------------------------
    # Reconciliation coroutines

    async def _reconcile_create(self, task: ScheduledTask) -> Optional[str]:
        key = make_key(task.day, task.slot)
        try:
            record = await self.adapter.create(task.day, task.slot, task.description)
        except ReconciliationFailed as e:
            logger.warning(f"Create of {task.id} failed, discarding: {type(e).__name__}: {str(e)}")
            current = self._tasks.get(key)
            if current is not None and current.id == task.id:
                del self._tasks[key]
                self._emit(ChangeKind.DELETED, transition(current, TaskEvent.DISCARD))
            return None
        finally:
            self._creating_keys.discard(key)
            self._pending_creates.pop(task.id, None)

        self._id_aliases[task.id] = record.id

        current_key, current = self._find(task.id)
        if current is None:
            # Deleted while the create was in flight; the delete follows up.
            return record.id

        update = {"id": record.id}
        if current.description == task.description and current.completed == task.completed:
            update.update(description=record.description, completed=record.completed)
        confirmed = current.model_copy(update=update)
        if current.state == TaskState.PENDING.value:
            confirmed = transition(confirmed, TaskEvent.CONFIRM)
        self._move(current_key, confirmed)
        logger.debug(f"Confirmed task {task.id} as {record.id}")
        return record.id

    async def _reconcile_update(self, prior: ScheduledTask, sent: ScheduledTask, changes: dict) -> None:
        server_id = await self._server_id(sent.id)
        if server_id is None:
            return
        try:
            await self.adapter.update(server_id, changes)
        except NotFound:
            logger.info(f"Task {server_id} is gone server side, removing locally")
            key, current = self._find(server_id)
            if current is not None:
                del self._tasks[key]
                self._emit(ChangeKind.DELETED, transition(current, TaskEvent.DISCARD))
            return
        except ReconciliationFailed as e:
            logger.warning(f"Update of {server_id} failed, reverting: {type(e).__name__}: {str(e)}")
            key, current = self._find(server_id)
            if current is None:
                return
            reverted = current.model_copy(update={field: getattr(prior, field) for field in changes})
            target = self._tasks.get(make_key(reverted.day, reverted.slot))
            if target is not None and target.id != current.id:
                reverted = reverted.model_copy(update={"slot": current.slot})
            self._move(key, transition(reverted, TaskEvent.REJECT))
            return

        key, current = self._find(server_id)
        if current is not None and current.state == TaskState.PENDING.value:
            self._move(key, transition(current, TaskEvent.CONFIRM))

    async def _reconcile_delete(self, key: str, task: ScheduledTask) -> None:
        server_id = await self._server_id(task.id)
        try:
            if server_id is not None:
                await self.adapter.delete(server_id)
        except NotFound:
            pass
        except ReconciliationFailed as e:
            self._deleting.pop(task.id, None)
            logger.warning(f"Delete of {task.id} failed, restoring: {type(e).__name__}: {str(e)}")
            restored = transition(task, TaskEvent.DELETE_FAILED).model_copy(
                update={"deleted": False, "id": server_id}
            )
            if key in self._tasks:
                logger.warning(f"Cannot restore {task.id}: {key} was reused")
                return
            self._tasks[key] = restored
            self._emit(ChangeKind.UPSERTED, restored)
            return
        self._deleting.pop(task.id, None)
        logger.debug(f"Deleted task {server_id or task.id}")

    async def _persist_rename(self, task: ScheduledTask, new_slot: str) -> None:
        server_id = await self._server_id(task.id)
        if server_id is None:
            return
        try:
            await self.adapter.update(server_id, {"slot": new_slot}, quiet=True)
        except ReconciliationFailed as e:
            logger.error(f"Failed to persist slot rename for task {server_id}: {type(e).__name__}: {str(e)}")

    async def _server_id(self, task_id: str) -> Optional[str]:
        """Server id for a task, waiting for its create if one is in flight."""
        if not is_temporary_id(task_id):
            return task_id
        if task_id in self._id_aliases:
            return self._id_aliases[task_id]
        pending = self._pending_creates.get(task_id)
        if pending is None:
            return None
        return await pending

    # ------------------------------------------------------------------
    # Helpers

    def _spawn(self, coro: Awaitable) -> "asyncio.Task":
        task = asyncio.get_running_loop().create_task(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    def _awaiting_foreign_create(self, task: ScheduledTask) -> bool:
        """A temp id whose create runs in another view; its server id is unknown here."""
        if self.adapter is None or task.state == TaskState.DRAFT.value or not task.is_temporary:
            return False
        return task.id not in self._pending_creates and task.id not in self._id_aliases

    def _delete_in_flight(self, task_id: str) -> bool:
        resolved = self._id_aliases.get(task_id, task_id)
        return any(
            pending_id in (task_id, resolved) or self._id_aliases.get(pending_id) == task_id
            for pending_id in self._deleting
        )

    def _find(self, task_id: str) -> Tuple[Optional[str], Optional[ScheduledTask]]:
        ids = {task_id, self._id_aliases.get(task_id, task_id)}
        for key, task in self._tasks.items():
            if task.id in ids and is_visible(task):
                return key, task
        return None, None

    def _put(self, task: ScheduledTask) -> None:
        self._tasks[make_key(task.day, task.slot)] = task
        self._emit(ChangeKind.UPSERTED, task)

    def _move(self, old_key: str, task: ScheduledTask) -> None:
        if old_key is not None and old_key != make_key(task.day, task.slot):
            self._tasks.pop(old_key, None)
        self._put(task)

    def _from_record(self, record: TaskRecord) -> ScheduledTask:
        return ScheduledTask(
            id=record.id,
            owner_id=self.owner_id,
            day=record.day,
            slot=self.resolve_slot(record.slot),
            description=record.description,
            completed=record.completed,
            state=TaskState.CONFIRMED,
        )
