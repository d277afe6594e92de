"""Day and week view facades for daygrid.

A view owns its own `TaskStore` and `SlotRegistry` and is kept consistent
with the other views of the same owner by a `ViewLink`. Views are the
boundary to the rendering layer: every `DaygridError` raised by the core is
caught here, logged and surfaced through the notifier, and the method returns
None/False instead.
"""

import logging
import uuid
from datetime import date, timedelta
from typing import Dict, List, Optional

from daygrid.client.reconciliation import ReconciliationAdapter
from daygrid.engine.slot_registry import SlotRegistry
from daygrid.engine.task_store import TaskStore
from daygrid.errors import DaygridError
from daygrid.models.constants import DAYS_IN_WEEK, WEEK_STARTS_ON
from daygrid.models.identity import Identity
from daygrid.models.task import ScheduledTask, TaskPatch
from daygrid.notifications import LoggingNotifier, Notifier
from daygrid.sync.bus import EventBus
from daygrid.sync.events import ViewKind
from daygrid.sync.snapshot_store import SnapshotStore
from daygrid.sync.synchronizer import CrossViewSynchronizer

logger = logging.getLogger(__name__)

ANONYMOUS_OWNER = "anonymous"


def week_start(day: date) -> date:
    """Monday of the week containing `day`."""
    return day - timedelta(days=(day.weekday() - WEEK_STARTS_ON) % DAYS_IN_WEEK)


class ScheduleTab:
    """Everything one browser tab (or process) shares between its views."""

    def __init__(
        self,
        identity: Identity,
        service=None,
        notifier: Notifier = None,
        snapshot_dir: Optional[str] = None,
        writer_id: Optional[str] = None,
    ):
        """Initialize the tab.

        Args:
            identity: Who is using the schedule
            service: TimetableClient (or compatible) for the persistence service
            notifier: Notification collaborator (logs if omitted)
            snapshot_dir: Where durable snapshots live (env default if None)
            writer_id: Identifies this tab as a snapshot writer
        """
        self.identity = identity
        self.notifier = notifier or LoggingNotifier()
        self.persistent = identity.can_persist
        owner_id = identity.owner_id if self.persistent else ANONYMOUS_OWNER

        if not self.persistent:
            logger.info("No authenticated owner: views run local-only")
        self.adapter = (
            ReconciliationAdapter(service, self.notifier) if self.persistent and service is not None else None
        )
        snapshots = SnapshotStore(owner_id, snapshot_dir, writer_id) if self.persistent else None
        self.sync = CrossViewSynchronizer(owner_id, EventBus(), snapshots)

    @property
    def owner_id(self) -> str:
        return self.sync.owner_id

    def open_day_view(self, day: date = None) -> "DayView":
        view = DayView(self, day)
        view.mount()
        return view

    def open_week_view(self, day: date = None) -> "WeekView":
        view = WeekView(self, day)
        view.mount()
        return view

    def poll(self) -> bool:
        """Pick up snapshot changes made by other tabs."""
        return self.sync.poll_snapshot()


class ScheduleView:
    """State and actions shared by the day and week views."""

    kind = ViewKind.DAY

    def __init__(self, tab: ScheduleTab):
        self.tab = tab
        self.view_id = f"{self.kind.value}-{uuid.uuid4().hex[:8]}"
        self.notifier = tab.notifier
        self.slots = SlotRegistry()
        self.tasks = TaskStore(tab.owner_id, tab.adapter, resolve_slot=self.slots.resolve)
        self.slots.tasks = self.tasks
        self.link = tab.sync.link(self.view_id, self.kind, self.tasks, self.slots)

    @property
    def hydrated(self) -> bool:
        return self.link.hydrated

    def mount(self) -> bool:
        """Attach to the other views. Returns True if hydrated without the network."""
        hydrated = self.link.attach()
        if self.tab.adapter is None:
            # Nothing to load from; local state is authoritative.
            self.link.hydrated = True
        return hydrated

    def unmount(self) -> None:
        self.link.detach()

    async def load(self) -> bool:
        """Hydrate from the server when neither a snapshot nor a live view did."""
        if self.hydrated:
            return True
        return await self.refresh()

    async def refresh(self) -> bool:
        """Reload from the server (the snapshot fallback path)."""
        if self.tab.adapter is None:
            return False
        try:
            return await self.tasks.refresh()
        except DaygridError as e:
            self._fail(e)
            return False

    async def flush(self) -> None:
        await self.tasks.flush()

    # ------------------------------------------------------------------
    # Tasks

    def add_task(self, day: date, slot: str, description: str) -> Optional[ScheduledTask]:
        """Add a task to an empty slot (no network call if the slot is taken)."""
        if not (description or "").strip():
            return None
        try:
            task = self.tasks.create(day, slot, description.strip())
        except DaygridError as e:
            self._fail(e)
            return None
        if self.tab.adapter is None:
            # With a service the adapter confirms once the server has it.
            self.notifier.success("Task added")
        return task

    def edit_description(self, task_id: str, description: str) -> Optional[ScheduledTask]:
        try:
            return self.tasks.update(task_id, TaskPatch(description=description))
        except DaygridError as e:
            self._fail(e)
            return None

    def move_task(self, task_id: str, slot: str) -> Optional[ScheduledTask]:
        try:
            return self.tasks.update(task_id, TaskPatch(slot=slot))
        except DaygridError as e:
            self._fail(e)
            return None

    def toggle_completed(self, task_id: str) -> Optional[ScheduledTask]:
        try:
            return self.tasks.toggle_completed(task_id)
        except DaygridError as e:
            self._fail(e)
            return None

    def delete_task(self, task_id: str) -> bool:
        try:
            deleted = self.tasks.delete(task_id)
        except DaygridError as e:
            self._fail(e)
            return False
        if deleted and self.tab.adapter is None:
            self.notifier.success("Task deleted")
        return deleted

    # ------------------------------------------------------------------
    # Slots

    def add_slot(self, label: str) -> bool:
        try:
            added = self.slots.add(label)
        except DaygridError as e:
            self._fail(e)
            return False
        if added:
            self.link.slots_changed()
            self.notifier.success("Time slot added")
        return added

    def remove_slot(self, label: str) -> bool:
        if label not in self.slots:
            return False
        try:
            self.slots.remove(label)
        except DaygridError as e:
            self._fail(e)
            return False
        self.link.slots_changed()
        self.notifier.success("Time slot deleted")
        return True

    def rename_slot(self, old: str, new: str) -> bool:
        try:
            entry = self.slots.rename(old, new)
        except DaygridError as e:
            self._fail(e)
            return False
        if entry is None:
            return False
        self.link.slot_renamed(entry)
        self.notifier.success("Time slot updated")
        return True

    def reset_slots(self) -> bool:
        try:
            self.slots.reset_to_default()
        except DaygridError as e:
            self._fail(e)
            return False
        self.link.slots_changed()
        self.notifier.success("Time slots reset to default")
        return True

    # ------------------------------------------------------------------

    def progress(self) -> float:
        return self.tasks.progress(self.visible_tasks())

    def visible_tasks(self) -> List[ScheduledTask]:
        return self.tasks.all_tasks()

    def _ordered(self, tasks: List[ScheduledTask]) -> List[ScheduledTask]:
        order = {label: i for i, label in enumerate(self.slots.labels)}
        return sorted(tasks, key=lambda t: (t.day, order.get(t.slot, len(order)), t.slot))

    def _fail(self, error: DaygridError) -> None:
        logger.info(f"{self.view_id}: {type(error).__name__}: {str(error)}")
        self.notifier.error(error.user_message)


class DayView(ScheduleView):
    """Single-day calendar."""

    kind = ViewKind.DAY

    def __init__(self, tab: ScheduleTab, day: date = None):
        super().__init__(tab)
        self.selected_day = day or date.today()

    def select(self, day: date) -> None:
        self.selected_day = day

    def visible_tasks(self) -> List[ScheduledTask]:
        return self._ordered(self.tasks.list_for_day(self.selected_day))

    def task_at(self, slot: str) -> Optional[ScheduledTask]:
        return self.tasks.get(self.selected_day, slot)


class WeekView(ScheduleView):
    """Seven-day grid (Monday first)."""

    kind = ViewKind.WEEK

    def __init__(self, tab: ScheduleTab, day: date = None):
        super().__init__(tab)
        self.week_start = week_start(day or date.today())

    @property
    def week_end(self) -> date:
        return self.week_start + timedelta(days=DAYS_IN_WEEK - 1)

    def days(self) -> List[date]:
        return [self.week_start + timedelta(days=i) for i in range(DAYS_IN_WEEK)]

    def next_week(self) -> None:
        self.week_start += timedelta(days=DAYS_IN_WEEK)

    def previous_week(self) -> None:
        self.week_start -= timedelta(days=DAYS_IN_WEEK)

    def go_to(self, day: date) -> None:
        self.week_start = week_start(day)

    def grid(self) -> Dict[date, Dict[str, Optional[ScheduledTask]]]:
        """{day: {slot: task or None}} for every day and slot of the week."""
        return {
            day: {slot: self.tasks.get(day, slot) for slot in self.slots.labels}
            for day in self.days()
        }

    def visible_tasks(self) -> List[ScheduledTask]:
        return self._ordered(self.tasks.list_for_range(self.week_start, self.week_end))

    def edit_cell(self, day: date, slot: str, description: str) -> Optional[ScheduledTask]:
        """Write a cell locally (saved with `save_week`)."""
        try:
            return self.tasks.stage(day, slot, description)
        except DaygridError as e:
            self._fail(e)
            return None

    async def save_week(self) -> bool:
        """Persist every cell of the shown week in one bulk call."""
        if self.tab.adapter is None:
            self.notifier.error("Sign in to save your schedule")
            return False
        return await self.tasks.save_all(self.week_start, self.week_end)
