"""Remote reconciliation adapter for daygrid.

Turns task store intents into persistence service calls. The service client
is blocking, so each call runs in a worker thread and the event loop stays
free. Failures are reported to the notifier and raised to the store as
`ReconciliationFailed`, whatever the service raised, so the store can revert
its optimistic state. Nothing is retried.
"""

import asyncio
import logging
from datetime import date
from typing import Dict, Iterable, List, Optional

from daygrid.errors import NotFound, ReconciliationFailed
from daygrid.models.task import TaskRecord
from daygrid.notifications import LoggingNotifier, Notifier

logger = logging.getLogger(__name__)


class ReconciliationAdapter:
    """Async facade over a `TimetableClient`-shaped service."""

    def __init__(self, service, notifier: Notifier = None):
        self.service = service
        self.notifier = notifier or LoggingNotifier()

    async def list(self, start: Optional[date] = None, end: Optional[date] = None) -> List[TaskRecord]:
        try:
            return await self._call(self.service.list_tasks, start, end)
        except ReconciliationFailed as e:
            self._report("Could not load your schedule", e)
            raise

    async def create(self, day: date, slot: str, description: str) -> TaskRecord:
        """Create a task. A pre-existing record at (day, slot) counts as success."""
        try:
            record = await self._call(self.service.create_task, day, slot, description)
        except ReconciliationFailed as e:
            self._report("Failed to add task", e)
            raise
        logger.debug(f"Created {record.id} at {day.isoformat()} {slot!r}")
        self.notifier.success("Task added")
        return record

    async def update(self, task_id: str, changes: Dict, quiet: bool = False) -> TaskRecord:
        """Update a task.

        `NotFound` is raised without a notification (the record is simply
        gone). With `quiet`, other failures are only logged.
        """
        try:
            return await self._call(self.service.update_task, task_id, changes)
        except NotFound:
            logger.info(f"Task {task_id} not found server side")
            raise
        except ReconciliationFailed as e:
            if quiet:
                logger.warning(f"Update of {task_id} failed: {type(e).__name__}: {str(e)}")
            else:
                self._report("Failed to update task", e)
            raise

    async def delete(self, task_id: str) -> int:
        """Soft-delete a task (idempotent server side)."""
        try:
            count = await self._call(self.service.delete_task, task_id)
        except NotFound:
            return 0
        except ReconciliationFailed as e:
            self._report("Failed to delete task", e)
            raise
        self.notifier.success("Task deleted")
        return count

    async def bulk_save(
        self,
        entries: Iterable[Dict],
        start: Optional[date] = None,
        end: Optional[date] = None,
        exclude_ids: Iterable[str] = (),
    ) -> None:
        """Upsert many tasks and prune stale ones in [start, end]."""
        entries = list(entries)
        try:
            await self._call(self.service.bulk_upsert, entries, start, end, list(exclude_ids))
        except ReconciliationFailed as e:
            self._report("Failed to save schedule", e)
            raise
        self.notifier.success("Timetable saved")

    async def _call(self, func, *args):
        """Run a blocking service call in a worker thread.

        Anything other than `ReconciliationFailed` (a bad payload, a bug in
        the service) is converted to it.
        """
        try:
            return await asyncio.to_thread(func, *args)
        except ReconciliationFailed:
            raise
        except Exception as e:
            name = getattr(func, "__name__", "call")
            raise ReconciliationFailed(f"{name} failed: {type(e).__name__}: {str(e)}") from e

    def _report(self, message: str, error: Exception) -> None:
        logger.error(f"{message}: {type(error).__name__}: {str(error)}")
        self.notifier.error(message)
