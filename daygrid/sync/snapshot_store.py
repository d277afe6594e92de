"""Durable per-owner snapshot shared by every tab of one user.

A snapshot is one JSON file holding the owner's tasks, slot registry, rename
history and the last rename marker. It is always read and written whole; the
last writer wins. `poll()` notices writes made by *other* writers (another
tab or process) and hands the new snapshot to subscribers; a store never
notifies about its own writes.
"""

import asyncio
import logging
import os
import re
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from daygrid.models.slot import RenameEntry, SlotState
from daygrid.models.task import ScheduledTask

load_dotenv()

logger = logging.getLogger(__name__)

SNAPSHOT_DIR = os.getenv("DAYGRID_SNAPSHOT_DIR", os.path.join(os.path.expanduser("~"), ".daygrid"))
SNAPSHOT_POLL_INTERVAL_SEC = float(os.getenv("DAYGRID_SNAPSHOT_POLL_INTERVAL_SEC", "1.0"))


class Snapshot(BaseModel):
    """Everything one owner's views need to hydrate without the network."""

    owner_id: str
    writer_id: str = Field(..., description="Tab/process that wrote the snapshot")
    revision: int = 0
    saved_at: datetime = Field(default_factory=datetime.utcnow)
    tasks: List[ScheduledTask] = Field(default_factory=list)
    slots: SlotState = Field(default_factory=SlotState)
    last_rename: Optional[RenameEntry] = Field(None, description="Most recent rename, for other tabs")


def snapshot_path(directory: str, owner_id: str) -> Path:
    safe_owner = re.sub(r"[^A-Za-z0-9_.-]", "_", owner_id)
    return Path(directory) / f"daygrid-{safe_owner}.json"


class SnapshotStore:
    """File-backed snapshot for one owner, as seen from one tab."""

    def __init__(self, owner_id: str, directory: str = None, writer_id: str = None):
        self.owner_id = owner_id
        self.writer_id = writer_id or str(uuid.uuid4())
        self.path = snapshot_path(directory or SNAPSHOT_DIR, owner_id)
        self._subscribers: List[Callable[[Snapshot], None]] = []
        self._seen_mtime_ns: Optional[int] = self._mtime_ns()
        self._revision = 0

    def load(self) -> Optional[Snapshot]:
        """Read the snapshot. Missing or corrupt files yield None."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Failed to read snapshot {self.path}: {type(e).__name__}: {str(e)}")
            return None

        try:
            snapshot = Snapshot.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Ignoring corrupt snapshot {self.path}: {e.error_count()} errors")
            return None
        if snapshot.owner_id != self.owner_id:
            logger.warning(f"Ignoring snapshot {self.path} written for another owner")
            return None
        self._revision = max(self._revision, snapshot.revision)
        return snapshot

    def save(self, tasks: List[ScheduledTask], slots: SlotState, last_rename: RenameEntry = None) -> Snapshot:
        """Write the whole snapshot (atomic replace)."""
        self._revision += 1
        snapshot = Snapshot(
            owner_id=self.owner_id,
            writer_id=self.writer_id,
            revision=self._revision,
            tasks=tasks,
            slots=slots,
            last_rename=last_rename,
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(f".{self.writer_id}.tmp")
        try:
            tmp_path.write_text(snapshot.model_dump_json(by_alias=True), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to write snapshot {self.path}: {type(e).__name__}: {str(e)}")
            raise
        self._seen_mtime_ns = self._mtime_ns()
        logger.debug(f"Wrote snapshot r{snapshot.revision} for {self.owner_id}")
        return snapshot

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        self._seen_mtime_ns = None

    def subscribe(self, callback: Callable[[Snapshot], None]) -> Callable[[], None]:
        """Get told about snapshots written by other writers."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def poll(self) -> bool:
        """Check the file once. Returns True if subscribers were notified."""
        mtime_ns = self._mtime_ns()
        if mtime_ns is None or mtime_ns == self._seen_mtime_ns:
            return False
        self._seen_mtime_ns = mtime_ns
        snapshot = self.load()
        if snapshot is None or snapshot.writer_id == self.writer_id:
            return False
        for callback in list(self._subscribers):
            callback(snapshot)
        return True

    async def watch(self, interval: float = None) -> None:
        """Poll forever on the running loop (cancel the task to stop)."""
        interval = SNAPSHOT_POLL_INTERVAL_SEC if interval is None else interval
        while True:
            self.poll()
            await asyncio.sleep(interval)

    def _mtime_ns(self) -> Optional[int]:
        try:
            return self.path.stat().st_mtime_ns
        except FileNotFoundError:
            return None
