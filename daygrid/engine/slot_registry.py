"""Slot registry and rename history for daygrid.

The registry owns the ordered list of slot labels for one owner. Renames are
recorded in an append-only history so that labels coming from stale sources
(server records, other views, old snapshots) can be resolved to their
current form.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from daygrid.engine.slot_parser import sort_slots
from daygrid.errors import LastSlotError, SlotAlreadyExists, SlotInUse
from daygrid.models.constants import DEFAULT_TIME_SLOTS
from daygrid.models.slot import RenameEntry, SlotState

logger = logging.getLogger(__name__)


class RenameHistory:
    """Append-only log of {from, to} slot renames."""

    def __init__(self, entries: Iterable[RenameEntry] = ()):
        self._entries: List[RenameEntry] = list(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    @property
    def entries(self) -> List[RenameEntry]:
        return list(self._entries)

    def append(self, from_label: str, to_label: str, at: datetime = None) -> RenameEntry:
        entry = RenameEntry(from_label=from_label, to_label=to_label, at=at or datetime.utcnow())
        self._entries.append(entry)
        return entry

    def contains(self, from_label: str, to_label: str) -> bool:
        return any(e.from_label == from_label and e.to_label == to_label for e in self._entries)

    def resolve(self, label: str) -> str:
        """Resolve a label to its current canonical form.

        Walks the log in append order and substitutes whenever the label
        matches an entry's `from`. Chains (A -> B, B -> C) resolve to the last
        label; a later rename reusing an old name is honoured because only
        entries after the substitution can apply to the new value.
        """
        current = label
        for entry in self._entries:
            if entry.from_label == current:
                current = entry.to_label
        return current


class SlotRegistry:
    """Ordered, never-empty set of slot labels for one owner."""

    def __init__(self, labels: Iterable[str] = None, history: RenameHistory = None, tasks=None):
        """Initialize the registry.

        Args:
            labels: Starting labels (defaults to DEFAULT_TIME_SLOTS)
            history: Rename history (a fresh one if omitted)
            tasks: TaskStore whose tasks reference these labels
        """
        labels = list(DEFAULT_TIME_SLOTS if labels is None else labels)
        self._labels: List[str] = sort_slots(_unique(labels)) or list(DEFAULT_TIME_SLOTS)
        self.history = history if history is not None else RenameHistory()
        self.tasks = tasks

    @property
    def labels(self) -> List[str]:
        return list(self._labels)

    def __contains__(self, label: str) -> bool:
        return label in self._labels

    def __len__(self) -> int:
        return len(self._labels)

    def add(self, label: str) -> bool:
        """Add a label (exact, case-sensitive match). Returns True if added."""
        label = (label or "").strip()
        if not label or label in self._labels:
            return False
        self._labels.append(label)
        self.normalize()
        return True

    def remove(self, label: str) -> None:
        """Remove a label.

        Raises:
            SlotInUse: If a non-deleted task references the label
            LastSlotError: If it is the only label left
        """
        if label not in self._labels:
            return
        if self._in_use(label):
            raise SlotInUse(label)
        if len(self._labels) == 1:
            raise LastSlotError()
        self._labels.remove(label)
        self.normalize()

    def rename(self, old: str, new: str) -> Optional[RenameEntry]:
        """Rename a label and cascade it to every task that uses it.

        No-op (returns None) when `old` is not registered, or `new` equals
        `old` or is empty after trimming. The cascade persists each moved task on a best-effort basis;
        the registry rename itself is never rolled back.

        Raises:
            SlotAlreadyExists: If `new` is already another registered label
        """
        new = (new or "").strip()
        if not new or new == old or old not in self._labels:
            return None
        if new in self._labels:
            raise SlotAlreadyExists(new)

        self._labels[self._labels.index(old)] = new
        self.normalize()
        entry = self.history.append(old, new)
        if self.tasks is not None:
            moved = self.tasks.remap_slot(old, new, persist=True)
            logger.debug(f"Renamed slot {old!r} -> {new!r}, moved {len(moved)} tasks")
        return entry

    def apply_rename(self, old: str, new: str, at: datetime = None) -> bool:
        """Apply a rename performed elsewhere. Applying it twice is a no-op.

        Returns True if anything changed.
        """
        if not new or new == old:
            return False
        changed = False
        if old in self._labels:
            if new in self._labels:
                self._labels.remove(old)
            else:
                self._labels[self._labels.index(old)] = new
            self.normalize()
            changed = True
        if not self.history.contains(old, new):
            self.history.append(old, new, at)
            changed = True
        if self.tasks is not None and self.tasks.slot_in_use(old):
            self.tasks.remap_slot(old, new, persist=False)
            changed = True
        return changed

    def resolve(self, label: str) -> str:
        return self.history.resolve(label)

    def normalize(self) -> None:
        """Keep labels unique and in chronological order."""
        self._labels = sort_slots(_unique(self._labels))

    def reset_to_default(self) -> None:
        """Restore the default labels.

        Raises:
            SlotInUse: If a task references a label the defaults lack
        """
        for label in self._labels:
            if label not in DEFAULT_TIME_SLOTS and self._in_use(label):
                raise SlotInUse(label)
        self._labels = sort_slots(DEFAULT_TIME_SLOTS)

    def replace(self, labels: Iterable[str], history: Iterable[RenameEntry] = None) -> None:
        """Hydrate from a snapshot or bulk sync; empty input keeps the current labels."""
        if history is not None:
            self.history = RenameHistory(history)
        labels = [self.resolve(label) for label in labels]
        if labels:
            self._labels = sort_slots(_unique(labels))

    def state(self) -> SlotState:
        return SlotState(labels=self.labels, history=self.history.entries)

    def _in_use(self, label: str) -> bool:
        return self.tasks is not None and self.tasks.slot_in_use(label)


def _unique(labels: Iterable[str]) -> List[str]:
    """Deduplicate while preserving order."""
    seen = set()
    unique: List[str] = []
    for label in labels:
        if label not in seen:
            seen.add(label)
            unique.append(label)
    return unique
