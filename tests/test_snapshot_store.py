"""Tests for the durable per-owner snapshot."""

import os
from datetime import date

from daygrid.models.slot import RenameEntry, SlotState
from daygrid.models.task import ScheduledTask
from daygrid.sync.snapshot_store import SnapshotStore


def _task():
    return ScheduledTask(id="t1", owner_id="owner-1", day=date(2024, 1, 1), slot="Morning", state="confirmed")


class TestSnapshotStore:
    """Test whole-snapshot reads, writes and change notification."""

    def test_missing_snapshot(self, snapshot_dir):
        """Test loading before any save."""
        assert SnapshotStore("owner-1", snapshot_dir).load() is None

    def test_save_then_load(self, snapshot_dir):
        """Test a saved snapshot loads back."""
        store = SnapshotStore("owner-1", snapshot_dir)
        rename = RenameEntry(from_label="Old", to_label="Morning")
        store.save([_task()], SlotState(labels=["Morning"], history=[rename]), rename)

        snapshot = SnapshotStore("owner-1", snapshot_dir).load()
        assert snapshot.tasks == [_task()]
        assert snapshot.slots.labels == ["Morning"]
        assert snapshot.last_rename.from_label == "Old"

    def test_rename_entries_use_from_to_keys(self, snapshot_dir):
        """Test rename entries are written with from/to keys."""
        store = SnapshotStore("owner-1", snapshot_dir)
        store.save([], SlotState(), RenameEntry(from_label="A", to_label="B"))
        raw = store.path.read_text(encoding="utf-8")
        assert '"from":"A"' in raw
        assert '"to":"B"' in raw

    def test_owners_are_isolated(self, snapshot_dir):
        """Test owners do not share snapshots."""
        SnapshotStore("owner-1", snapshot_dir).save([_task()], SlotState())
        assert SnapshotStore("owner-2", snapshot_dir).load() is None

    def test_corrupt_snapshot_is_ignored(self, snapshot_dir):
        """Test a corrupt file loads as nothing."""
        store = SnapshotStore("owner-1", snapshot_dir)
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text("{not json", encoding="utf-8")
        assert store.load() is None

    def test_poll_notifies_about_other_writers_only(self, snapshot_dir):
        """Test polling ignores this writer's own saves."""
        tab_a = SnapshotStore("owner-1", snapshot_dir, writer_id="tab-a")
        tab_b = SnapshotStore("owner-1", snapshot_dir, writer_id="tab-b")
        seen_a, seen_b = [], []
        tab_a.subscribe(seen_a.append)
        tab_b.subscribe(seen_b.append)

        tab_a.save([_task()], SlotState(labels=["Morning"]))
        # Make sure the mtime differs from anything tab_b saw before.
        stat = os.stat(tab_a.path)
        os.utime(tab_a.path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000))

        assert tab_a.poll() is False
        assert tab_b.poll() is True
        assert seen_a == []
        assert seen_b[0].writer_id == "tab-a"
        assert tab_b.poll() is False

    def test_clear(self, snapshot_dir):
        """Test clearing the snapshot."""
        store = SnapshotStore("owner-1", snapshot_dir)
        store.save([], SlotState())
        store.clear()
        assert store.load() is None
