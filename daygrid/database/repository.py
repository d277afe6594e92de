"""Repository layer for timetable database operations."""

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from daygrid.database.models import TimetableEntryDB
from daygrid.engine.slot_parser import split_legacy_description
from daygrid.models.task import TaskRecord

logger = logging.getLogger(__name__)

# Fields a client may change through update()
UPDATABLE_FIELDS = ("completed", "slot", "description")


class TimetableRepository:
    """Repository for timetable entry database operations (always scoped by owner)."""

    def __init__(self, db: Session):
        self.db = db

    def _active(self, owner_id: str):
        return self.db.query(TimetableEntryDB).filter(
            TimetableEntryDB.owner_id == owner_id,
            TimetableEntryDB.deleted_at.is_(None),
        )

    def list(self, owner_id: str, start: Optional[date] = None, end: Optional[date] = None) -> List[TaskRecord]:
        """Active entries for an owner, ordered by day (optionally within [start, end])."""
        query = self._active(owner_id)
        if start is not None:
            query = query.filter(TimetableEntryDB.day >= start)
        if end is not None:
            query = query.filter(TimetableEntryDB.day <= end)
        rows = query.order_by(TimetableEntryDB.day, TimetableEntryDB.created_at).all()
        return [row.to_pydantic() for row in rows]

    def get(self, owner_id: str, entry_id: str) -> Optional[TaskRecord]:
        row = self._active(owner_id).filter(TimetableEntryDB.id == entry_id).first()
        return row.to_pydantic() if row else None

    def find_active_at(self, owner_id: str, day: date, slot: str) -> Optional[TaskRecord]:
        """Active entry at (day, slot), if any."""
        row = self._active(owner_id).filter(
            TimetableEntryDB.day == day,
            TimetableEntryDB.slot == slot,
        ).first()
        return row.to_pydantic() if row else None

    def create(self, owner_id: str, day: date, slot: str, description: str) -> Tuple[TaskRecord, bool]:
        """Create an entry unless one is already active at (day, slot).

        Returns:
            (record, created) - the existing record and False on a duplicate
        """
        existing = self.find_active_at(owner_id, day, slot)
        if existing is not None:
            logger.debug(f"Create de-duplicated to {existing.id} at {day} {slot!r}")
            return existing, False

        try:
            row = TimetableEntryDB(owner_id=owner_id, day=day, slot=slot, description=description, completed=False)
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Created entry {row.id}: {description[:50]}")
            return row.to_pydantic(), True
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create entry at {day} {slot!r}: {type(e).__name__}: {str(e)}")
            raise

    def update(self, owner_id: str, entry_id: str, changes: Dict) -> TaskRecord:
        """Apply a patch (subset of completed/slot/description)."""
        row = self._active(owner_id).filter(TimetableEntryDB.id == entry_id).first()
        if not row:
            raise ValueError(f"Entry {entry_id} not found")

        for field in UPDATABLE_FIELDS:
            if changes.get(field) is not None:
                setattr(row, field, changes[field])
        row.updated_at = datetime.utcnow()

        try:
            self.db.commit()
            self.db.refresh(row)
            logger.debug(f"Updated entry {entry_id}: {sorted(k for k in changes if k in UPDATABLE_FIELDS)}")
            return row.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update entry {entry_id}: {type(e).__name__}: {str(e)}")
            raise

    def soft_delete(self, owner_id: str, entry_id: str) -> int:
        """Soft-delete an entry. Returns the number of rows affected (0 if already gone)."""
        try:
            affected = (
                self._active(owner_id)
                .filter(TimetableEntryDB.id == entry_id)
                .update({TimetableEntryDB.deleted_at: datetime.utcnow()}, synchronize_session=False)
            )
            self.db.commit()
            logger.debug(f"Soft-deleted {affected} entries for id {entry_id}")
            return int(affected)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to soft-delete entry {entry_id}: {type(e).__name__}: {str(e)}")
            raise

    def bulk_upsert(
        self,
        owner_id: str,
        entries: Iterable[Dict],
        start: Optional[date] = None,
        end: Optional[date] = None,
        exclude_ids: Iterable[str] = (),
    ) -> Dict[str, int]:
        """Upsert entries and prune stale ones, in one transaction.

        Entries with an id update that row; entries without one update the
        active row at (day, slot) or create one. Afterwards every active row
        with start <= day <= end that was not touched and is not in
        `exclude_ids` is soft-deleted. Without an explicit range, the range
        spans the payload's days (nothing is pruned for an empty payload).
        """
        entries = list(entries)
        days = [entry["day"] for entry in entries]
        if start is None and days:
            start = min(days)
        if end is None and days:
            end = max(days)

        touched: Set[str] = set()
        created = updated = 0
        now = datetime.utcnow()
        try:
            for entry in entries:
                slot = entry.get("slot")
                description = entry.get("description") or ""
                if not slot:
                    slot, description = split_legacy_description(description)
                    slot = slot or ""

                row = None
                if entry.get("id"):
                    row = self._active(owner_id).filter(TimetableEntryDB.id == entry["id"]).first()
                if row is None:
                    row = self._active(owner_id).filter(
                        TimetableEntryDB.day == entry["day"],
                        TimetableEntryDB.slot == slot,
                    ).first()

                if row is None:
                    row = TimetableEntryDB(owner_id=owner_id, created_at=now)
                    self.db.add(row)
                    created += 1
                else:
                    updated += 1
                row.day = entry["day"]
                row.slot = slot
                row.description = description
                row.completed = bool(entry.get("completed", False))
                row.updated_at = now
                self.db.flush()
                touched.add(row.id)

            pruned = 0
            if start is not None and end is not None:
                keep = touched | set(exclude_ids)
                stale = self._active(owner_id).filter(
                    TimetableEntryDB.day >= start,
                    TimetableEntryDB.day <= end,
                ).all()
                for row in stale:
                    if row.id not in keep:
                        row.deleted_at = now
                        pruned += 1

            self.db.commit()
            logger.debug(f"Bulk upsert for {owner_id}: {created} created, {updated} updated, {pruned} pruned")
            return {"created": created, "updated": updated, "pruned": pruned}
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to bulk upsert for {owner_id}: {type(e).__name__}: {str(e)}")
            raise
