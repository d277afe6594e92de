"""SQLAlchemy database models for the daygrid persistence service."""

from datetime import datetime
import uuid
from sqlalchemy import Column, String, Boolean, Date, DateTime, Index

from daygrid.database.database import Base


class TimetableEntryDB(Base):
    """One task placed in a slot on a day.

    Rows are soft-deleted (`deleted_at`) and kept for audit. Uniqueness of
    active rows per (owner_id, day, slot) is enforced by the repository, since
    deleted rows may share the key.
    """

    __tablename__ = "timetable_entries"
    __table_args__ = (
        Index("ix_timetable_entries_owner_day_slot", "owner_id", "day", "slot"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String, nullable=False, index=True)

    day = Column(Date, nullable=False)
    slot = Column(String, nullable=False, default="")
    description = Column(String, nullable=False, default="")
    completed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    deleted_at = Column(DateTime, nullable=True, index=True)

    def to_pydantic(self):
        """Convert database model to the wire record."""
        from daygrid.models.task import TaskRecord

        return TaskRecord(
            id=self.id,
            day=self.day,
            slot=self.slot,
            description=self.description or "",
            completed=bool(self.completed),
        )
