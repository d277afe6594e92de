"""Request/response models for the timetable endpoints."""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field


class TimetableEntryCreateRequest(BaseModel):
    """Request model for creating an entry."""
    day: date = Field(..., description="Calendar day")
    slot: str = Field(..., min_length=1, description="Slot label")
    description: str = Field("", description="Task description")


class TimetableEntryUpdateRequest(BaseModel):
    """Request model for a partial update; only set fields are applied."""
    completed: Optional[bool] = None
    slot: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None


class BulkEntry(BaseModel):
    """One cell of a bulk save. Without a slot, it is read from a "[slot] text" description."""
    id: Optional[str] = None
    day: date
    slot: Optional[str] = None
    description: str = ""
    completed: bool = False


class BulkUpsertRequest(BaseModel):
    """Request model for PUT /timetable."""
    entries: List[BulkEntry] = Field(default_factory=list)
    start: Optional[date] = Field(None, description="First day of the pruning range")
    end: Optional[date] = Field(None, description="Last day of the pruning range")
    exclude_ids: List[str] = Field(default_factory=list, description="Ids never pruned")


class BulkUpsertResponse(BaseModel):
    success: bool = True
    created: int = 0
    updated: int = 0
    pruned: int = 0


class DeleteResponse(BaseModel):
    success: bool = True
    count: int = 0
