"""Slot registry data models for daygrid."""

from datetime import datetime
from typing import List
from pydantic import BaseModel, Field


class RenameEntry(BaseModel):
    """One append-only rename history record."""

    from_label: str = Field(..., alias="from", description="Label before the rename")
    to_label: str = Field(..., alias="to", description="Label after the rename")
    at: datetime = Field(default_factory=datetime.utcnow, description="When the rename happened")

    class Config:
        populate_by_name = True


class SlotState(BaseModel):
    """Serializable slot registry state (labels plus rename history)."""

    labels: List[str] = Field(default_factory=list)
    history: List[RenameEntry] = Field(default_factory=list)
