"""Identity data model for daygrid."""

from typing import Optional
from pydantic import BaseModel, Field


class Identity(BaseModel):
    """Who is using the schedule.

    All client state is partitioned by `owner_id`. Without one, nothing may be
    loaded or persisted.
    """

    owner_id: Optional[str] = Field(None, description="Stable user identifier")
    is_authenticated: bool = Field(False, description="Whether the session is authenticated")

    @property
    def can_persist(self) -> bool:
        return bool(self.owner_id) and self.is_authenticated
