"""Notification data model for daygrid."""

from enum import Enum
from pydantic import BaseModel, Field


class NotificationLevel(str, Enum):
    """Notification severity."""
    SUCCESS = "success"
    ERROR = "error"


class Notification(BaseModel):
    """Transient message surfaced to the user."""

    level: NotificationLevel = Field(..., description="success or error")
    message: str = Field(..., description="Short human-readable message")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
