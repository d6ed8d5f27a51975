"""Session-related data models."""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class SessionStatus(str, Enum):
    """Session status enumeration."""

    PENDING = "pending"
    RUNNING = "running"
    FINISHED = "completed"
    FAILED = "failed"


class Session(BaseModel):
    """A collection job and its commercial state."""

    id: str
    status: SessionStatus = SessionStatus.PENDING
    is_paid: bool = False
    is_trial: bool = False
    pack_id: Optional[str] = None
    dataset_id: Optional[str] = None
    owner_user_id: Optional[str] = None
    download_token: Optional[str] = None
    url: Optional[str] = None
    total_items: Optional[int] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator("owner_user_id", mode="before")
    @classmethod
    def _stringify_owner(cls, value: Any) -> Any:
        # user ids come from the auth store as integers
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def is_finished(self) -> bool:
        return self.status == SessionStatus.FINISHED
