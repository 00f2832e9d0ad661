"""Activity feed and notification schemas."""

from __future__ import annotations

import base64
import json
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, UUID4

from .common import ActivityAction, NotificationType


class ActivityEventRead(BaseModel):
    id: UUID4
    sequence: int
    actor_id: Optional[UUID4] = None
    project_id: Optional[UUID4] = None
    action: ActivityAction
    entity_type: str
    entity_id: UUID4
    detail: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    model_config = {"from_attributes": True}


class ActivityCursor(BaseModel):
    """Position in the newest-first feed: strictly older than (created_at, sequence)."""
    created_at: datetime
    sequence: int

    def encode(self) -> str:
        raw = json.dumps({"c": self.created_at.isoformat(), "s": self.sequence})
        return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")

    @classmethod
    def decode(cls, token: str) -> "ActivityCursor":
        """Parse an opaque cursor token. Raises ValueError on malformed input."""
        padded = token + "=" * (-len(token) % 4)
        try:
            data = json.loads(base64.urlsafe_b64decode(padded.encode()))
            return cls(created_at=data["c"], sequence=data["s"])
        except (ValueError, KeyError, TypeError) as exc:
            raise ValueError(f"Malformed activity cursor: {token!r}") from exc


class ActivityPage(BaseModel):
    items: List[ActivityEventRead]
    next_cursor: Optional[str] = None


class NotificationRead(BaseModel):
    id: UUID4
    user_id: UUID4
    type: NotificationType
    title: str
    message: str
    link: Optional[str] = None
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UnreadCount(BaseModel):
    unread: int
