"""Append-only activity trail and per-user notifications."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlalchemy import event
from sqlmodel import Field, SQLModel

from .base import utcnow


class ActivityEvent(SQLModel, table=True):
    """Immutable audit record.

    ``sequence`` is the insertion counter used to break ties between events
    sharing a ``created_at``. Rows are never updated or deleted through the
    ORM; the only permitted changes (actor nullification, project cascade)
    are issued as bulk statements by the relationship enforcer.
    """

    __tablename__ = "activity_events"
    __table_args__ = (
        sa.Index("ix_activity_events_project_feed", "project_id", "created_at", "sequence"),
        sa.Index("ix_activity_events_feed", "created_at", "sequence"),
    )

    sequence: Optional[int] = Field(default=None, primary_key=True)
    id: uuid.UUID = Field(default_factory=uuid.uuid4, nullable=False, unique=True, index=True)
    actor_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", index=True)
    project_id: Optional[uuid.UUID] = Field(default=None, foreign_key="projects.id")
    action: str = Field(nullable=False)  # created | updated | deleted | status_changed | assigned | commented
    entity_type: str = Field(nullable=False)
    entity_id: uuid.UUID = Field(nullable=False, index=True)
    detail: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )


class ImmutableActivityError(RuntimeError):
    pass


@event.listens_for(ActivityEvent, "before_update")
def _refuse_update(mapper, connection, target) -> None:
    raise ImmutableActivityError(f"activity event {target.id} is append-only")


@event.listens_for(ActivityEvent, "before_delete")
def _refuse_delete(mapper, connection, target) -> None:
    raise ImmutableActivityError(f"activity event {target.id} is append-only")


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"
    __table_args__ = (
        sa.Index("ix_notifications_user_unread", "user_id", "is_read"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, nullable=False)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    type: str = Field(nullable=False)  # see NotificationType
    title: str = Field(nullable=False)
    message: str = Field(nullable=False)
    link: Optional[str] = None
    is_read: bool = Field(nullable=False, default=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
