"""Task model and the records that hang off a task."""

from datetime import date, datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, TimestampMixin, UUIDMixin


class Task(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"
    __table_args__ = (
        sa.CheckConstraint("estimated_hours IS NULL OR estimated_hours >= 0", name="ck_task_estimated"),
        sa.CheckConstraint("actual_hours IS NULL OR actual_hours >= 0", name="ck_task_actual"),
    )

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    milestone_id: Optional[uuid.UUID] = Field(default=None, foreign_key="milestones.id", index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    status: str = Field(nullable=False, default="todo")  # todo | in_progress | review | done | blocked
    priority: str = Field(nullable=False, default="medium")
    assignee_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", index=True)
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    blocked_from: Optional[str] = None  # status held before entering blocked
    completed_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))


class Comment(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "comments"
    __table_args__ = (
        sa.CheckConstraint("length(content) > 0", name="ck_comment_content"),
    )

    task_id: uuid.UUID = Field(foreign_key="tasks.id", nullable=False, index=True)
    author_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    content: str = Field(nullable=False)


class Tag(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tags"

    name: str = Field(nullable=False, unique=True)  # case-sensitive
    color: str = Field(nullable=False, default="#6B7280")
    description: Optional[str] = None


class TaskTag(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "task_tags"
    __table_args__ = (
        sa.UniqueConstraint("task_id", "tag_id", name="uq_task_tag"),
    )

    task_id: uuid.UUID = Field(foreign_key="tasks.id", nullable=False, index=True)
    tag_id: uuid.UUID = Field(foreign_key="tags.id", nullable=False, index=True)


class Attachment(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "attachments"

    task_id: uuid.UUID = Field(foreign_key="tasks.id", nullable=False, index=True)
    uploaded_by: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    filename: str = Field(nullable=False)
    original_filename: str = Field(nullable=False)
    content_type: str = Field(nullable=False)
    size_bytes: int = Field(nullable=False, sa_type=sa.BigInteger)
    storage_locator: str = Field(nullable=False)  # opaque, stored verbatim
