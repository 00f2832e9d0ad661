"""Task-related schemas: tasks, transitions, comments, tags, attachment metadata."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, UUID4

from .common import PatchModel, Priority, TaskStatus

TAG_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
DEFAULT_TAG_COLOR = "#6B7280"


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------

class TaskCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_id: UUID4
    milestone_id: Optional[UUID4] = None
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: Priority = Priority.MEDIUM
    assignee_id: Optional[UUID4] = None
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    actual_hours: Optional[float] = Field(default=None, ge=0)


class TaskUpdate(PatchModel):
    required_when_set = frozenset({"project_id", "title", "status", "priority"})

    project_id: Optional[UUID4] = None
    milestone_id: Optional[UUID4] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    assignee_id: Optional[UUID4] = None
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    actual_hours: Optional[float] = Field(default=None, ge=0)


class TaskRead(BaseModel):
    id: UUID4
    project_id: UUID4
    milestone_id: Optional[UUID4] = None
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: Priority
    assignee_id: Optional[UUID4] = None
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    blocked_from: Optional[TaskStatus] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Transition
# ---------------------------------------------------------------------------

class TaskTransition(BaseModel):
    """Request body for POST /tasks/{taskId}/transition."""
    to_status: TaskStatus
    actual_hours: Optional[float] = Field(default=None, ge=0)


class TaskAssign(BaseModel):
    """Request body for POST /tasks/{taskId}/assign. ``null`` unassigns."""
    assignee_id: Optional[UUID4] = None


class TaskTagsSet(BaseModel):
    """Request body for PUT /tasks/{taskId}/tags: the complete tag set."""
    tag_ids: List[UUID4] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

class CommentCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    task_id: UUID4
    content: str = Field(min_length=1)
    author_id: Optional[UUID4] = None  # defaults to the acting user


class CommentUpdate(PatchModel):
    required_when_set = frozenset({"content"})

    content: Optional[str] = Field(default=None, min_length=1)


class CommentRead(BaseModel):
    id: UUID4
    task_id: UUID4
    author_id: UUID4
    content: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

class TagCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=100)
    color: str = Field(default=DEFAULT_TAG_COLOR, pattern=TAG_COLOR_PATTERN)
    description: Optional[str] = None


class TagUpdate(PatchModel):
    required_when_set = frozenset({"name", "color"})

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, pattern=TAG_COLOR_PATTERN)
    description: Optional[str] = None


class TagRead(BaseModel):
    id: UUID4
    name: str
    color: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TaskTagCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    task_id: UUID4
    tag_id: UUID4


class TaskTagRead(BaseModel):
    id: UUID4
    task_id: UUID4
    tag_id: UUID4
    created_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Attachment metadata
# ---------------------------------------------------------------------------

class AttachmentCreate(BaseModel):
    """Metadata for a file already persisted by the storage layer."""
    model_config = ConfigDict(extra="forbid")

    task_id: UUID4
    original_filename: str = Field(min_length=1, max_length=255)
    content_type: str = Field(min_length=1, max_length=100)
    size_bytes: int = Field(ge=0)
    storage_locator: str = Field(min_length=1)
    filename: Optional[str] = Field(default=None, max_length=255)
    uploaded_by: Optional[UUID4] = None  # defaults to the acting user


class AttachmentRead(BaseModel):
    id: UUID4
    task_id: UUID4
    uploaded_by: UUID4
    filename: str
    original_filename: str
    content_type: str
    size_bytes: int
    storage_locator: str
    created_at: datetime

    model_config = {"from_attributes": True}
