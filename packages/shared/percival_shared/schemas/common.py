from enum import Enum
from typing import ClassVar, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, model_validator


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"


class TeamRole(str, Enum):
    LEAD = "lead"
    MEMBER = "member"


class ProjectStatus(str, Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"
    BLOCKED = "blocked"


class ActivityAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"
    COMMENTED = "commented"


class NotificationType(str, Enum):
    TASK_ASSIGNED = "task_assigned"
    TASK_UPDATED = "task_updated"
    TASK_COMPLETED = "task_completed"
    TASK_DUE_SOON = "task_due_soon"
    PROJECT_UPDATED = "project_updated"
    COMMENT_ADDED = "comment_added"
    MENTION = "mention"
    SYSTEM = "system"


class EntityKind(str, Enum):
    USER = "user"
    TEAM = "team"
    TEAM_MEMBERSHIP = "team_membership"
    PROJECT = "project"
    PROJECT_MEMBERSHIP = "project_membership"
    MILESTONE = "milestone"
    TASK = "task"
    COMMENT = "comment"
    TAG = "tag"
    TASK_TAG = "task_tag"
    ATTACHMENT = "attachment"
    TIME_ENTRY = "time_entry"


class Actor(BaseModel):
    """Authenticated identity passed explicitly into every core call."""
    id: UUID
    role: UserRole = UserRole.MEMBER


class ErrorBody(BaseModel):
    code: str
    message: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    invariant: Optional[str] = None


class APIError(BaseModel):
    error: ErrorBody


class PatchModel(BaseModel):
    """Partial-update body. Fields listed in ``required_when_set`` may be
    omitted but never explicitly set to null."""

    model_config = ConfigDict(extra="forbid")

    required_when_set: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_nulls(self):
        for name in self.model_fields_set & self.required_when_set:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self
