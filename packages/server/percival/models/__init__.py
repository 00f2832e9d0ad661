# SQLModel definitions, imported here so Alembic sees the full metadata.
from .base import UUIDMixin, TimestampMixin, CreatedAtMixin  # noqa: F401
from .user import User, Team, TeamMembership  # noqa: F401
from .project import Project, ProjectMembership, Milestone  # noqa: F401
from .task import Task, Comment, Tag, TaskTag, Attachment  # noqa: F401
from .time_entry import TimeEntry  # noqa: F401
from .activity import ActivityEvent, Notification  # noqa: F401
