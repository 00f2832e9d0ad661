"""Project, project membership and milestone models."""

from datetime import date
from decimal import Decimal
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Project(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "projects"
    __table_args__ = (
        sa.CheckConstraint(
            "end_date IS NULL OR start_date IS NULL OR end_date >= start_date",
            name="ck_project_dates",
        ),
        sa.CheckConstraint("budget IS NULL OR budget >= 0", name="ck_project_budget"),
    )

    name: str = Field(nullable=False)
    description: Optional[str] = None
    status: str = Field(nullable=False, default="planning")  # planning | active | on_hold | completed | cancelled
    priority: str = Field(nullable=False, default="medium")  # low | medium | high | critical
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget: Optional[Decimal] = Field(default=None, sa_type=sa.Numeric(15, 2))
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)


class ProjectMembership(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "project_memberships"
    __table_args__ = (
        sa.UniqueConstraint("project_id", "user_id", name="uq_project_membership"),
    )

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    role: Optional[str] = None  # free-form label, e.g. "reviewer"


class Milestone(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "milestones"

    project_id: uuid.UUID = Field(foreign_key="projects.id", nullable=False, index=True)
    name: str = Field(nullable=False)
    description: Optional[str] = None
    due_date: Optional[date] = None
    completed: bool = Field(nullable=False, default=False)
