"""User and team models."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(nullable=False, unique=True, index=True)
    password_hash: str = Field(nullable=False)  # opaque, owned by the auth service
    display_name: str = Field(nullable=False)
    role: str = Field(nullable=False, default="member")  # admin | manager | member
    avatar_url: Optional[str] = None


class Team(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "teams"

    name: str = Field(nullable=False)
    description: Optional[str] = None
    lead_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", index=True)


class TeamMembership(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "team_memberships"
    __table_args__ = (
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_membership"),
    )

    team_id: uuid.UUID = Field(foreign_key="teams.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    role: str = Field(nullable=False, default="member")  # lead | member
