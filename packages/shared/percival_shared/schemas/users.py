"""User and team schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, UUID4

from .common import PatchModel, TeamRole, UserRole


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class UserCreate(BaseModel):
    """Register a user. The credential hash is produced by the auth layer."""
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password_hash: str = Field(min_length=1, max_length=255)
    display_name: str = Field(min_length=1, max_length=255)
    role: UserRole = UserRole.MEMBER
    avatar_url: Optional[str] = None


class UserUpdate(PatchModel):
    required_when_set = frozenset({"email", "password_hash", "display_name", "role"})

    email: Optional[EmailStr] = None
    password_hash: Optional[str] = Field(default=None, min_length=1, max_length=255)
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    role: Optional[UserRole] = None
    avatar_url: Optional[str] = None


class UserRead(BaseModel):
    id: UUID4
    email: str
    display_name: str
    role: UserRole
    avatar_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------

class TeamCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    lead_id: Optional[UUID4] = None


class TeamUpdate(PatchModel):
    required_when_set = frozenset({"name"})

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    lead_id: Optional[UUID4] = None


class TeamRead(BaseModel):
    id: UUID4
    name: str
    description: Optional[str] = None
    lead_id: Optional[UUID4] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TeamMembershipCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    team_id: UUID4
    user_id: UUID4
    role: TeamRole = TeamRole.MEMBER


class TeamMembershipUpdate(PatchModel):
    required_when_set = frozenset({"role"})

    role: Optional[TeamRole] = None


class TeamMembershipRead(BaseModel):
    id: UUID4
    team_id: UUID4
    user_id: UUID4
    role: TeamRole
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
