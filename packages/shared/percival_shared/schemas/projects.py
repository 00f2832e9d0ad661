from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, UUID4

from .common import PatchModel, Priority, ProjectStatus


class ProjectCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    status: ProjectStatus = ProjectStatus.PLANNING
    priority: Priority = Priority.MEDIUM
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget: Optional[Decimal] = Field(default=None, ge=0, max_digits=15, decimal_places=2)
    owner_id: Optional[UUID4] = None  # defaults to the acting user


class ProjectUpdate(PatchModel):
    required_when_set = frozenset({"name", "status", "priority", "owner_id"})

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    priority: Optional[Priority] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget: Optional[Decimal] = Field(default=None, ge=0, max_digits=15, decimal_places=2)
    owner_id: Optional[UUID4] = None


class ProjectRead(BaseModel):
    id: UUID4
    name: str
    description: Optional[str] = None
    status: ProjectStatus
    priority: Priority
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    budget: Optional[Decimal] = None
    owner_id: UUID4
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProjectMembershipCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_id: UUID4
    user_id: UUID4
    role: Optional[str] = Field(default=None, max_length=100)


class ProjectMembershipUpdate(PatchModel):
    role: Optional[str] = Field(default=None, max_length=100)


class ProjectMembershipRead(BaseModel):
    id: UUID4
    project_id: UUID4
    user_id: UUID4
    role: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MilestoneCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project_id: UUID4
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[date] = None
    completed: bool = False


class MilestoneUpdate(PatchModel):
    required_when_set = frozenset({"name", "completed"})

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[date] = None
    completed: Optional[bool] = None


class MilestoneRead(BaseModel):
    id: UUID4
    project_id: UUID4
    name: str
    description: Optional[str] = None
    due_date: Optional[date] = None
    completed: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
