"""Time ledger entry."""

from datetime import date
from decimal import Decimal
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class TimeEntry(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "time_entries"
    __table_args__ = (
        sa.CheckConstraint("hours >= 0.25 AND hours <= 24", name="ck_time_entry_hours"),
        sa.Index("ix_time_entries_user_date", "user_id", "work_date"),
    )

    task_id: uuid.UUID = Field(foreign_key="tasks.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    hours: Decimal = Field(nullable=False, sa_type=sa.Numeric(5, 2))
    work_date: date = Field(nullable=False)
    description: Optional[str] = None
