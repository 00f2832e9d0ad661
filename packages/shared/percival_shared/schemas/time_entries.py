"""Time ledger schemas and the hours rule shared by server and clients."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, UUID4, field_validator

from .common import PatchModel

HOURS_INCREMENT = Decimal("0.25")
MIN_HOURS = Decimal("0.25")
MAX_HOURS = Decimal("24")


def validate_hours(value: Any) -> Decimal:
    """Coerce ``value`` to an exact Decimal and enforce the ledger rule.

    Hours must lie in [0.25, 24] and be a whole number of quarter hours.
    Floats go through ``str`` so 2.5 stays 2.5 rather than its binary
    approximation.
    """
    if isinstance(value, bool):
        raise ValueError("hours must be a number")
    try:
        hours = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError("hours must be a number")
    if not hours.is_finite():
        raise ValueError("hours must be a finite number")
    if hours < MIN_HOURS or hours > MAX_HOURS:
        raise ValueError(f"hours must be between {MIN_HOURS} and {MAX_HOURS}, got {hours}")
    if hours % HOURS_INCREMENT != 0:
        raise ValueError(f"hours must be a multiple of {HOURS_INCREMENT}, got {hours}")
    return hours.quantize(Decimal("0.01"))


class TimeEntryCreate(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    task_id: UUID4
    user_id: Optional[UUID4] = None  # defaults to the acting user
    hours: Decimal
    work_date: date = Field(validation_alias=AliasChoices("work_date", "date"))
    description: Optional[str] = None

    @field_validator("hours", mode="before")
    @classmethod
    def _check_hours(cls, v: Any) -> Decimal:
        return validate_hours(v)


class TimeEntryUpdate(PatchModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    required_when_set = frozenset({"hours", "work_date"})

    hours: Optional[Decimal] = None
    work_date: Optional[date] = Field(
        default=None, validation_alias=AliasChoices("work_date", "date")
    )
    description: Optional[str] = None

    @field_validator("hours", mode="before")
    @classmethod
    def _check_hours(cls, v: Any) -> Optional[Decimal]:
        if v is None:
            return None
        return validate_hours(v)


class TimeEntryRead(BaseModel):
    id: UUID4
    task_id: UUID4
    user_id: UUID4
    hours: Decimal
    work_date: date
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TimeTotal(BaseModel):
    hours: Decimal


class Timesheet(BaseModel):
    user_id: UUID4
    start: date
    end: date
    total: Decimal
    days: dict[date, Decimal] = Field(default_factory=dict)
    weeks: dict[date, Decimal] = Field(default_factory=dict)
