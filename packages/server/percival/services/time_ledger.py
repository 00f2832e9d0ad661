"""
Time ledger: hour entries against tasks and their on-demand aggregates.

Totals are always summed from the entries at read time, never cached, and
are exact ``Decimal`` values.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from percival.core.errors import ValidationError
from percival.models import Task, TimeEntry
from percival_shared.schemas.time_entries import validate_hours

ZERO = Decimal("0.00")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _hours(value) -> Decimal:
    try:
        return validate_hours(value)
    except ValueError as exc:
        raise ValidationError(str(exc), entity_type="time_entry", invariant="time_entry.hours")


def _check_range(start: date, end: date) -> None:
    if end < start:
        raise ValidationError(
            f"end date {end} precedes start date {start}", invariant="date_range"
        )


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(Decimal("0.01"))


def week_start(day: date) -> date:
    """Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.isoweekday() - 1)


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


def build_entry(
    task_id: uuid.UUID,
    user_id: uuid.UUID,
    hours,
    work_date: date,
    description: Optional[str] = None,
) -> TimeEntry:
    """Validate and construct an entry without touching the session."""
    return TimeEntry(
        task_id=task_id,
        user_id=user_id,
        hours=_hours(hours),
        work_date=work_date,
        description=description,
    )


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


async def total_for_task(session: AsyncSession, task_id: uuid.UUID) -> Decimal:
    result = await session.execute(
        select(func.coalesce(func.sum(TimeEntry.hours), 0)).where(TimeEntry.task_id == task_id)
    )
    return _as_decimal(result.scalar_one())


async def total_for_project(session: AsyncSession, project_id: uuid.UUID) -> Decimal:
    result = await session.execute(
        select(func.coalesce(func.sum(TimeEntry.hours), 0))
        .join(Task, Task.id == TimeEntry.task_id)
        .where(Task.project_id == project_id)
    )
    return _as_decimal(result.scalar_one())


async def total_for_user(
    session: AsyncSession, user_id: uuid.UUID, start: date, end: date
) -> Decimal:
    """Hours logged by ``user_id`` with ``start <= work_date <= end``."""
    _check_range(start, end)
    result = await session.execute(
        select(func.coalesce(func.sum(TimeEntry.hours), 0)).where(
            TimeEntry.user_id == user_id,
            TimeEntry.work_date >= start,
            TimeEntry.work_date <= end,
        )
    )
    return _as_decimal(result.scalar_one())


async def daily_totals(
    session: AsyncSession, user_id: uuid.UUID, start: date, end: date
) -> dict[date, Decimal]:
    """Per-day hours for days that have entries, in date order."""
    _check_range(start, end)
    result = await session.execute(
        select(TimeEntry.work_date, func.sum(TimeEntry.hours))
        .where(
            TimeEntry.user_id == user_id,
            TimeEntry.work_date >= start,
            TimeEntry.work_date <= end,
        )
        .group_by(TimeEntry.work_date)
        .order_by(TimeEntry.work_date)
    )
    return {day: _as_decimal(total) for day, total in result.all()}


async def weekly_totals(
    session: AsyncSession, user_id: uuid.UUID, start: date, end: date
) -> dict[date, Decimal]:
    """Hours per ISO week, keyed by the week's Monday."""
    weeks: dict[date, Decimal] = defaultdict(lambda: ZERO)
    for day, total in (await daily_totals(session, user_id, start, end)).items():
        weeks[week_start(day)] += total
    return dict(sorted(weeks.items()))
