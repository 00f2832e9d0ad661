"""
Core operations: the entry points the HTTP layer (or any other caller) uses.

Every operation takes the acting identity explicitly and runs as one
transaction. Mutations leave the committed activity events on
``store.committed`` for post-commit fan-out.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from sqlmodel import SQLModel

from percival.services import activity, time_ledger
from percival.services.store import EntityStore
from percival_shared.schemas.activity import ActivityPage
from percival_shared.schemas.common import Actor, EntityKind, TaskStatus
from percival_shared.schemas.time_entries import Timesheet


async def create_entity(store: EntityStore, kind: EntityKind, fields: dict[str, Any], actor: Actor) -> SQLModel:
    return await store.create(kind, fields, actor)


async def update_entity(
    store: EntityStore, kind: EntityKind, entity_id: uuid.UUID, fields: dict[str, Any], actor: Actor
) -> SQLModel:
    return await store.update(kind, entity_id, fields, actor)


async def delete_entity(store: EntityStore, kind: EntityKind, entity_id: uuid.UUID, actor: Actor) -> None:
    await store.delete(kind, entity_id, actor)


async def get_entity(store: EntityStore, kind: EntityKind, entity_id: uuid.UUID) -> SQLModel:
    return await store.get(kind, entity_id)


async def transition_task(
    store: EntityStore,
    task_id: uuid.UUID,
    to_status: TaskStatus,
    actor: Actor,
    actual_hours: Optional[float] = None,
):
    return await store.transition(task_id, to_status, actor, actual_hours=actual_hours)


async def unblock_task(store: EntityStore, task_id: uuid.UUID, actor: Actor):
    return await store.unblock(task_id, actor)


async def assign_task(store: EntityStore, task_id: uuid.UUID, assignee_id: Optional[uuid.UUID], actor: Actor):
    return await store.assign(task_id, assignee_id, actor)


async def set_task_tags(store: EntityStore, task_id: uuid.UUID, tag_ids: list[uuid.UUID], actor: Actor):
    """Replace the task's tags as a whole; an unknown tag aborts the change."""
    return await store.set_task_tags(task_id, tag_ids, actor)


# ---------------------------------------------------------------------------
# Time ledger
# ---------------------------------------------------------------------------


async def record_time(store: EntityStore, fields: dict[str, Any], actor: Actor):
    """Record hours against a task; ``user_id`` defaults to the actor."""
    return await store.create(EntityKind.TIME_ENTRY, fields, actor)


async def update_time_entry(store: EntityStore, entry_id: uuid.UUID, fields: dict[str, Any], actor: Actor):
    return await store.update(EntityKind.TIME_ENTRY, entry_id, fields, actor)


async def delete_time_entry(store: EntityStore, entry_id: uuid.UUID, actor: Actor) -> None:
    await store.delete(EntityKind.TIME_ENTRY, entry_id, actor)


async def task_time_total(store: EntityStore, task_id: uuid.UUID) -> Decimal:
    await store.load(EntityKind.TASK, task_id)
    return await time_ledger.total_for_task(store.session, task_id)


async def project_time_total(store: EntityStore, project_id: uuid.UUID) -> Decimal:
    await store.load(EntityKind.PROJECT, project_id)
    return await time_ledger.total_for_project(store.session, project_id)


async def user_time_total(store: EntityStore, user_id: uuid.UUID, start: date, end: date) -> Decimal:
    await store.load(EntityKind.USER, user_id)
    return await time_ledger.total_for_user(store.session, user_id, start, end)


async def user_timesheet(store: EntityStore, user_id: uuid.UUID, start: date, end: date) -> Timesheet:
    await store.load(EntityKind.USER, user_id)
    days = await time_ledger.daily_totals(store.session, user_id, start, end)
    weeks = await time_ledger.weekly_totals(store.session, user_id, start, end)
    return Timesheet(
        user_id=user_id,
        start=start,
        end=end,
        total=sum(days.values(), time_ledger.ZERO),
        days=days,
        weeks=weeks,
    )


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------


async def list_activity(
    store: EntityStore,
    project_id: Optional[uuid.UUID] = None,
    limit: Optional[int] = None,
    before: Optional[str] = None,
    actor_id: Optional[uuid.UUID] = None,
) -> ActivityPage:
    if project_id is not None:
        await store.load(EntityKind.PROJECT, project_id)
    if actor_id is not None:
        await store.load(EntityKind.USER, actor_id)
    return await activity.list_activity(
        store.session,
        project_id=project_id,
        actor_id=actor_id,
        limit=limit,
        before=before,
        settings=store.settings,
    )
