"""
Time ledger endpoints: entries and on-demand totals.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Response

from percival.api.deps import PostCommit, get_store
from percival.core.auth import get_actor
from percival.services import operations
from percival.services.store import EntityStore
from percival_shared.schemas.common import APIError, Actor
from percival_shared.schemas.time_entries import TimeEntryRead, Timesheet, TimeTotal

router = APIRouter(responses={404: {"model": APIError}, 422: {"model": APIError}})


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


@router.post("/time-entries", response_model=TimeEntryRead, status_code=201)
async def record_time_endpoint(
    fields: dict[str, Any] = Body(...),
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
    post_commit: PostCommit = Depends(),
):
    """Log hours against a task (0.25 to 24, in quarter hours)."""
    entry = await operations.record_time(store, fields, actor)
    post_commit.schedule(store)
    return TimeEntryRead.model_validate(entry)


@router.patch("/time-entries/{entry_id}", response_model=TimeEntryRead)
async def update_time_entry_endpoint(
    entry_id: uuid.UUID,
    fields: dict[str, Any] = Body(...),
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
    post_commit: PostCommit = Depends(),
):
    entry = await operations.update_time_entry(store, entry_id, fields, actor)
    post_commit.schedule(store)
    return TimeEntryRead.model_validate(entry)


@router.delete("/time-entries/{entry_id}", status_code=204)
async def delete_time_entry_endpoint(
    entry_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
    post_commit: PostCommit = Depends(),
):
    await operations.delete_time_entry(store, entry_id, actor)
    post_commit.schedule(store)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}/time-total", response_model=TimeTotal)
async def task_time_total_endpoint(
    task_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
):
    return TimeTotal(hours=await operations.task_time_total(store, task_id))


@router.get("/projects/{project_id}/time-total", response_model=TimeTotal)
async def project_time_total_endpoint(
    project_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
):
    return TimeTotal(hours=await operations.project_time_total(store, project_id))


@router.get("/users/{user_id}/time-total", response_model=TimeTotal)
async def user_time_total_endpoint(
    user_id: uuid.UUID,
    start: date = Query(...),
    end: date = Query(...),
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
):
    """Hours logged by a user between ``start`` and ``end`` inclusive."""
    return TimeTotal(hours=await operations.user_time_total(store, user_id, start, end))


@router.get("/users/{user_id}/timesheet", response_model=Timesheet)
async def user_timesheet_endpoint(
    user_id: uuid.UUID,
    start: date = Query(...),
    end: date = Query(...),
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
):
    """Daily and ISO-weekly totals for a user over an inclusive date range."""
    return await operations.user_timesheet(store, user_id, start, end)
