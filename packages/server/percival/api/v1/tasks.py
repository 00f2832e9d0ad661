"""
Task endpoints: lifecycle moves, assignment and the tag set.

Tags are replaced as a whole set; each added or removed link is its own event.

Status flow: todo -> in_progress -> review -> done, ``blocked`` from anywhere.
Each successful lifecycle call records exactly one activity event.
"""

from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends

from percival.api.deps import PostCommit, get_store
from percival.core.auth import get_actor
from percival.services import operations
from percival.services.store import EntityStore
from percival_shared.schemas.common import APIError, Actor
from percival_shared.schemas.tasks import TagRead, TaskAssign, TaskRead, TaskTagsSet, TaskTransition

router = APIRouter(responses={404: {"model": APIError}, 422: {"model": APIError}})


@router.post("/{task_id}/transition", response_model=TaskRead)
async def transition_task_endpoint(
    task_id: uuid.UUID,
    body: TaskTransition,
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
    post_commit: PostCommit = Depends(),
):
    """Move a task to a new status. Moving to the current status is rejected."""
    task = await operations.transition_task(
        store, task_id, body.to_status, actor, actual_hours=body.actual_hours
    )
    post_commit.schedule(store)
    return TaskRead.model_validate(task)


@router.post("/{task_id}/unblock", response_model=TaskRead)
async def unblock_task_endpoint(
    task_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
    post_commit: PostCommit = Depends(),
):
    """Return a blocked task to the status it held before it was blocked."""
    task = await operations.unblock_task(store, task_id, actor)
    post_commit.schedule(store)
    return TaskRead.model_validate(task)


@router.post("/{task_id}/assign", response_model=TaskRead)
async def assign_task_endpoint(
    task_id: uuid.UUID,
    body: TaskAssign,
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
    post_commit: PostCommit = Depends(),
):
    task = await operations.assign_task(store, task_id, body.assignee_id, actor)
    post_commit.schedule(store)
    return TaskRead.model_validate(task)


@router.put("/{task_id}/tags", response_model=List[TagRead])
async def set_task_tags_endpoint(
    task_id: uuid.UUID,
    body: TaskTagsSet,
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
    post_commit: PostCommit = Depends(),
):
    """Replace the task's tags. An unknown tag id leaves the task untouched."""
    tags = await operations.set_task_tags(store, task_id, body.tag_ids, actor)
    post_commit.schedule(store)
    return [TagRead.model_validate(t) for t in tags]
