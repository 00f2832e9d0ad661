"""
Activity feed endpoint (newest first, cursor paged).
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query

from percival.api.deps import get_store
from percival.core.auth import get_actor
from percival.services import operations
from percival.services.store import EntityStore
from percival_shared.schemas.activity import ActivityPage
from percival_shared.schemas.common import APIError, Actor

router = APIRouter(responses={404: {"model": APIError}, 422: {"model": APIError}})


@router.get("", response_model=ActivityPage)
async def list_activity_endpoint(
    project_id: Optional[uuid.UUID] = None,
    actor_id: Optional[uuid.UUID] = Query(None, description="only events recorded by this user"),
    limit: Optional[int] = Query(None),
    before: Optional[str] = Query(None, description="next_cursor from the previous page"),
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
):
    """Page through activity events, optionally for one project or one actor."""
    return await operations.list_activity(
        store, project_id=project_id, limit=limit, before=before, actor_id=actor_id
    )
