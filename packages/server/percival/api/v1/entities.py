"""
Generic entity endpoints: one CRUD surface for every entity kind.

Bodies are validated by the kind's own create/update schema inside the
store, so unknown fields and invalid values come back as 422 domain errors.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request, Response

from percival.api.deps import PostCommit, get_store
from percival.core.auth import get_actor
from percival.services import operations
from percival.services.store import EntityStore, handler_for
from percival_shared.schemas.common import APIError, Actor, EntityKind

router = APIRouter(responses={404: {"model": APIError}, 422: {"model": APIError}})

_PAGING_PARAMS = {"limit", "offset"}


def _read(kind: EntityKind, entity):
    return handler_for(kind).read_schema.model_validate(entity)


@router.get("/{kind}")
async def list_entities_endpoint(
    kind: EntityKind,
    request: Request,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
):
    """List entities of one kind. Any other query parameter filters by column equality."""
    filters = {k: v for k, v in request.query_params.items() if k not in _PAGING_PARAMS}
    rows = await store.list(kind, filters, limit=limit, offset=offset)
    return [_read(kind, row) for row in rows]


@router.post("/{kind}", status_code=201, responses={409: {"model": APIError}})
async def create_entity_endpoint(
    kind: EntityKind,
    fields: dict[str, Any] = Body(...),
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
    post_commit: PostCommit = Depends(),
):
    entity = await operations.create_entity(store, kind, fields, actor)
    post_commit.schedule(store)
    return _read(kind, entity)


@router.get("/{kind}/{entity_id}")
async def get_entity_endpoint(
    kind: EntityKind,
    entity_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
):
    return _read(kind, await operations.get_entity(store, kind, entity_id))


@router.patch("/{kind}/{entity_id}", responses={409: {"model": APIError}})
async def update_entity_endpoint(
    kind: EntityKind,
    entity_id: uuid.UUID,
    fields: dict[str, Any] = Body(...),
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
    post_commit: PostCommit = Depends(),
):
    """Partial update. A body that changes nothing is accepted and records nothing."""
    entity = await operations.update_entity(store, kind, entity_id, fields, actor)
    post_commit.schedule(store)
    return _read(kind, entity)


@router.delete("/{kind}/{entity_id}", status_code=204, responses={409: {"model": APIError}})
async def delete_entity_endpoint(
    kind: EntityKind,
    entity_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    store: EntityStore = Depends(get_store),
    post_commit: PostCommit = Depends(),
):
    """Delete with cascade/nullify; 409 lists restricting rows."""
    await operations.delete_entity(store, kind, entity_id, actor)
    post_commit.schedule(store)
    return Response(status_code=204)
