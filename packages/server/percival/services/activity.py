"""
Activity recorder: append-only audit trail.

Events are appended inside the caller's transaction so the trail commits or
rolls back together with the change it describes. The feed is read newest
first, ordered by ``(created_at, sequence)`` so rows sharing a timestamp
still page deterministically.
"""

from __future__ import annotations

import uuid
from typing import Any, Optional

import structlog
from pydantic_core import to_jsonable_python
from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from percival.core.config import Settings, get_settings
from percival.core.errors import ValidationError
from percival.models import ActivityEvent
from percival_shared.schemas.activity import ActivityCursor, ActivityEventRead, ActivityPage
from percival_shared.schemas.common import ActivityAction

log = structlog.get_logger()


async def append(
    session: AsyncSession,
    *,
    actor_id: Optional[uuid.UUID],
    project_id: Optional[uuid.UUID],
    action: ActivityAction,
    entity_type: str,
    entity_id: uuid.UUID,
    detail: Optional[dict[str, Any]] = None,
) -> ActivityEvent:
    event = ActivityEvent(
        actor_id=actor_id,
        project_id=project_id,
        action=action.value,
        entity_type=entity_type,
        entity_id=entity_id,
        detail=to_jsonable_python(detail or {}),
    )
    session.add(event)
    await session.flush()
    log.debug(
        "activity.appended",
        sequence=event.sequence,
        action=event.action,
        entity_type=entity_type,
        entity_id=str(entity_id),
    )
    return event


def clamp_limit(limit: Optional[int], settings: Settings) -> int:
    if limit is None:
        limit = settings.activity_page_default
    return max(1, min(limit, settings.activity_page_max))


async def list_activity(
    session: AsyncSession,
    *,
    project_id: Optional[uuid.UUID] = None,
    actor_id: Optional[uuid.UUID] = None,
    limit: Optional[int] = None,
    before: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> ActivityPage:
    """Newest-first page of events, optionally scoped to one project or one actor.

    ``before`` is the ``next_cursor`` of a previous page; only events
    strictly older than that position are returned.
    """
    settings = settings or get_settings()
    limit = clamp_limit(limit, settings)

    stmt = select(ActivityEvent)
    if project_id is not None:
        stmt = stmt.where(ActivityEvent.project_id == project_id)
    if actor_id is not None:
        stmt = stmt.where(ActivityEvent.actor_id == actor_id)
    if before:
        try:
            cursor = ActivityCursor.decode(before)
        except ValueError as exc:
            raise ValidationError(str(exc), invariant="activity.cursor")
        stmt = stmt.where(
            or_(
                ActivityEvent.created_at < cursor.created_at,
                and_(
                    ActivityEvent.created_at == cursor.created_at,
                    ActivityEvent.sequence < cursor.sequence,
                ),
            )
        )
    stmt = stmt.order_by(ActivityEvent.created_at.desc(), ActivityEvent.sequence.desc()).limit(limit + 1)

    result = await session.execute(stmt)
    rows = result.scalars().all()
    items = rows[:limit]
    next_cursor = None
    if len(rows) > limit:
        last = items[-1]
        next_cursor = ActivityCursor(created_at=last.created_at, sequence=last.sequence).encode()
    return ActivityPage(
        items=[ActivityEventRead.model_validate(e) for e in items],
        next_cursor=next_cursor,
    )


async def events_by_id(session: AsyncSession, event_ids: list[uuid.UUID]) -> list[ActivityEvent]:
    if not event_ids:
        return []
    result = await session.execute(
        select(ActivityEvent)
        .where(ActivityEvent.id.in_(event_ids))
        .order_by(ActivityEvent.sequence)
    )
    return list(result.scalars().all())
