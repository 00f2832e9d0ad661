"""
Background task: derive notifications for committed activity events.

Scheduled by the API after each mutating request, or enqueued on an ARQ
worker. Each batch runs in its own transaction.
"""

from __future__ import annotations

import uuid

import structlog

from percival.core.config import get_settings
from percival.core.database import get_session_context
from percival.services.activity import events_by_id
from percival.services.notifications import derive_notifications

log = structlog.get_logger()


async def dispatch_notifications(ctx: dict, event_ids: list[uuid.UUID]) -> int:
    """Create inbox rows for ``event_ids``. Returns the number created.

    ``ctx["session_factory"]`` overrides the default session factory.
    """
    if not event_ids or not get_settings().notifications_enabled:
        return 0

    async with get_session_context(ctx.get("session_factory")) as session:
        events = await events_by_id(session, event_ids)
        created = await derive_notifications(session, events)

    log.info("notifications.dispatched", events=len(event_ids), created=len(created))
    return len(created)


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [dispatch_notifications]
