"""
Shared route dependencies: the per-request entity store and post-commit work.
"""

from __future__ import annotations

from fastapi import BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from percival.core.config import get_settings
from percival.core.database import get_session, get_session_factory
from percival.core.events import publish_activity
from percival.services.store import EntityStore
from percival.tasks.notifications import dispatch_notifications
from percival_shared.schemas.activity import ActivityEventRead


async def get_store(session: AsyncSession = Depends(get_session)) -> EntityStore:
    return EntityStore(session, get_settings())


class PostCommit:
    """Schedules activity fan-out and notification derivation after a commit."""

    def __init__(
        self,
        background: BackgroundTasks,
        factory: sessionmaker = Depends(get_session_factory),
    ):
        self.background = background
        self.factory = factory

    def schedule(self, store: EntityStore) -> None:
        if not store.committed:
            return
        events = [ActivityEventRead.model_validate(e) for e in store.committed]
        store.committed.clear()
        self.background.add_task(publish_activity, events)
        self.background.add_task(
            dispatch_notifications,
            {"session_factory": self.factory},
            [e.id for e in events],
        )
