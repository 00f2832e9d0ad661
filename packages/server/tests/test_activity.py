"""
Activity trail tests: append-only storage and the newest-first feed.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import select

from percival.core.errors import NotFound, ValidationError
from percival.models import ActivityEvent
from percival.models.activity import ImmutableActivityError
from percival.services import activity, operations
from percival_shared.schemas.activity import ActivityCursor
from percival_shared.schemas.common import ActivityAction, EntityKind

STAMP = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


async def _seed(session, count, *, project_id=None, created_at=None, step=timedelta(0)):
    events = []
    for i in range(count):
        event = ActivityEvent(
            action=ActivityAction.UPDATED.value,
            entity_type="task",
            entity_id=uuid.uuid4(),
            project_id=project_id,
            detail={"n": i},
            created_at=(created_at or STAMP) + step * i,
        )
        session.add(event)
        await session.flush()
        events.append(event)
    await session.commit()
    return events


class TestFeed:
    @pytest.mark.asyncio
    async def test_newest_first(self, session, settings):
        await _seed(session, 3, step=timedelta(minutes=1))

        page = await activity.list_activity(session, settings=settings)

        assert [e.detail["n"] for e in page.items] == [2, 1, 0]
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_pages_through_timestamp_ties(self, session, settings):
        """Events sharing a timestamp still page without gaps or repeats."""
        await _seed(session, 7)

        seen = []
        cursor = None
        while True:
            page = await activity.list_activity(session, limit=3, before=cursor, settings=settings)
            seen.extend(e.sequence for e in page.items)
            cursor = page.next_cursor
            if cursor is None:
                break

        assert len(seen) == 7
        assert seen == sorted(seen, reverse=True)

    @pytest.mark.asyncio
    async def test_exact_page_has_no_cursor(self, session, settings):
        await _seed(session, 3, step=timedelta(seconds=1))
        page = await activity.list_activity(session, limit=3, settings=settings)
        assert len(page.items) == 3
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_scoped_to_project(self, store, factory, session):
        owner = await factory.user()
        project = await factory.project(owner)
        other = await factory.project(owner)
        await factory.task(owner, project)
        await factory.task(owner, other)

        page = await operations.list_activity(store, project_id=project.id)

        assert {e.project_id for e in page.items} == {project.id}
        assert [e.entity_type for e in page.items] == ["task", "project"]

    @pytest.mark.asyncio
    async def test_scoped_to_actor_across_pages(self, store, factory, session):
        owner = await factory.user()
        helper = await factory.user()
        project = await factory.project(owner)
        for _ in range(3):
            await factory.task(owner, project)
            await factory.task(helper, project)
        expected = (
            await session.execute(
                select(ActivityEvent.sequence)
                .where(ActivityEvent.actor_id == helper.id)
                .order_by(ActivityEvent.sequence.desc())
            )
        ).scalars().all()

        seen = []
        cursor = None
        while True:
            page = await operations.list_activity(store, actor_id=helper.id, limit=2, before=cursor)
            assert {e.actor_id for e in page.items} == {helper.id}
            seen.extend(e.sequence for e in page.items)
            cursor = page.next_cursor
            if cursor is None:
                break

        assert seen == list(expected)
        assert len(seen) == 3

    @pytest.mark.asyncio
    async def test_actor_and_project_combine(self, store, factory):
        owner = await factory.user()
        project = await factory.project(owner)
        other = await factory.project(owner)
        await factory.task(owner, other)

        page = await operations.list_activity(store, project_id=project.id, actor_id=owner.id)

        assert [(e.entity_type, e.action) for e in page.items] == [("project", "created")]

    @pytest.mark.asyncio
    async def test_unknown_actor_is_not_found(self, store):
        with pytest.raises(NotFound):
            await operations.list_activity(store, actor_id=uuid.uuid4())

    @pytest.mark.asyncio
    async def test_unknown_project_is_not_found(self, store):
        with pytest.raises(NotFound):
            await operations.list_activity(store, project_id=uuid.uuid4())

    @pytest.mark.asyncio
    async def test_malformed_cursor(self, session, settings):
        with pytest.raises(ValidationError) as exc_info:
            await activity.list_activity(session, before="not-a-cursor", settings=settings)
        assert exc_info.value.invariant == "activity.cursor"

    @pytest.mark.asyncio
    async def test_limit_is_clamped(self, session, settings):
        settings.activity_page_max = 4
        await _seed(session, 6, step=timedelta(seconds=1))

        assert len((await activity.list_activity(session, limit=500, settings=settings)).items) == 4
        assert len((await activity.list_activity(session, limit=0, settings=settings)).items) == 1

    def test_cursor_round_trip(self):
        cursor = ActivityCursor(created_at=STAMP, sequence=42)
        decoded = ActivityCursor.decode(cursor.encode())
        assert decoded.created_at == STAMP
        assert decoded.sequence == 42


class TestImmutability:
    @pytest.mark.asyncio
    async def test_orm_update_is_refused(self, session):
        (event,) = await _seed(session, 1)
        event.detail = {"n": 99}
        session.add(event)
        with pytest.raises(ImmutableActivityError):
            await session.flush()
        await session.rollback()

    @pytest.mark.asyncio
    async def test_orm_delete_is_refused(self, session):
        (event,) = await _seed(session, 1)
        await session.delete(event)
        with pytest.raises(ImmutableActivityError):
            await session.flush()
        await session.rollback()

    @pytest.mark.asyncio
    async def test_failed_operation_leaves_no_event(self, store, factory, session):
        owner = await factory.user()
        project = await factory.project(owner)
        before = len((await session.execute(select(ActivityEvent))).scalars().all())

        with pytest.raises(ValidationError):
            await store.update(
                EntityKind.PROJECT, project.id, {"start_date": "2024-03-10", "end_date": "2024-03-01"}, owner
            )

        after = len((await session.execute(select(ActivityEvent))).scalars().all())
        assert after == before

    @pytest.mark.asyncio
    async def test_events_carry_actor_and_project(self, factory, session):
        owner = await factory.user()
        project = await factory.project(owner)

        result = await session.execute(
            select(ActivityEvent).where(ActivityEvent.entity_id == project.id)
        )
        (event,) = result.scalars().all()
        assert event.actor_id == owner.id
        assert event.project_id == project.id
        assert event.action == "created"
        assert event.detail["name"] == project.name
