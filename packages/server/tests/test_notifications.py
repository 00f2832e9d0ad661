"""
Notification tests: which events notify whom, and the per-user inbox.
"""

from __future__ import annotations

import uuid

import pytest
from sqlmodel import select

from percival.core.errors import NotFound
from percival.models import Notification
from percival.services import notifications, operations
from percival.tasks.notifications import dispatch_notifications
from percival_shared.schemas.common import EntityKind, TaskStatus


async def _derive(store):
    """Derive notifications for everything committed so far, then reset."""
    created = await notifications.derive_notifications(store.session, list(store.committed))
    await store.session.commit()
    store.committed.clear()
    return created


@pytest.fixture
async def team(factory, store):
    owner = await factory.user()
    member = await factory.user()
    worker = await factory.user()
    project = await factory.project(owner)
    await factory.member(owner, project, member)
    task = await factory.task(owner, project)
    store.committed.clear()
    return owner, member, worker, project, task


class TestPolicy:
    @pytest.mark.asyncio
    async def test_assignment_notifies_assignee(self, store, team):
        owner, _, worker, _, task = team
        await operations.assign_task(store, task.id, worker.id, owner)

        (note,) = await _derive(store)

        assert note.user_id == worker.id
        assert note.type == "task_assigned"
        assert task.title in note.message
        assert note.link == f"/projects/{task.project_id}/tasks/{task.id}"

    @pytest.mark.asyncio
    async def test_self_assignment_is_silent(self, store, team):
        owner, _, _, _, task = team
        await operations.assign_task(store, task.id, owner.id, owner)
        assert await _derive(store) == []

    @pytest.mark.asyncio
    async def test_completion_notifies_members_assignee_and_owner(self, store, team):
        owner, member, worker, _, task = team
        await operations.assign_task(store, task.id, worker.id, owner)
        await _derive(store)

        await operations.transition_task(store, task.id, TaskStatus.DONE, worker)
        created = await _derive(store)

        assert {n.user_id for n in created} == {owner.id, member.id}
        assert {n.type for n in created} == {"task_completed"}

    @pytest.mark.asyncio
    async def test_other_transitions_are_updates(self, store, team):
        owner, member, _, _, task = team
        await operations.transition_task(store, task.id, TaskStatus.IN_PROGRESS, owner)

        (note,) = await _derive(store)

        assert note.user_id == member.id
        assert note.type == "task_updated"
        assert "todo" in note.message and "in_progress" in note.message

    @pytest.mark.asyncio
    async def test_comment_notifies_assignee_and_owner(self, store, team):
        owner, member, worker, _, task = team
        await operations.assign_task(store, task.id, worker.id, owner)
        await _derive(store)

        await store.create(EntityKind.COMMENT, {"task_id": str(task.id), "content": "looks good"}, member)
        created = await _derive(store)

        assert {n.user_id for n in created} == {owner.id, worker.id}
        assert {n.type for n in created} == {"comment_added"}

    @pytest.mark.asyncio
    async def test_project_update_notifies_members(self, store, team):
        owner, member, _, project, _ = team
        await store.update(EntityKind.PROJECT, project.id, {"status": "active"}, owner)

        (note,) = await _derive(store)

        assert note.user_id == member.id
        assert note.type == "project_updated"
        assert "status" in note.message

    @pytest.mark.asyncio
    async def test_unrelated_events_are_ignored(self, store, factory, team):
        owner, _, _, project, _ = team
        await factory.milestone(owner, project)
        await store.create(EntityKind.TAG, {"name": "backend"}, owner)
        assert await _derive(store) == []

    @pytest.mark.asyncio
    async def test_custom_policy(self, store, team):
        owner, _, _, _, task = team
        await operations.transition_task(store, task.id, TaskStatus.REVIEW, owner)
        created = await notifications.derive_notifications(store.session, list(store.committed), policy={})
        assert created == []


class TestDispatch:
    @pytest.mark.asyncio
    async def test_dispatch_uses_its_own_session(self, store, session_factory, team):
        owner, _, worker, _, task = team
        await operations.assign_task(store, task.id, worker.id, owner)
        event_ids = [e.id for e in store.committed]

        created = await dispatch_notifications({"session_factory": session_factory}, event_ids)

        assert created == 1
        async with session_factory() as other:
            rows = (await other.execute(select(Notification))).scalars().all()
        assert [n.user_id for n in rows] == [worker.id]

    @pytest.mark.asyncio
    async def test_dispatch_without_events(self, session_factory):
        assert await dispatch_notifications({"session_factory": session_factory}, []) == 0


class TestInbox:
    @pytest.fixture
    async def inbox(self, store, team):
        owner, member, worker, _, task = team
        await operations.transition_task(store, task.id, TaskStatus.IN_PROGRESS, owner)
        await operations.transition_task(store, task.id, TaskStatus.REVIEW, owner)
        await operations.assign_task(store, task.id, member.id, owner)
        await _derive(store)
        return member, worker

    @pytest.mark.asyncio
    async def test_list_and_count(self, session, inbox):
        member, worker = inbox
        assert await notifications.unread_count(session, member.id) == 3
        assert len(await notifications.list_notifications(session, member.id)) == 3
        assert await notifications.list_notifications(session, worker.id) == []

    @pytest.mark.asyncio
    async def test_mark_read(self, session, inbox):
        member, _ = inbox
        first = (await notifications.list_notifications(session, member.id))[0]

        read = await notifications.mark_read(session, member.id, first.id)
        await session.commit()

        assert read.is_read is True
        assert await notifications.unread_count(session, member.id) == 2
        unread = await notifications.list_notifications(session, member.id, unread_only=True)
        assert first.id not in {n.id for n in unread}

    @pytest.mark.asyncio
    async def test_mark_all_read(self, session, inbox):
        member, _ = inbox
        assert await notifications.mark_all_read(session, member.id) == 3
        await session.commit()
        assert await notifications.unread_count(session, member.id) == 0
        assert await notifications.mark_all_read(session, member.id) == 0

    @pytest.mark.asyncio
    async def test_delete(self, session, inbox):
        member, _ = inbox
        first = (await notifications.list_notifications(session, member.id))[0]

        await notifications.delete_notification(session, member.id, first.id)
        await session.commit()

        assert await notifications.unread_count(session, member.id) == 2

    @pytest.mark.asyncio
    async def test_other_users_notifications_are_not_found(self, session, inbox):
        member, worker = inbox
        first = (await notifications.list_notifications(session, member.id))[0]

        with pytest.raises(NotFound):
            await notifications.mark_read(session, worker.id, first.id)
        with pytest.raises(NotFound):
            await notifications.delete_notification(session, worker.id, first.id)
        with pytest.raises(NotFound):
            await notifications.mark_read(session, member.id, uuid.uuid4())
