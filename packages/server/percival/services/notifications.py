"""
Notification trigger and inbox.

``derive_notifications`` turns committed activity events into per-user
notification rows according to ``POLICY``; it runs after the originating
transaction has committed, so its failure never undoes the change. Delivery
(email, push) is someone else's job; this module only writes the inbox.
"""

from __future__ import annotations

import uuid
from typing import Awaitable, Callable, Optional

import structlog
from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from percival.core.errors import NotFound
from percival.models import ActivityEvent, Comment, Notification, Project, ProjectMembership, Task
from percival_shared.schemas.common import ActivityAction, NotificationType, TaskStatus

log = structlog.get_logger()

Rule = Callable[[AsyncSession, ActivityEvent], Awaitable[list[Notification]]]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _project_members(session: AsyncSession, project_id: uuid.UUID) -> set[uuid.UUID]:
    result = await session.execute(
        select(ProjectMembership.user_id).where(ProjectMembership.project_id == project_id)
    )
    return set(result.scalars().all())


def _fan_out(
    recipients: set[Optional[uuid.UUID]],
    event: ActivityEvent,
    type_: NotificationType,
    title: str,
    message: str,
    link: Optional[str],
) -> list[Notification]:
    return [
        Notification(user_id=user_id, type=type_.value, title=title, message=message, link=link)
        for user_id in sorted(r for r in recipients if r is not None and r != event.actor_id)
    ]


def _task_link(task: Task) -> str:
    return f"/projects/{task.project_id}/tasks/{task.id}"


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


async def on_assigned(session: AsyncSession, event: ActivityEvent) -> list[Notification]:
    task = await session.get(Task, event.entity_id)
    assignee = event.detail.get("to")
    if task is None or assignee is None:
        return []
    return _fan_out(
        {uuid.UUID(assignee)},
        event,
        NotificationType.TASK_ASSIGNED,
        "Task assigned",
        f"You were assigned to '{task.title}'",
        _task_link(task),
    )


async def on_status_changed(session: AsyncSession, event: ActivityEvent) -> list[Notification]:
    task = await session.get(Task, event.entity_id)
    if task is None:
        return []
    project = await session.get(Project, task.project_id)
    recipients = await _project_members(session, task.project_id)
    recipients |= {task.assignee_id, project.owner_id if project else None}
    new_status = event.detail.get("to")
    if new_status == TaskStatus.DONE.value:
        type_, title = NotificationType.TASK_COMPLETED, "Task completed"
        message = f"'{task.title}' was completed"
    else:
        type_, title = NotificationType.TASK_UPDATED, "Task updated"
        message = f"'{task.title}' moved from {event.detail.get('from')} to {new_status}"
    return _fan_out(recipients, event, type_, title, message, _task_link(task))


async def on_commented(session: AsyncSession, event: ActivityEvent) -> list[Notification]:
    comment = await session.get(Comment, event.entity_id)
    if comment is None:
        return []
    task = await session.get(Task, comment.task_id)
    if task is None:
        return []
    project = await session.get(Project, task.project_id)
    recipients = {task.assignee_id, project.owner_id if project else None}
    return _fan_out(
        recipients,
        event,
        NotificationType.COMMENT_ADDED,
        "New comment",
        f"New comment on '{task.title}'",
        _task_link(task),
    )


async def on_project_updated(session: AsyncSession, event: ActivityEvent) -> list[Notification]:
    if event.entity_type != "project":
        return []
    project = await session.get(Project, event.entity_id)
    if project is None:
        return []
    fields = ", ".join(sorted(event.detail.get("changes", {})))
    return _fan_out(
        await _project_members(session, project.id),
        event,
        NotificationType.PROJECT_UPDATED,
        "Project updated",
        f"'{project.name}' was updated ({fields})" if fields else f"'{project.name}' was updated",
        f"/projects/{project.id}",
    )


POLICY: dict[ActivityAction, Rule] = {
    ActivityAction.ASSIGNED: on_assigned,
    ActivityAction.STATUS_CHANGED: on_status_changed,
    ActivityAction.COMMENTED: on_commented,
    ActivityAction.UPDATED: on_project_updated,
}


async def derive_notifications(
    session: AsyncSession,
    events: list[ActivityEvent],
    policy: Optional[dict[ActivityAction, Rule]] = None,
) -> list[Notification]:
    """Apply ``policy`` to ``events`` and add the resulting rows to the session."""
    policy = POLICY if policy is None else policy
    created: list[Notification] = []
    for event in events:
        rule = policy.get(ActivityAction(event.action))
        if rule is None:
            continue
        notifications = await rule(session, event)
        session.add_all(notifications)
        created.extend(notifications)
    await session.flush()
    if created:
        log.info("notifications.derived", count=len(created), events=len(events))
    return created


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------


async def list_notifications(
    session: AsyncSession,
    user_id: uuid.UUID,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> list[Notification]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read == False)  # noqa: E712
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id).offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def unread_count(session: AsyncSession, user_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
    )
    return result.scalar_one()


async def _owned(session: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID) -> Notification:
    notification = await session.get(Notification, notification_id)
    # Another user's notification is reported as missing
    if notification is None or notification.user_id != user_id:
        raise NotFound("notification", notification_id)
    return notification


async def mark_read(session: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID) -> Notification:
    notification = await _owned(session, user_id, notification_id)
    if not notification.is_read:
        notification.is_read = True
        session.add(notification)
        await session.flush()
    return notification


async def mark_all_read(session: AsyncSession, user_id: uuid.UUID) -> int:
    result = await session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
        .values(is_read=True)
    )
    await session.flush()
    return result.rowcount


async def delete_notification(session: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID) -> None:
    notification = await _owned(session, user_id, notification_id)
    await session.delete(notification)
    await session.flush()
