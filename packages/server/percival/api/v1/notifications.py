"""
Notification inbox endpoints, always scoped to the authenticated user.
"""

from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from percival.core.auth import get_actor
from percival.core.database import get_session
from percival.services import notifications as inbox
from percival_shared.schemas.activity import NotificationRead, UnreadCount
from percival_shared.schemas.common import APIError, Actor

router = APIRouter(responses={404: {"model": APIError}})


@router.get("", response_model=List[NotificationRead])
async def list_notifications_endpoint(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    return await inbox.list_notifications(session, actor.id, unread_only, limit, offset)


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count_endpoint(
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    return UnreadCount(unread=await inbox.unread_count(session, actor.id))


@router.post("/read-all")
async def mark_all_read_endpoint(
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    updated = await inbox.mark_all_read(session, actor.id)
    await session.commit()
    return {"updated": updated}


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_read_endpoint(
    notification_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    notification = await inbox.mark_read(session, actor.id, notification_id)
    await session.commit()
    return notification


@router.delete("/{notification_id}", status_code=204)
async def delete_notification_endpoint(
    notification_id: uuid.UUID,
    actor: Actor = Depends(get_actor),
    session: AsyncSession = Depends(get_session),
):
    await inbox.delete_notification(session, actor.id, notification_id)
    await session.commit()
    return Response(status_code=204)
