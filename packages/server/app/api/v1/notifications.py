"""
Notification API endpoints (always scoped to the caller).
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.database import get_session
from app.models.user import User
from app.services import notifications as notification_service
from taskhub_shared.schemas.common import MessageResponse
from taskhub_shared.schemas.notifications import (
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)

router = APIRouter()


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    unread_only: bool = Query(False),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    data = await notification_service.list_notifications(
        user.id, session, page=page, limit=limit, unread_only=unread_only
    )
    return NotificationListResponse(message="Notifications fetched successfully", **data)


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    count = await notification_service.unread_count(user.id, session)
    return UnreadCountResponse(message="Unread count fetched successfully", unread_count=count)


@router.put("/mark-all-read", response_model=MessageResponse)
async def mark_all_read(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await notification_service.mark_all_read(user.id, session)
    await session.commit()
    return MessageResponse(message="All notifications marked as read")


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    notification = await notification_service.mark_read(notification_id, user.id, session)
    await session.commit()
    return NotificationResponse(
        message="Notification marked as read",
        notification=notification_service.notification_read(notification),
    )


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(
    notification_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await notification_service.delete_notification(notification_id, user.id, session)
    await session.commit()
    return MessageResponse(message="Notification deleted successfully")
