"""Notification read side: list, unread count, mark read, delete."""

from __future__ import annotations

import math
import uuid

import structlog
from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import NotFound
from app.models.notification import Notification

log = structlog.get_logger()


def notification_read(n: Notification) -> dict:
    return {
        "id": n.id,
        "user_id": n.user_id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "resource_type": n.resource_type,
        "resource_id": n.resource_id,
        "action_by": n.action_by,
        "workspace_id": n.workspace_id,
        "is_read": n.is_read,
        "metadata": n.meta or {},
        "created_at": n.created_at,
    }


async def unread_count(user_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
    )
    return result.scalar_one()


async def list_notifications(
    user_id: uuid.UUID,
    session: AsyncSession,
    *,
    page: int = 1,
    limit: int = 10,
    unread_only: bool = False,
) -> dict:
    """Newest first, paginated, with the unread total alongside."""
    filters = [Notification.user_id == user_id]
    if unread_only:
        filters.append(Notification.is_read.is_(False))

    total = (
        await session.execute(select(func.count()).select_from(Notification).where(*filters))
    ).scalar_one()
    result = await session.execute(
        select(Notification)
        .where(*filters)
        .order_by(Notification.created_at.desc(), Notification.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return {
        "notifications": [notification_read(n) for n in result.scalars().all()],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
        "unread_count": await unread_count(user_id, session),
    }


async def _get_own(notification_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession) -> Notification:
    notification = await session.get(Notification, notification_id)
    # Someone else's notification is reported as missing.
    if notification is None or notification.user_id != user_id:
        raise NotFound("Notification not found")
    return notification


async def mark_read(
    notification_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> Notification:
    notification = await _get_own(notification_id, user_id, session)
    if not notification.is_read:
        notification.is_read = True
        session.add(notification)
        await session.flush()
    return notification


async def mark_all_read(user_id: uuid.UUID, session: AsyncSession) -> int:
    result = await session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    log.info("notification.mark_all_read", user_id=str(user_id), count=result.rowcount)
    return result.rowcount


async def delete_notification(
    notification_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> None:
    notification = await _get_own(notification_id, user_id, session)
    await session.delete(notification)
    await session.flush()
