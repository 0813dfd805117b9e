"""
Notification fan-out.

Mutating services collect ``NotificationEvent`` objects in an ``Outbox``. The
endpoint commits its transaction first and then hands the outbox to the
``NotificationDispatcher``, which writes the rows in a background task on a
session of its own. A failed fan-out is logged and dropped; it never affects
the mutation that triggered it.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import structlog
from fastapi import BackgroundTasks, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import Notification
from taskhub_shared.schemas.common import NotificationType, ResourceType

log = structlog.get_logger()


@dataclass(frozen=True)
class NotificationEvent:
    recipients: frozenset[uuid.UUID]
    type: NotificationType
    title: str
    message: str
    resource_type: ResourceType
    resource_id: uuid.UUID
    action_by: uuid.UUID
    workspace_id: uuid.UUID
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def build(cls, recipients: Iterable[uuid.UUID], **kwargs) -> "NotificationEvent":
        return cls(recipients=frozenset(recipients), **kwargs)


async def fan_out(session: AsyncSession, event: NotificationEvent) -> list[Notification]:
    """Write one unread notification per recipient, never to the actor."""
    recipients = event.recipients - {event.action_by}
    if not recipients:
        return []

    rows = [
        Notification(
            user_id=recipient,
            type=NotificationType(event.type).value,
            title=event.title[:100],
            message=event.message[:500],
            resource_type=ResourceType(event.resource_type).value,
            resource_id=event.resource_id,
            action_by=event.action_by,
            workspace_id=event.workspace_id,
            is_read=False,
            meta=dict(event.metadata),
        )
        for recipient in sorted(recipients)
    ]
    session.add_all(rows)
    await session.flush()
    return rows


class Outbox:
    """Events raised inside one unit of work, published after it commits."""

    def __init__(self):
        self.events: list[NotificationEvent] = []

    def add(self, recipients: Iterable[uuid.UUID], **kwargs) -> None:
        self.events.append(NotificationEvent.build(recipients, **kwargs))

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self):
        return iter(self.events)


class NotificationDispatcher:
    """Best-effort publisher with its own sessions."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def publish(self, event: NotificationEvent) -> Optional[int]:
        """Persist one event. Returns the number of rows written, or None on failure."""
        try:
            async with self._session_factory() as session:
                rows = await fan_out(session, event)
                await session.commit()
        except Exception:
            log.exception(
                "notification.fan_out_failed",
                type=NotificationType(event.type).value,
                workspace_id=str(event.workspace_id),
                resource_id=str(event.resource_id),
            )
            return None
        log.debug("notification.fan_out", type=NotificationType(event.type).value, count=len(rows))
        return len(rows)

    async def publish_all(self, events: Iterable[NotificationEvent]) -> None:
        for event in list(events):
            await self.publish(event)

    def schedule(self, background_tasks: BackgroundTasks, outbox: Outbox) -> None:
        """Queue the outbox to run after the response is produced."""
        if len(outbox):
            background_tasks.add_task(self.publish_all, list(outbox))


def get_notifier(request: Request) -> NotificationDispatcher:
    """FastAPI dependency: the dispatcher built at startup."""
    return request.app.state.notifier
