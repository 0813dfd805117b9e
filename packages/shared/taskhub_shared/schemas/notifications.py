"""Notification read-side schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .common import NotificationType, Pagination, ResourceType


class NotificationRead(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    resource_type: ResourceType
    resource_id: uuid.UUID
    action_by: uuid.UUID
    workspace_id: uuid.UUID
    is_read: bool
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class NotificationResponse(BaseModel):
    message: str
    notification: NotificationRead


class NotificationListResponse(BaseModel):
    message: str
    notifications: list[NotificationRead]
    pagination: Pagination
    unread_count: int


class UnreadCountResponse(BaseModel):
    message: str
    unread_count: int
