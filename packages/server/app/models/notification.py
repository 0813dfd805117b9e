"""In-app notification model."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, _utcnow


class Notification(UUIDMixin, SQLModel, table=True):
    __tablename__ = "notifications"

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    type: str = Field(nullable=False)
    title: str = Field(nullable=False, max_length=100)
    message: str = Field(nullable=False, max_length=500)
    resource_type: str = Field(nullable=False)  # Task | Project | Workspace | User
    resource_id: uuid.UUID = Field(nullable=False)
    action_by: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    workspace_id: uuid.UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    is_read: bool = Field(default=False, nullable=False)
    # "metadata" is reserved on declarative classes
    meta: dict = Field(
        default_factory=dict,
        sa_column=sa.Column("metadata", sa.JSON, nullable=False, default=dict),
    )
    created_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
