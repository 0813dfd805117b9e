"""Workspace and workspace membership models."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, _utcnow


class Workspace(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "workspaces"

    name: str = Field(nullable=False)
    description: Optional[str] = None
    color: str = Field(default="#3b82f6", nullable=False)
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)


class WorkspaceMember(SQLModel, table=True):
    __tablename__ = "workspace_members"

    workspace_id: uuid.UUID = Field(foreign_key="workspaces.id", primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    role: str = Field(nullable=False, default="member")  # owner | admin | member | viewer
    joined_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
