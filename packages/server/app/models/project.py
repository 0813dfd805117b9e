"""Project and project membership models."""

from datetime import date, datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin, _utcnow


class Project(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "projects"

    workspace_id: uuid.UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    title: str = Field(nullable=False)
    description: Optional[str] = None
    status: str = Field(default="Planning", nullable=False)
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    tags: list = Field(default_factory=list, sa_type=sa.JSON, nullable=False)
    created_by: uuid.UUID = Field(foreign_key="users.id", nullable=False)
    is_archived: bool = Field(default=False, nullable=False)


class ProjectMember(SQLModel, table=True):
    __tablename__ = "project_members"

    project_id: uuid.UUID = Field(foreign_key="projects.id", primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", primary_key=True)
    # Denormalised so workspace-level cascades are a single DELETE.
    workspace_id: uuid.UUID = Field(foreign_key="workspaces.id", nullable=False, index=True)
    role: str = Field(nullable=False, default="contributor")  # manager | contributor | viewer
    added_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
