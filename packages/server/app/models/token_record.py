"""Server-side companion record that makes purpose tokens single-use."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, _utcnow


class TokenRecord(UUIDMixin, SQLModel, table=True):
    __tablename__ = "token_records"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "purpose", "scope", name="uq_token_records_user_purpose_scope"),
    )

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    purpose: str = Field(nullable=False)  # email-verification | reset-password | workspace-invite
    scope: str = Field(default="", nullable=False)  # workspace id for invites
    token_hash: str = Field(nullable=False, index=True)  # sha256 hex of the signed token
    workspace_id: Optional[uuid.UUID] = Field(default=None, foreign_key="workspaces.id")
    role: Optional[str] = None
    expires_at: datetime = Field(nullable=False, sa_type=sa.DateTime(timezone=True))
    created_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
