"""User model."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin, _utcnow


class User(UUIDMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(nullable=False, unique=True, index=True)
    name: str = Field(nullable=False)
    password_hash: str = Field(nullable=False)  # bcrypt
    is_email_verified: bool = Field(default=False, nullable=False)
    last_login: Optional[datetime] = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
    created_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
