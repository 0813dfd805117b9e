"""
Workspace schemas shared between the server and API clients.

Covers: workspace CRUD, membership listing, invitations and role changes.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from .common import InviteRole, WorkspaceRole


HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class WorkspaceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    color: str = Field("#3b82f6", pattern=HEX_COLOR_PATTERN)


class WorkspaceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)


class InviteMemberRequest(BaseModel):
    email: EmailStr
    role: InviteRole = InviteRole.MEMBER


class AcceptInviteTokenRequest(BaseModel):
    token: str = Field(min_length=1)


class UpdateMemberRoleRequest(BaseModel):
    role: WorkspaceRole


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class WorkspaceMemberRead(BaseModel):
    user_id: uuid.UUID
    name: str
    email: str
    role: WorkspaceRole
    joined_at: datetime


class WorkspaceRead(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    color: str
    owner_id: uuid.UUID
    members: list[WorkspaceMemberRead] = []
    created_at: datetime
    updated_at: datetime


class WorkspaceListItem(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    color: str
    owner_id: uuid.UUID
    role: WorkspaceRole  # the requesting user's role in this workspace
    created_at: datetime


class WorkspaceResponse(BaseModel):
    message: str
    workspace: WorkspaceRead


class WorkspaceListResponse(BaseModel):
    message: str
    workspaces: list[WorkspaceListItem]


class WorkspaceMemberResponse(BaseModel):
    message: str
    member: WorkspaceMemberRead
