"""
Authorization resolver.

Workspace owners and admins are always manager-equivalent on every project of
their workspace, independently of any stored project role. All role checks in
the services go through this module.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import Forbidden
from app.models.project import Project, ProjectMember
from app.models.workspace import WorkspaceMember
from taskhub_shared.schemas.common import (
    WORKSPACE_MANAGER_ROLES,
    ProjectPermission,
    ProjectRole,
    WorkspaceRole,
)


def resolve_project_permission(
    workspace_role: Optional[WorkspaceRole | str],
    project_role: Optional[ProjectRole | str],
) -> ProjectPermission:
    """Pure resolution rule shared by every project-level check."""
    if workspace_role is not None and WorkspaceRole(workspace_role) in WORKSPACE_MANAGER_ROLES:
        return ProjectPermission.MANAGER
    if project_role is None:
        return ProjectPermission.NONE
    return ProjectPermission(ProjectRole(project_role).value)


def can_manage_members(workspace_role: Optional[WorkspaceRole | str]) -> bool:
    return workspace_role is not None and WorkspaceRole(workspace_role) in WORKSPACE_MANAGER_ROLES


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_workspace_membership(
    session: AsyncSession, workspace_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[WorkspaceMember]:
    return await session.get(WorkspaceMember, (workspace_id, user_id))


async def get_project_membership(
    session: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[ProjectMember]:
    return await session.get(ProjectMember, (project_id, user_id))


async def effective_workspace_permission(
    session: AsyncSession, user_id: uuid.UUID, workspace_id: uuid.UUID
) -> Optional[WorkspaceRole]:
    membership = await get_workspace_membership(session, workspace_id, user_id)
    return WorkspaceRole(membership.role) if membership else None


async def effective_project_permission(
    session: AsyncSession, user_id: uuid.UUID, project: Project
) -> ProjectPermission:
    ws_role = await effective_workspace_permission(session, user_id, project.workspace_id)
    result = await session.execute(
        select(ProjectMember.role).where(
            ProjectMember.project_id == project.id,
            ProjectMember.user_id == user_id,
        )
    )
    return resolve_project_permission(ws_role, result.scalar_one_or_none())


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

async def require_workspace_member(
    session: AsyncSession, user_id: uuid.UUID, workspace_id: uuid.UUID
) -> WorkspaceRole:
    role = await effective_workspace_permission(session, user_id, workspace_id)
    if role is None:
        raise Forbidden("You are not a member of this workspace")
    return role


async def require_workspace_manager(
    session: AsyncSession,
    user_id: uuid.UUID,
    workspace_id: uuid.UUID,
    detail: str = "Only workspace owners and admins can manage members",
) -> WorkspaceRole:
    role = await effective_workspace_permission(session, user_id, workspace_id)
    if not can_manage_members(role):
        raise Forbidden(detail)
    return role


async def require_project_manager(
    session: AsyncSession,
    user_id: uuid.UUID,
    project: Project,
    detail: str = "Only project managers can manage project members",
) -> ProjectPermission:
    permission = await effective_project_permission(session, user_id, project)
    if permission != ProjectPermission.MANAGER:
        raise Forbidden(detail)
    return permission
