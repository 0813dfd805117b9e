"""
Workspace service: CRUD and read models.

Membership changes (join, leave, re-role) live in ``app.services.memberships``.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import Forbidden, NotFound
from app.core.permissions import can_manage_members, require_workspace_member
from app.models.notification import Notification
from app.models.project import Project, ProjectMember
from app.models.token_record import TokenRecord
from app.models.user import User
from app.models.workspace import Workspace, WorkspaceMember
from app.services.projects import project_read
from taskhub_shared.schemas.common import WorkspaceRole
from taskhub_shared.schemas.workspaces import WorkspaceCreate, WorkspaceUpdate

log = structlog.get_logger()


async def get_workspace_or_404(
    workspace_id: uuid.UUID, session: AsyncSession, *, for_update: bool = False
) -> Workspace:
    """Load a workspace; ``for_update`` takes a row lock for membership writes."""
    stmt = select(Workspace).where(Workspace.id == workspace_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    workspace = result.scalar_one_or_none()
    if not workspace:
        raise NotFound("Workspace not found")
    return workspace


async def list_members(workspace_id: uuid.UUID, session: AsyncSession) -> list[dict]:
    result = await session.execute(
        select(WorkspaceMember, User)
        .join(User, User.id == WorkspaceMember.user_id)
        .where(WorkspaceMember.workspace_id == workspace_id)
        .order_by(WorkspaceMember.joined_at)
    )
    return [
        {
            "user_id": member.user_id,
            "name": user.name,
            "email": user.email,
            "role": member.role,
            "joined_at": member.joined_at,
        }
        for member, user in result.all()
    ]


async def workspace_read(workspace: Workspace, session: AsyncSession) -> dict:
    return {
        "id": workspace.id,
        "name": workspace.name,
        "description": workspace.description,
        "color": workspace.color,
        "owner_id": workspace.owner_id,
        "members": await list_members(workspace.id, session),
        "created_at": workspace.created_at,
        "updated_at": workspace.updated_at,
    }


async def create_workspace(
    req: WorkspaceCreate, owner_id: uuid.UUID, session: AsyncSession
) -> Workspace:
    """Create a workspace; the creator becomes its single owner."""
    workspace = Workspace(
        name=req.name.strip(),
        description=req.description,
        color=req.color,
        owner_id=owner_id,
    )
    session.add(workspace)
    await session.flush()

    session.add(
        WorkspaceMember(
            workspace_id=workspace.id,
            user_id=owner_id,
            role=WorkspaceRole.OWNER.value,
        )
    )
    await session.flush()

    log.info("workspace.created", workspace_id=str(workspace.id), owner_id=str(owner_id))
    return workspace


async def list_user_workspaces(user_id: uuid.UUID, session: AsyncSession) -> list[dict]:
    """All workspaces the user belongs to, with their role."""
    result = await session.execute(
        select(Workspace, WorkspaceMember.role)
        .join(WorkspaceMember, WorkspaceMember.workspace_id == Workspace.id)
        .where(WorkspaceMember.user_id == user_id)
        .order_by(Workspace.created_at)
    )
    return [
        {
            "id": ws.id,
            "name": ws.name,
            "description": ws.description,
            "color": ws.color,
            "owner_id": ws.owner_id,
            "role": role,
            "created_at": ws.created_at,
        }
        for ws, role in result.all()
    ]


async def get_workspace_details(
    workspace_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> Workspace:
    workspace = await get_workspace_or_404(workspace_id, session)
    await require_workspace_member(session, user_id, workspace_id)
    return workspace


async def update_workspace(
    workspace_id: uuid.UUID,
    req: WorkspaceUpdate,
    user_id: uuid.UUID,
    session: AsyncSession,
) -> Workspace:
    """Owner-only partial update; omitted fields stay untouched."""
    workspace = await get_workspace_or_404(workspace_id, session, for_update=True)
    if workspace.owner_id != user_id:
        raise Forbidden("Only the workspace owner can update the workspace")

    changes = req.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(workspace, field, value)
    session.add(workspace)
    await session.flush()

    log.info("workspace.updated", workspace_id=str(workspace_id), fields=sorted(changes))
    return workspace


async def delete_workspace(
    workspace_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> None:
    """Owner-only delete, cascading to everything the workspace owns."""
    workspace = await get_workspace_or_404(workspace_id, session, for_update=True)
    if workspace.owner_id != user_id:
        raise Forbidden("Only the workspace owner can delete the workspace")

    await session.execute(delete(Notification).where(Notification.workspace_id == workspace_id))
    await session.execute(delete(TokenRecord).where(TokenRecord.workspace_id == workspace_id))
    await session.execute(delete(ProjectMember).where(ProjectMember.workspace_id == workspace_id))
    await session.execute(delete(Project).where(Project.workspace_id == workspace_id))
    await session.execute(delete(WorkspaceMember).where(WorkspaceMember.workspace_id == workspace_id))
    await session.delete(workspace)
    await session.flush()

    log.info("workspace.deleted", workspace_id=str(workspace_id), owner_id=str(user_id))


async def list_workspace_projects(
    workspace_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> list[dict]:
    """Projects visible to the caller: all for owners/admins, own memberships otherwise."""
    await get_workspace_or_404(workspace_id, session)
    role = await require_workspace_member(session, user_id, workspace_id)

    stmt = select(Project).where(Project.workspace_id == workspace_id)
    if not can_manage_members(role):
        stmt = stmt.join(ProjectMember, ProjectMember.project_id == Project.id).where(
            ProjectMember.user_id == user_id
        )
    result = await session.execute(stmt.order_by(Project.created_at))
    return [await project_read(project, session) for project in result.scalars().all()]
