"""
Membership graph.

Workspace membership cascades into project membership:

- join: the new member becomes ``contributor`` on every existing project of the
  workspace they are not already on. Existing project roles are never touched.
- leave/remove: the workspace row and every project row for that user go in
  the same transaction.

Every mutation first locks the workspace row so concurrent edits on the same
workspace serialize; composite primary keys reject duplicate rows.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import AlreadyMember, Conflict, Forbidden, NotFound, NotWorkspaceMember
from app.core.notifications import Outbox
from app.core.permissions import (
    get_project_membership,
    get_workspace_membership,
    require_project_manager,
    require_workspace_manager,
    require_workspace_member,
)
from app.models.project import Project, ProjectMember
from app.models.user import User
from app.models.workspace import Workspace, WorkspaceMember
from app.services.projects import get_project_or_404, list_project_members, workspace_member_ids
from app.services.workspaces import get_workspace_or_404
from taskhub_shared.schemas.common import (
    NotificationType,
    ProjectRole,
    ResourceType,
    WorkspaceRole,
)
from taskhub_shared.schemas.projects import ProjectMemberAdd, ProjectMembersReplace

log = structlog.get_logger()


async def _member_read(member: WorkspaceMember, session: AsyncSession) -> dict:
    user = await session.get(User, member.user_id)
    return {
        "user_id": member.user_id,
        "name": user.name,
        "email": user.email,
        "role": member.role,
        "joined_at": member.joined_at,
    }


async def _project_member_read(member: ProjectMember, session: AsyncSession) -> dict:
    user = await session.get(User, member.user_id)
    return {
        "user_id": member.user_id,
        "name": user.name,
        "email": user.email,
        "role": member.role,
        "added_at": member.added_at,
    }


# ---------------------------------------------------------------------------
# Workspace membership
# ---------------------------------------------------------------------------

async def join_workspace(
    workspace: Workspace,
    user_id: uuid.UUID,
    role: WorkspaceRole,
    session: AsyncSession,
) -> tuple[WorkspaceMember, list[uuid.UUID]]:
    """Add a workspace member and cascade ``contributor`` into existing projects.

    Returns the membership and the ids of the projects the user was added to.
    The caller must hold the workspace row lock.
    """
    if await get_workspace_membership(session, workspace.id, user_id):
        raise AlreadyMember()

    member = WorkspaceMember(
        workspace_id=workspace.id,
        user_id=user_id,
        role=WorkspaceRole(role).value,
    )
    session.add(member)
    try:
        await session.flush()
    except IntegrityError:
        raise AlreadyMember()

    project_ids = (
        await session.execute(select(Project.id).where(Project.workspace_id == workspace.id))
    ).scalars().all()
    already_on = set(
        (
            await session.execute(
                select(ProjectMember.project_id).where(
                    ProjectMember.workspace_id == workspace.id,
                    ProjectMember.user_id == user_id,
                )
            )
        ).scalars().all()
    )

    cascaded = [pid for pid in project_ids if pid not in already_on]
    session.add_all(
        ProjectMember(
            project_id=pid,
            user_id=user_id,
            workspace_id=workspace.id,
            role=ProjectRole.CONTRIBUTOR.value,
        )
        for pid in cascaded
    )
    await session.flush()

    log.info(
        "workspace.member_joined",
        workspace_id=str(workspace.id),
        user_id=str(user_id),
        role=member.role,
        projects=len(cascaded),
    )
    return member, cascaded


async def _detach(workspace_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession) -> int:
    """Drop the workspace membership and all project memberships beneath it."""
    result = await session.execute(
        delete(ProjectMember).where(
            ProjectMember.workspace_id == workspace_id,
            ProjectMember.user_id == user_id,
        )
    )
    await session.execute(
        delete(WorkspaceMember).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == user_id,
        )
    )
    await session.flush()
    return result.rowcount


async def remove_workspace_member(
    workspace_id: uuid.UUID,
    target_id: uuid.UUID,
    actor_id: uuid.UUID,
    session: AsyncSession,
    outbox: Outbox,
) -> None:
    workspace = await get_workspace_or_404(workspace_id, session, for_update=True)
    actor_role = await require_workspace_manager(
        session, actor_id, workspace_id, "Only workspace owners and admins can remove members"
    )

    target = await get_workspace_membership(session, workspace_id, target_id)
    if target is None:
        raise NotFound("Member not found")
    if target.role == WorkspaceRole.OWNER or target_id == workspace.owner_id:
        raise Forbidden("Cannot remove the workspace owner")
    if target.role == WorkspaceRole.ADMIN and actor_role != WorkspaceRole.OWNER:
        raise Forbidden("Only the workspace owner can remove admins")

    removed_projects = await _detach(workspace_id, target_id, session)

    outbox.add(
        [target_id],
        type=NotificationType.WORKSPACE_UPDATED,
        title="Removed from Workspace",
        message=f'You have been removed from the workspace "{workspace.name}"',
        resource_type=ResourceType.WORKSPACE,
        resource_id=workspace.id,
        action_by=actor_id,
        workspace_id=workspace.id,
        metadata={"workspace_name": workspace.name},
    )
    log.info(
        "workspace.member_removed",
        workspace_id=str(workspace_id),
        user_id=str(target_id),
        by=str(actor_id),
        projects=removed_projects,
    )


async def leave_workspace(
    workspace_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> None:
    workspace = await get_workspace_or_404(workspace_id, session, for_update=True)
    await require_workspace_member(session, user_id, workspace_id)
    if workspace.owner_id == user_id:
        raise Forbidden("The workspace owner cannot leave the workspace")

    removed_projects = await _detach(workspace_id, user_id, session)
    log.info(
        "workspace.member_left",
        workspace_id=str(workspace_id),
        user_id=str(user_id),
        projects=removed_projects,
    )


async def update_workspace_member_role(
    workspace_id: uuid.UUID,
    target_id: uuid.UUID,
    new_role: WorkspaceRole,
    actor_id: uuid.UUID,
    session: AsyncSession,
    outbox: Outbox,
) -> dict:
    """Re-role a member. The owner row is immutable; only the owner grants admin."""
    workspace = await get_workspace_or_404(workspace_id, session, for_update=True)
    actor_role = await require_workspace_manager(
        session, actor_id, workspace_id, "Only workspace owners and admins can change roles"
    )

    new_role = WorkspaceRole(new_role)
    if new_role == WorkspaceRole.OWNER:
        raise Forbidden("The owner role cannot be assigned")

    target = await get_workspace_membership(session, workspace_id, target_id)
    if target is None:
        raise NotFound("Member not found")
    if target.role == WorkspaceRole.OWNER or target_id == workspace.owner_id:
        raise Forbidden("The workspace owner's role cannot be changed")
    if actor_role != WorkspaceRole.OWNER and (
        new_role == WorkspaceRole.ADMIN or target.role == WorkspaceRole.ADMIN
    ):
        raise Forbidden("Only the workspace owner can assign admin roles")

    previous = target.role
    target.role = new_role.value
    session.add(target)
    await session.flush()

    if previous != target.role:
        outbox.add(
            [target_id],
            type=NotificationType.WORKSPACE_UPDATED,
            title="Your Role Updated",
            message=f'Your role in "{workspace.name}" changed from {previous} to {target.role}',
            resource_type=ResourceType.WORKSPACE,
            resource_id=workspace.id,
            action_by=actor_id,
            workspace_id=workspace.id,
            metadata={"old_role": previous, "new_role": target.role},
        )
    log.info(
        "workspace.member_role_updated",
        workspace_id=str(workspace_id),
        user_id=str(target_id),
        role=target.role,
        by=str(actor_id),
    )
    return await _member_read(target, session)


# ---------------------------------------------------------------------------
# Project membership
# ---------------------------------------------------------------------------

async def _managed_project(
    project_id: uuid.UUID, actor_id: uuid.UUID, session: AsyncSession
) -> tuple[Project, Workspace]:
    project = await get_project_or_404(project_id, session)
    workspace = await get_workspace_or_404(project.workspace_id, session, for_update=True)
    await require_project_manager(session, actor_id, project)
    return project, workspace


async def add_project_member(
    project_id: uuid.UUID,
    req: ProjectMemberAdd,
    actor_id: uuid.UUID,
    session: AsyncSession,
    outbox: Outbox,
) -> dict:
    project, workspace = await _managed_project(project_id, actor_id, session)

    if not await get_workspace_membership(session, workspace.id, req.user_id):
        raise NotWorkspaceMember()
    if await get_project_membership(session, project.id, req.user_id):
        raise Conflict("User is already a member of this project")

    member = ProjectMember(
        project_id=project.id,
        user_id=req.user_id,
        workspace_id=workspace.id,
        role=ProjectRole(req.role).value,
    )
    session.add(member)
    try:
        await session.flush()
    except IntegrityError:
        raise Conflict("User is already a member of this project")

    outbox.add(
        [req.user_id],
        type=NotificationType.PROJECT_MEMBER_ADDED,
        title="Added to Project",
        message=f'You have been added to the project "{project.title}" as {member.role}',
        resource_type=ResourceType.PROJECT,
        resource_id=project.id,
        action_by=actor_id,
        workspace_id=workspace.id,
        metadata={"project_title": project.title, "role": member.role},
    )
    log.info("project.member_added", project_id=str(project.id), user_id=str(req.user_id))
    return await _project_member_read(member, session)


async def remove_project_member(
    project_id: uuid.UUID,
    target_id: uuid.UUID,
    actor_id: uuid.UUID,
    session: AsyncSession,
    outbox: Outbox,
) -> None:
    project, workspace = await _managed_project(project_id, actor_id, session)

    member = await get_project_membership(session, project.id, target_id)
    if member is None:
        raise NotFound("Project member not found")
    await session.delete(member)
    await session.flush()

    outbox.add(
        [target_id],
        type=NotificationType.PROJECT_STATUS_CHANGED,
        title="Removed from Project",
        message=f'You have been removed from the project "{project.title}"',
        resource_type=ResourceType.PROJECT,
        resource_id=project.id,
        action_by=actor_id,
        workspace_id=workspace.id,
        metadata={"project_title": project.title},
    )
    log.info("project.member_removed", project_id=str(project.id), user_id=str(target_id))


async def update_project_member_role(
    project_id: uuid.UUID,
    target_id: uuid.UUID,
    role: ProjectRole,
    actor_id: uuid.UUID,
    session: AsyncSession,
    outbox: Outbox,
) -> dict:
    project, workspace = await _managed_project(project_id, actor_id, session)

    member = await get_project_membership(session, project.id, target_id)
    if member is None:
        raise NotFound("Project member not found")

    previous = member.role
    member.role = ProjectRole(role).value
    session.add(member)
    await session.flush()

    if previous != member.role:
        outbox.add(
            [target_id],
            type=NotificationType.PROJECT_STATUS_CHANGED,
            title="Project Role Updated",
            message=f'Your role in "{project.title}" changed from {previous} to {member.role}',
            resource_type=ResourceType.PROJECT,
            resource_id=project.id,
            action_by=actor_id,
            workspace_id=workspace.id,
            metadata={"old_role": previous, "new_role": member.role},
        )
    log.info(
        "project.member_role_updated",
        project_id=str(project.id),
        user_id=str(target_id),
        role=member.role,
    )
    return await _project_member_read(member, session)


async def replace_project_members(
    project_id: uuid.UUID,
    req: ProjectMembersReplace,
    actor_id: uuid.UUID,
    session: AsyncSession,
    outbox: Outbox,
) -> list[dict]:
    """Make the project's member set exactly ``req.members``."""
    project, workspace = await _managed_project(project_id, actor_id, session)

    wanted = {m.user_id: ProjectRole(m.role).value for m in req.members}
    if set(wanted) - await workspace_member_ids(workspace.id, session):
        raise NotWorkspaceMember()

    result = await session.execute(select(ProjectMember).where(ProjectMember.project_id == project.id))
    current = {m.user_id: m for m in result.scalars().all()}

    removed = [uid for uid in current if uid not in wanted]
    added = [uid for uid in wanted if uid not in current]

    if removed:
        await session.execute(
            delete(ProjectMember).where(
                ProjectMember.project_id == project.id,
                ProjectMember.user_id.in_(removed),
            )
        )
    for uid, member in current.items():
        if uid in wanted and member.role != wanted[uid]:
            member.role = wanted[uid]
            session.add(member)
    session.add_all(
        ProjectMember(project_id=project.id, user_id=uid, workspace_id=workspace.id, role=wanted[uid])
        for uid in added
    )
    await session.flush()

    common = dict(
        resource_type=ResourceType.PROJECT,
        resource_id=project.id,
        action_by=actor_id,
        workspace_id=workspace.id,
        metadata={"project_title": project.title},
    )
    if added:
        outbox.add(
            added,
            type=NotificationType.PROJECT_MEMBER_ADDED,
            title="Added to Project",
            message=f'You have been added to the project "{project.title}"',
            **common,
        )
    if removed:
        outbox.add(
            removed,
            type=NotificationType.PROJECT_STATUS_CHANGED,
            title="Removed from Project",
            message=f'You have been removed from the project "{project.title}"',
            **common,
        )
    log.info(
        "project.members_replaced",
        project_id=str(project.id),
        added=len(added),
        removed=len(removed),
    )
    return await list_project_members(project.id, session)
