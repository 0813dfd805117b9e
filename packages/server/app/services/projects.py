"""
Project service: create, read, update.

Project membership mutations are in ``app.services.memberships``.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import Forbidden, NotFound, NotWorkspaceMember
from app.core.notifications import Outbox
from app.core.permissions import (
    effective_project_permission,
    require_project_manager,
    require_workspace_member,
)
from app.models.project import Project, ProjectMember
from app.models.user import User
from app.models.workspace import Workspace, WorkspaceMember
from taskhub_shared.schemas.common import (
    NotificationType,
    ProjectPermission,
    ProjectRole,
    ResourceType,
)
from taskhub_shared.schemas.projects import ProjectCreate, ProjectUpdate

log = structlog.get_logger()


async def get_project_or_404(project_id: uuid.UUID, session: AsyncSession) -> Project:
    project = await session.get(Project, project_id)
    if not project:
        raise NotFound("Project not found")
    return project


async def list_project_members(project_id: uuid.UUID, session: AsyncSession) -> list[dict]:
    result = await session.execute(
        select(ProjectMember, User)
        .join(User, User.id == ProjectMember.user_id)
        .where(ProjectMember.project_id == project_id)
        .order_by(ProjectMember.added_at)
    )
    return [
        {
            "user_id": member.user_id,
            "name": user.name,
            "email": user.email,
            "role": member.role,
            "added_at": member.added_at,
        }
        for member, user in result.all()
    ]


async def project_read(project: Project, session: AsyncSession) -> dict:
    return {
        "id": project.id,
        "workspace_id": project.workspace_id,
        "title": project.title,
        "description": project.description,
        "status": project.status,
        "start_date": project.start_date,
        "due_date": project.due_date,
        "tags": list(project.tags or []),
        "created_by": project.created_by,
        "is_archived": project.is_archived,
        "members": await list_project_members(project.id, session),
        "created_at": project.created_at,
        "updated_at": project.updated_at,
    }


async def workspace_member_ids(workspace_id: uuid.UUID, session: AsyncSession) -> set[uuid.UUID]:
    result = await session.execute(
        select(WorkspaceMember.user_id).where(WorkspaceMember.workspace_id == workspace_id)
    )
    return set(result.scalars().all())


async def create_project(
    workspace: Workspace,
    req: ProjectCreate,
    creator_id: uuid.UUID,
    session: AsyncSession,
    outbox: Outbox,
) -> Project:
    """Create a project; any workspace member may do so.

    Listed members must already belong to the workspace. The creator is added
    as manager unless listed explicitly.
    """
    await require_workspace_member(session, creator_id, workspace.id)

    roles: dict[uuid.UUID, ProjectRole] = {}
    for member in req.members:
        roles[member.user_id] = member.role
    roles.setdefault(creator_id, ProjectRole.MANAGER)

    outsiders = set(roles) - await workspace_member_ids(workspace.id, session)
    if outsiders:
        raise NotWorkspaceMember()

    project = Project(
        workspace_id=workspace.id,
        title=req.title.strip(),
        description=req.description,
        status=req.status.value,
        start_date=req.start_date,
        due_date=req.due_date,
        tags=list(req.tags),
        created_by=creator_id,
    )
    session.add(project)
    await session.flush()

    session.add_all(
        ProjectMember(
            project_id=project.id,
            user_id=user_id,
            workspace_id=workspace.id,
            role=ProjectRole(role).value,
        )
        for user_id, role in roles.items()
    )
    await session.flush()

    outbox.add(
        roles,
        type=NotificationType.PROJECT_MEMBER_ADDED,
        title="Added to New Project",
        message=f'You have been added to the project "{project.title}"',
        resource_type=ResourceType.PROJECT,
        resource_id=project.id,
        action_by=creator_id,
        workspace_id=workspace.id,
        metadata={"project_title": project.title, "workspace_name": workspace.name},
    )
    log.info(
        "project.created",
        project_id=str(project.id),
        workspace_id=str(workspace.id),
        members=len(roles),
    )
    return project


async def get_project_details(
    project_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> tuple[Project, ProjectPermission]:
    project = await get_project_or_404(project_id, session)
    permission = await effective_project_permission(session, user_id, project)
    if permission == ProjectPermission.NONE:
        raise Forbidden("You do not have access to this project")
    return project, permission


async def update_project(
    project_id: uuid.UUID,
    req: ProjectUpdate,
    user_id: uuid.UUID,
    session: AsyncSession,
    outbox: Outbox,
) -> Project:
    """Manager-only partial update. A status change notifies the other members."""
    project = await get_project_or_404(project_id, session)
    await require_project_manager(
        session, user_id, project, "Only project managers can update the project"
    )

    changes = req.model_dump(exclude_unset=True, exclude_none=True)
    previous_status = project.status
    for field, value in changes.items():
        setattr(project, field, value.value if field == "status" else value)
    session.add(project)
    await session.flush()

    if project.status != previous_status:
        member_ids = [m["user_id"] for m in await list_project_members(project.id, session)]
        outbox.add(
            member_ids,
            type=NotificationType.PROJECT_STATUS_CHANGED,
            title="Project Status Updated",
            message=f'Project "{project.title}" moved from {previous_status} to {project.status}',
            resource_type=ResourceType.PROJECT,
            resource_id=project.id,
            action_by=user_id,
            workspace_id=project.workspace_id,
            metadata={"old_status": previous_status, "new_status": project.status},
        )

    log.info("project.updated", project_id=str(project_id), fields=sorted(changes))
    return project
