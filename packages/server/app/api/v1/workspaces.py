"""
Workspace API endpoints.

POST   /api/v1/workspaces                                 Create a workspace
GET    /api/v1/workspaces                                 List caller's workspaces
POST   /api/v1/workspaces/accept-invite-token             Accept an invite by token
GET    /api/v1/workspaces/{id}                            Workspace details (members)
PUT    /api/v1/workspaces/{id}                            Update (owner)
DELETE /api/v1/workspaces/{id}                            Delete (owner)
GET    /api/v1/workspaces/{id}/projects                   Projects visible to caller
POST   /api/v1/workspaces/{id}/projects                   Create a project
POST   /api/v1/workspaces/{id}/invite-member              Invite a registered user
POST   /api/v1/workspaces/{id}/accept-invite              Accept pending invite
POST   /api/v1/workspaces/{id}/leave                      Leave the workspace
PUT    /api/v1/workspaces/{id}/members/{user_id}/role     Change a member's role
DELETE /api/v1/workspaces/{id}/members/{user_id}          Remove a member
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.database import get_session
from app.core.mailer import Mailer, get_mailer
from app.core.notifications import NotificationDispatcher, Outbox, get_notifier
from app.core.permissions import effective_project_permission
from app.core.tokens import TokenService, get_token_service
from app.models.user import User
from app.services import invites as invite_service
from app.services import memberships as membership_service
from app.services import projects as project_service
from app.services import workspaces as workspace_service
from taskhub_shared.schemas.common import MessageResponse
from taskhub_shared.schemas.projects import ProjectCreate, ProjectListResponse, ProjectResponse
from taskhub_shared.schemas.workspaces import (
    AcceptInviteTokenRequest,
    InviteMemberRequest,
    UpdateMemberRoleRequest,
    WorkspaceCreate,
    WorkspaceListResponse,
    WorkspaceMemberResponse,
    WorkspaceResponse,
    WorkspaceUpdate,
)

log = structlog.get_logger()
router = APIRouter()


@router.post("", response_model=WorkspaceResponse, status_code=201)
async def create_workspace(
    body: WorkspaceCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    workspace = await workspace_service.create_workspace(body, user.id, session)
    await session.commit()
    return WorkspaceResponse(
        message="Workspace created successfully",
        workspace=await workspace_service.workspace_read(workspace, session),
    )


@router.get("", response_model=WorkspaceListResponse)
async def list_workspaces(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    items = await workspace_service.list_user_workspaces(user.id, session)
    return WorkspaceListResponse(message="Workspaces fetched successfully", workspaces=items)


@router.post("/accept-invite-token", response_model=WorkspaceResponse)
async def accept_invite_token(
    body: AcceptInviteTokenRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    tokens: TokenService = Depends(get_token_service),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    outbox = Outbox()
    workspace = await invite_service.accept_invite_by_token(body.token, user, tokens, session, outbox)
    await session.commit()
    notifier.schedule(background_tasks, outbox)
    return WorkspaceResponse(
        message="Invitation accepted successfully",
        workspace=await workspace_service.workspace_read(workspace, session),
    )


@router.get("/{workspace_id}", response_model=WorkspaceResponse)
async def get_workspace(
    workspace_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    workspace = await workspace_service.get_workspace_details(workspace_id, user.id, session)
    return WorkspaceResponse(
        message="Workspace details fetched successfully",
        workspace=await workspace_service.workspace_read(workspace, session),
    )


@router.put("/{workspace_id}", response_model=WorkspaceResponse)
async def update_workspace(
    workspace_id: uuid.UUID,
    body: WorkspaceUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    workspace = await workspace_service.update_workspace(workspace_id, body, user.id, session)
    await session.commit()
    return WorkspaceResponse(
        message="Workspace updated successfully",
        workspace=await workspace_service.workspace_read(workspace, session),
    )


@router.delete("/{workspace_id}", response_model=MessageResponse)
async def delete_workspace(
    workspace_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await workspace_service.delete_workspace(workspace_id, user.id, session)
    await session.commit()
    return MessageResponse(message="Workspace deleted successfully")


@router.get("/{workspace_id}/projects", response_model=ProjectListResponse)
async def list_workspace_projects(
    workspace_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    projects = await workspace_service.list_workspace_projects(workspace_id, user.id, session)
    return ProjectListResponse(message="Projects fetched successfully", projects=projects)


@router.post("/{workspace_id}/projects", response_model=ProjectResponse, status_code=201)
async def create_project(
    workspace_id: uuid.UUID,
    body: ProjectCreate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    outbox = Outbox()
    workspace = await workspace_service.get_workspace_or_404(workspace_id, session, for_update=True)
    project = await project_service.create_project(workspace, body, user.id, session, outbox)
    await session.commit()
    notifier.schedule(background_tasks, outbox)
    return ProjectResponse(
        message="Project created successfully",
        project=await project_service.project_read(project, session),
        permission=await effective_project_permission(session, user.id, project),
    )


@router.post("/{workspace_id}/invite-member", response_model=MessageResponse)
async def invite_member(
    workspace_id: uuid.UUID,
    body: InviteMemberRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    tokens: TokenService = Depends(get_token_service),
    mailer: Mailer = Depends(get_mailer),
):
    await invite_service.invite_member(workspace_id, body, user, tokens, mailer, session)
    await session.commit()
    return MessageResponse(message="Invitation sent successfully")


@router.post("/{workspace_id}/accept-invite", response_model=WorkspaceResponse)
async def accept_invite(
    workspace_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    tokens: TokenService = Depends(get_token_service),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    outbox = Outbox()
    workspace = await invite_service.accept_invite_for_workspace(
        workspace_id, user, tokens, session, outbox
    )
    await session.commit()
    notifier.schedule(background_tasks, outbox)
    return WorkspaceResponse(
        message="Invitation accepted successfully",
        workspace=await workspace_service.workspace_read(workspace, session),
    )


@router.post("/{workspace_id}/leave", response_model=MessageResponse)
async def leave_workspace(
    workspace_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await membership_service.leave_workspace(workspace_id, user.id, session)
    await session.commit()
    return MessageResponse(message="You have left the workspace")


@router.put("/{workspace_id}/members/{user_id}/role", response_model=WorkspaceMemberResponse)
async def update_member_role(
    workspace_id: uuid.UUID,
    user_id: uuid.UUID,
    body: UpdateMemberRoleRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    outbox = Outbox()
    member = await membership_service.update_workspace_member_role(
        workspace_id, user_id, body.role, user.id, session, outbox
    )
    await session.commit()
    notifier.schedule(background_tasks, outbox)
    return WorkspaceMemberResponse(message="Member role updated successfully", member=member)


@router.delete("/{workspace_id}/members/{user_id}", response_model=MessageResponse)
async def remove_member(
    workspace_id: uuid.UUID,
    user_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    outbox = Outbox()
    await membership_service.remove_workspace_member(workspace_id, user_id, user.id, session, outbox)
    await session.commit()
    notifier.schedule(background_tasks, outbox)
    return MessageResponse(message="Member removed successfully")
