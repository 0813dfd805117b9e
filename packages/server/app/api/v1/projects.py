"""
Project API endpoints.

GET    /api/v1/projects/{id}                          Project details + caller permission
PUT    /api/v1/projects/{id}                          Update (manager)
POST   /api/v1/projects/{id}/members                  Add a member
PUT    /api/v1/projects/{id}/members                  Replace the member set
PUT    /api/v1/projects/{id}/members/{user_id}/role   Change a member's role
DELETE /api/v1/projects/{id}/members/{user_id}        Remove a member
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_current_user
from app.core.database import get_session
from app.core.notifications import NotificationDispatcher, Outbox, get_notifier
from app.models.user import User
from app.services import memberships as membership_service
from app.services import projects as project_service
from taskhub_shared.schemas.common import MessageResponse
from taskhub_shared.schemas.projects import (
    ProjectMemberAdd,
    ProjectMemberResponse,
    ProjectMemberRoleUpdate,
    ProjectMembersReplace,
    ProjectMembersResponse,
    ProjectResponse,
    ProjectUpdate,
)

router = APIRouter()


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: uuid.UUID,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    project, permission = await project_service.get_project_details(project_id, user.id, session)
    return ProjectResponse(
        message="Project fetched successfully",
        project=await project_service.project_read(project, session),
        permission=permission,
    )


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: uuid.UUID,
    body: ProjectUpdate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    outbox = Outbox()
    project = await project_service.update_project(project_id, body, user.id, session, outbox)
    await session.commit()
    notifier.schedule(background_tasks, outbox)
    return ProjectResponse(
        message="Project updated successfully",
        project=await project_service.project_read(project, session),
    )


@router.post("/{project_id}/members", response_model=ProjectMemberResponse, status_code=201)
async def add_member(
    project_id: uuid.UUID,
    body: ProjectMemberAdd,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    outbox = Outbox()
    member = await membership_service.add_project_member(project_id, body, user.id, session, outbox)
    await session.commit()
    notifier.schedule(background_tasks, outbox)
    return ProjectMemberResponse(message="Member added successfully", member=member)


@router.put("/{project_id}/members", response_model=ProjectMembersResponse)
async def replace_members(
    project_id: uuid.UUID,
    body: ProjectMembersReplace,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    outbox = Outbox()
    members = await membership_service.replace_project_members(
        project_id, body, user.id, session, outbox
    )
    await session.commit()
    notifier.schedule(background_tasks, outbox)
    return ProjectMembersResponse(message="Project members updated successfully", members=members)


@router.put("/{project_id}/members/{user_id}/role", response_model=ProjectMemberResponse)
async def update_member_role(
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    body: ProjectMemberRoleUpdate,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    outbox = Outbox()
    member = await membership_service.update_project_member_role(
        project_id, user_id, body.role, user.id, session, outbox
    )
    await session.commit()
    notifier.schedule(background_tasks, outbox)
    return ProjectMemberResponse(message="Member role updated successfully", member=member)


@router.delete("/{project_id}/members/{user_id}", response_model=MessageResponse)
async def remove_member(
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    outbox = Outbox()
    await membership_service.remove_project_member(project_id, user_id, user.id, session, outbox)
    await session.commit()
    notifier.schedule(background_tasks, outbox)
    return MessageResponse(message="Member removed successfully")
