"""
Workspace invitations.

An invite is a ``workspace-invite`` token scoped to one workspace and carrying
the proposed role. It can be accepted with the token itself or, while logged
in, by accepting the pending invite for a workspace by id. Both paths consume
the same single-use record and run the same join cascade.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.errors import AlreadyMember, Forbidden, NotFound, TokenExpired
from app.core.mailer import Mailer, invite_email
from app.core.notifications import Outbox
from app.core.permissions import get_workspace_membership, require_workspace_manager
from app.core.tokens import TokenService
from app.models.base import as_utc
from app.models.user import User
from app.models.workspace import Workspace, WorkspaceMember
from app.services.auth import get_user_by_email
from app.services.memberships import join_workspace
from app.services.token_records import claim_record, consume_token, find_record, issue_token
from app.services.workspaces import get_workspace_or_404
from taskhub_shared.schemas.common import (
    WORKSPACE_MANAGER_ROLES,
    InviteRole,
    NotificationType,
    ResourceType,
    TokenPurpose,
    WorkspaceRole,
)
from taskhub_shared.schemas.workspaces import InviteMemberRequest

log = structlog.get_logger()


async def invite_member(
    workspace_id: uuid.UUID,
    req: InviteMemberRequest,
    inviter: User,
    tokens: TokenService,
    mailer: Mailer,
    session: AsyncSession,
) -> None:
    """Issue an invite token for a registered user and email it."""
    workspace = await get_workspace_or_404(workspace_id, session, for_update=True)
    inviter_role = await require_workspace_manager(
        session, inviter.id, workspace_id, "Only workspace owners and admins can invite members"
    )
    if req.role == InviteRole.ADMIN and inviter_role != WorkspaceRole.OWNER:
        raise Forbidden("Only the workspace owner can assign admin roles")

    invitee = await get_user_by_email(req.email, session)
    if invitee is None:
        raise NotFound("User not found. They must register before being invited")
    if await get_workspace_membership(session, workspace_id, invitee.id):
        raise AlreadyMember()

    token = await issue_token(
        invitee.id,
        TokenPurpose.WORKSPACE_INVITE,
        tokens,
        session,
        workspace_id=workspace.id,
        role=InviteRole(req.role).value,
    )
    link = mailer.build_link(f"/workspace-invite/{workspace.id}", tk=token)
    subject, body = invite_email(inviter.name, workspace.name, InviteRole(req.role).value, link)
    await mailer.send_required(invitee.email, subject, body, what="invitation")

    log.info(
        "workspace.member_invited",
        workspace_id=str(workspace_id),
        invitee_id=str(invitee.id),
        role=InviteRole(req.role).value,
        by=str(inviter.id),
    )


async def _complete_join(
    workspace: Workspace,
    user: User,
    role: str,
    session: AsyncSession,
    outbox: Outbox,
) -> WorkspaceMember:
    member, _ = await join_workspace(workspace, user.id, WorkspaceRole(role), session)

    managers = (
        await session.execute(
            select(WorkspaceMember.user_id).where(
                WorkspaceMember.workspace_id == workspace.id,
                WorkspaceMember.role.in_([r.value for r in WORKSPACE_MANAGER_ROLES]),
            )
        )
    ).scalars().all()

    outbox.add(
        managers,
        type=NotificationType.WORKSPACE_MEMBER_JOINED,
        title="New Member Joined",
        message=f'{user.name} joined "{workspace.name}" as {member.role}',
        resource_type=ResourceType.WORKSPACE,
        resource_id=workspace.id,
        action_by=user.id,
        workspace_id=workspace.id,
        metadata={
            "member_name": user.name,
            "member_role": member.role,
            "workspace_name": workspace.name,
        },
    )
    outbox.add(
        [user.id],
        type=NotificationType.WORKSPACE_INVITED,
        title="Welcome to Workspace",
        message=f'You have joined "{workspace.name}" as {member.role}',
        resource_type=ResourceType.WORKSPACE,
        resource_id=workspace.id,
        action_by=workspace.owner_id,
        workspace_id=workspace.id,
        metadata={"workspace_name": workspace.name, "role": member.role},
    )
    return member


async def accept_invite_by_token(
    token: str,
    user: User,
    tokens: TokenService,
    session: AsyncSession,
    outbox: Outbox,
) -> Workspace:
    """Accept an invite with the emailed token. The token must belong to ``user``."""
    claims, record = await consume_token(
        token, TokenPurpose.WORKSPACE_INVITE, tokens, session, user_id=user.id
    )
    workspace = await get_workspace_or_404(record.workspace_id, session, for_update=True)
    await _complete_join(workspace, user, record.role or claims.get("role"), session, outbox)
    return workspace


async def accept_invite_for_workspace(
    workspace_id: uuid.UUID,
    user: User,
    tokens: TokenService,
    session: AsyncSession,
    outbox: Outbox,
) -> Workspace:
    """Accept the caller's pending invite for ``workspace_id``."""
    workspace = await get_workspace_or_404(workspace_id, session, for_update=True)
    if await get_workspace_membership(session, workspace_id, user.id):
        raise AlreadyMember()

    record = await find_record(
        user.id, TokenPurpose.WORKSPACE_INVITE, session, workspace_id=workspace_id
    )
    if record is None:
        raise NotFound("No pending invitation for this workspace")
    if as_utc(record.expires_at) <= tokens.now():
        await session.delete(record)
        await session.commit()
        log.info("token.expired", purpose=record.purpose, user_id=str(user.id))
        raise TokenExpired()

    await claim_record(record, session)
    await _complete_join(workspace, user, record.role, session, outbox)
    return workspace
