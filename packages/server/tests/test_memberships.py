"""
Tests for the membership graph.

Covers:
- Join cascade (contributor on existing projects, no duplicates, no overwrite)
- Removal / leave cascade and its single-transaction atomicity
- Workspace role changes (owner immutable, admin grants owner-only)
- Project member add / remove / re-role / replace with containment checks
"""

from __future__ import annotations

import pytest
from sqlmodel import select

from app.core.errors import AlreadyMember, Conflict, Forbidden, NotFound, NotWorkspaceMember
from app.core.notifications import Outbox
from app.models.project import Project, ProjectMember
from app.models.workspace import WorkspaceMember
from app.services import memberships
from app.services.workspaces import create_workspace, get_workspace_or_404
from taskhub_shared.schemas.common import NotificationType, ProjectRole, WorkspaceRole
from taskhub_shared.schemas.projects import ProjectMemberAdd, ProjectMemberIn, ProjectMembersReplace
from taskhub_shared.schemas.workspaces import WorkspaceCreate


async def _project_roles(session, user_id) -> dict:
    result = await session.execute(select(ProjectMember).where(ProjectMember.user_id == user_id))
    return {m.project_id: m.role for m in result.scalars().all()}


@pytest.fixture
async def world(session, make_user):
    """Workspace owned by ``owner`` with an admin and two projects."""
    owner = await make_user(name="Owner")
    admin = await make_user(name="Admin")
    newcomer = await make_user(name="Newcomer")

    workspace = await create_workspace(WorkspaceCreate(name="Acme"), owner.id, session)
    session.add(WorkspaceMember(workspace_id=workspace.id, user_id=admin.id, role="admin"))
    projects = []
    for title in ("Alpha", "Beta"):
        project = Project(workspace_id=workspace.id, title=title, created_by=owner.id)
        session.add(project)
        await session.flush()
        session.add(ProjectMember(project_id=project.id, user_id=owner.id, workspace_id=workspace.id, role="manager"))
        projects.append(project)
    await session.commit()
    return {"workspace": workspace, "owner": owner, "admin": admin, "newcomer": newcomer, "projects": projects}


class TestJoinCascade:
    async def test_join_adds_contributor_everywhere(self, session, world):
        ws, newcomer = world["workspace"], world["newcomer"]
        member, cascaded = await memberships.join_workspace(ws, newcomer.id, WorkspaceRole.MEMBER, session)
        await session.commit()

        assert member.role == "member"
        assert set(cascaded) == {p.id for p in world["projects"]}
        roles = await _project_roles(session, newcomer.id)
        assert roles == {p.id: "contributor" for p in world["projects"]}

    async def test_admin_still_gets_contributor(self, session, world):
        ws, newcomer = world["workspace"], world["newcomer"]
        await memberships.join_workspace(ws, newcomer.id, WorkspaceRole.ADMIN, session)
        roles = await _project_roles(session, newcomer.id)
        assert set(roles.values()) == {"contributor"}

    async def test_existing_project_membership_not_overwritten(self, session, world):
        ws, newcomer = world["workspace"], world["newcomer"]
        alpha, beta = world["projects"]
        session.add(ProjectMember(project_id=alpha.id, user_id=newcomer.id, workspace_id=ws.id, role="manager"))
        await session.flush()

        _, cascaded = await memberships.join_workspace(ws, newcomer.id, WorkspaceRole.VIEWER, session)
        await session.commit()

        assert cascaded == [beta.id]
        roles = await _project_roles(session, newcomer.id)
        assert roles == {alpha.id: "manager", beta.id: "contributor"}

    async def test_join_twice_rejected(self, session, world):
        ws, newcomer = world["workspace"], world["newcomer"]
        await memberships.join_workspace(ws, newcomer.id, WorkspaceRole.MEMBER, session)
        with pytest.raises(AlreadyMember) as exc:
            await memberships.join_workspace(ws, newcomer.id, WorkspaceRole.MEMBER, session)
        assert exc.value.status_code == 409

    async def test_cascade_not_retroactive(self, session, world):
        ws, newcomer = world["workspace"], world["newcomer"]
        await memberships.join_workspace(ws, newcomer.id, WorkspaceRole.MEMBER, session)
        later = Project(workspace_id=ws.id, title="Gamma", created_by=world["owner"].id)
        session.add(later)
        await session.commit()
        assert later.id not in await _project_roles(session, newcomer.id)


class TestRemoval:
    @pytest.fixture
    async def joined(self, session, world):
        await memberships.join_workspace(world["workspace"], world["newcomer"].id, WorkspaceRole.MEMBER, session)
        await session.commit()
        return world

    async def test_remove_cascades(self, session, joined):
        ws, newcomer = joined["workspace"], joined["newcomer"]
        outbox = Outbox()
        await memberships.remove_workspace_member(ws.id, newcomer.id, joined["owner"].id, session, outbox)
        await session.commit()

        assert await session.get(WorkspaceMember, (ws.id, newcomer.id)) is None
        assert await _project_roles(session, newcomer.id) == {}
        [event] = outbox.events
        assert event.type == NotificationType.WORKSPACE_UPDATED
        assert event.recipients == {newcomer.id}

    async def test_remove_is_one_transaction(self, session, joined):
        ws_id, newcomer_id = joined["workspace"].id, joined["newcomer"].id
        await memberships.remove_workspace_member(ws_id, newcomer_id, joined["owner"].id, session, Outbox())
        await session.rollback()

        assert await session.get(WorkspaceMember, (ws_id, newcomer_id)) is not None
        assert len(await _project_roles(session, newcomer_id)) == 2

    async def test_owner_cannot_be_removed(self, session, joined):
        ws = joined["workspace"]
        with pytest.raises(Forbidden) as exc:
            await memberships.remove_workspace_member(ws.id, joined["owner"].id, joined["admin"].id, session, Outbox())
        assert exc.value.detail == "Cannot remove the workspace owner"

    async def test_member_cannot_remove(self, session, joined):
        ws = joined["workspace"]
        with pytest.raises(Forbidden):
            await memberships.remove_workspace_member(ws.id, joined["admin"].id, joined["newcomer"].id, session, Outbox())

    async def test_admin_cannot_remove_admin(self, session, joined, make_user):
        ws = joined["workspace"]
        other = await make_user()
        session.add(WorkspaceMember(workspace_id=ws.id, user_id=other.id, role="admin"))
        await session.commit()
        with pytest.raises(Forbidden):
            await memberships.remove_workspace_member(ws.id, other.id, joined["admin"].id, session, Outbox())

    async def test_remove_unknown_member(self, session, joined, make_user):
        stranger = await make_user()
        with pytest.raises(NotFound):
            await memberships.remove_workspace_member(
                joined["workspace"].id, stranger.id, joined["owner"].id, session, Outbox()
            )

    async def test_leave(self, session, joined):
        ws, newcomer = joined["workspace"], joined["newcomer"]
        await memberships.leave_workspace(ws.id, newcomer.id, session)
        await session.commit()
        assert await session.get(WorkspaceMember, (ws.id, newcomer.id)) is None
        assert await _project_roles(session, newcomer.id) == {}

    async def test_owner_cannot_leave(self, session, joined):
        with pytest.raises(Forbidden):
            await memberships.leave_workspace(joined["workspace"].id, joined["owner"].id, session)


class TestWorkspaceRoles:
    @pytest.fixture
    async def joined(self, session, world):
        await memberships.join_workspace(world["workspace"], world["newcomer"].id, WorkspaceRole.MEMBER, session)
        await session.commit()
        return world

    async def test_owner_grants_admin(self, session, joined):
        ws, newcomer = joined["workspace"], joined["newcomer"]
        outbox = Outbox()
        member = await memberships.update_workspace_member_role(
            ws.id, newcomer.id, WorkspaceRole.ADMIN, joined["owner"].id, session, outbox
        )
        assert member["role"] == "admin"
        [event] = outbox.events
        assert event.title == "Your Role Updated"

    async def test_admin_cannot_grant_admin(self, session, joined):
        ws, newcomer = joined["workspace"], joined["newcomer"]
        with pytest.raises(Forbidden) as exc:
            await memberships.update_workspace_member_role(
                ws.id, newcomer.id, WorkspaceRole.ADMIN, joined["admin"].id, session, Outbox()
            )
        assert exc.value.detail == "Only the workspace owner can assign admin roles"

    async def test_admin_can_demote_member(self, session, joined):
        ws, newcomer = joined["workspace"], joined["newcomer"]
        member = await memberships.update_workspace_member_role(
            ws.id, newcomer.id, WorkspaceRole.VIEWER, joined["admin"].id, session, Outbox()
        )
        assert member["role"] == "viewer"

    async def test_owner_role_never_granted(self, session, joined):
        ws, newcomer = joined["workspace"], joined["newcomer"]
        with pytest.raises(Forbidden):
            await memberships.update_workspace_member_role(
                ws.id, newcomer.id, WorkspaceRole.OWNER, joined["owner"].id, session, Outbox()
            )

    async def test_owner_row_immutable(self, session, joined):
        ws = joined["workspace"]
        with pytest.raises(Forbidden):
            await memberships.update_workspace_member_role(
                ws.id, joined["owner"].id, WorkspaceRole.MEMBER, joined["owner"].id, session, Outbox()
            )

    async def test_member_cannot_change_roles(self, session, joined):
        ws = joined["workspace"]
        with pytest.raises(Forbidden):
            await memberships.update_workspace_member_role(
                ws.id, joined["admin"].id, WorkspaceRole.VIEWER, joined["newcomer"].id, session, Outbox()
            )

    async def test_unchanged_role_is_silent(self, session, joined):
        ws, newcomer = joined["workspace"], joined["newcomer"]
        outbox = Outbox()
        await memberships.update_workspace_member_role(
            ws.id, newcomer.id, WorkspaceRole.MEMBER, joined["owner"].id, session, outbox
        )
        assert len(outbox) == 0


class TestProjectMembers:
    async def test_add_requires_workspace_membership(self, session, world):
        alpha = world["projects"][0]
        with pytest.raises(NotWorkspaceMember) as exc:
            await memberships.add_project_member(
                alpha.id, ProjectMemberAdd(user_id=world["newcomer"].id), world["owner"].id, session, Outbox()
            )
        assert exc.value.status_code == 400

    async def test_workspace_admin_is_manager_equivalent(self, session, world):
        ws = await get_workspace_or_404(world["workspace"].id, session)
        await memberships.join_workspace(ws, world["newcomer"].id, WorkspaceRole.MEMBER, session)
        beta = world["projects"][1]
        await memberships.remove_project_member(beta.id, world["newcomer"].id, world["admin"].id, session, Outbox())

        outbox = Outbox()
        member = await memberships.add_project_member(
            beta.id,
            ProjectMemberAdd(user_id=world["newcomer"].id, role=ProjectRole.VIEWER),
            world["admin"].id,
            session,
            outbox,
        )
        assert member["role"] == "viewer"
        assert outbox.events[0].type == NotificationType.PROJECT_MEMBER_ADDED

    async def test_add_duplicate_conflict(self, session, world):
        alpha = world["projects"][0]
        with pytest.raises(Conflict):
            await memberships.add_project_member(
                alpha.id, ProjectMemberAdd(user_id=world["owner"].id), world["admin"].id, session, Outbox()
            )

    async def test_contributor_cannot_manage(self, session, world):
        ws = world["workspace"]
        await memberships.join_workspace(ws, world["newcomer"].id, WorkspaceRole.MEMBER, session)
        alpha = world["projects"][0]
        with pytest.raises(Forbidden):
            await memberships.update_project_member_role(
                alpha.id, world["owner"].id, ProjectRole.VIEWER, world["newcomer"].id, session, Outbox()
            )

    async def test_re_role_and_remove(self, session, world):
        ws = world["workspace"]
        await memberships.join_workspace(ws, world["newcomer"].id, WorkspaceRole.MEMBER, session)
        alpha = world["projects"][0]

        outbox = Outbox()
        member = await memberships.update_project_member_role(
            alpha.id, world["newcomer"].id, ProjectRole.MANAGER, world["owner"].id, session, outbox
        )
        assert member["role"] == "manager"
        assert outbox.events[0].type == NotificationType.PROJECT_STATUS_CHANGED

        await memberships.remove_project_member(alpha.id, world["newcomer"].id, world["owner"].id, session, outbox)
        assert alpha.id not in await _project_roles(session, world["newcomer"].id)

        with pytest.raises(NotFound):
            await memberships.remove_project_member(alpha.id, world["newcomer"].id, world["owner"].id, session, outbox)

    async def test_replace_members(self, session, world):
        ws = world["workspace"]
        await memberships.join_workspace(ws, world["newcomer"].id, WorkspaceRole.MEMBER, session)
        alpha = world["projects"][0]

        outbox = Outbox()
        members = await memberships.replace_project_members(
            alpha.id,
            ProjectMembersReplace(members=[
                ProjectMemberIn(user_id=world["owner"].id, role=ProjectRole.MANAGER),
                ProjectMemberIn(user_id=world["admin"].id, role=ProjectRole.VIEWER),
            ]),
            world["owner"].id,
            session,
            outbox,
        )
        assert {(m["user_id"], m["role"]) for m in members} == {
            (world["owner"].id, "manager"),
            (world["admin"].id, "viewer"),
        }
        types = {e.type: e.recipients for e in outbox.events}
        assert types[NotificationType.PROJECT_MEMBER_ADDED] == {world["admin"].id}
        assert types[NotificationType.PROJECT_STATUS_CHANGED] == {world["newcomer"].id}

    async def test_replace_rejects_outsiders(self, session, world):
        alpha = world["projects"][0]
        with pytest.raises(NotWorkspaceMember):
            await memberships.replace_project_members(
                alpha.id,
                ProjectMembersReplace(members=[ProjectMemberIn(user_id=world["newcomer"].id)]),
                world["owner"].id,
                session,
                Outbox(),
            )
