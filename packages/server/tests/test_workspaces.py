"""
Workspace API tests: CRUD, visibility, leave/remove and role changes.
"""

from __future__ import annotations

import uuid

import pytest
from sqlmodel import select

from app.models.notification import Notification
from app.models.project import Project, ProjectMember
from app.models.token_record import TokenRecord
from app.models.workspace import WorkspaceMember
from app.services.memberships import join_workspace
from app.services.workspaces import get_workspace_or_404
from taskhub_shared.schemas.common import WorkspaceRole


@pytest.fixture
def join(session_factory):
    """Add a user to a workspace through the membership service."""

    async def _join(workspace_id, user, role=WorkspaceRole.MEMBER):
        async with session_factory() as s:
            workspace = await get_workspace_or_404(uuid.UUID(str(workspace_id)), s, for_update=True)
            await join_workspace(workspace, user.id, role, s)
            await s.commit()

    return _join


@pytest.fixture
async def team(client, make_user, auth_headers, join):
    owner = await make_user(name="Olive Owner")
    admin = await make_user(name="Adam Admin")
    member = await make_user(name="Mia Member")
    outsider = await make_user(name="Oscar Outsider")

    resp = await client.post(
        "/api/v1/workspaces",
        json={"name": "Acme", "description": "Rockets", "color": "#112233"},
        headers=auth_headers(owner),
    )
    assert resp.status_code == 201
    ws_id = resp.json()["workspace"]["id"]

    resp = await client.post(
        f"/api/v1/workspaces/{ws_id}/projects", json={"title": "Launchpad"}, headers=auth_headers(owner)
    )
    project_id = resp.json()["project"]["id"]

    # Joining after the project exists cascades both into it.
    await join(ws_id, admin, WorkspaceRole.ADMIN)
    await join(ws_id, member)

    return {
        "ws_id": ws_id,
        "project_id": project_id,
        "owner": owner,
        "admin": admin,
        "member": member,
        "outsider": outsider,
    }


class TestWorkspaceCrud:
    async def test_create_makes_caller_owner(self, client, make_user, auth_headers):
        user = await make_user()
        resp = await client.post("/api/v1/workspaces", json={"name": "  Solo  "}, headers=auth_headers(user))
        assert resp.status_code == 201
        workspace = resp.json()["workspace"]
        assert workspace["name"] == "Solo"
        assert workspace["owner_id"] == str(user.id)
        assert workspace["color"] == "#3b82f6"
        assert [(m["user_id"], m["role"]) for m in workspace["members"]] == [(str(user.id), "owner")]

    async def test_create_validates_color(self, client, make_user, auth_headers):
        user = await make_user()
        resp = await client.post(
            "/api/v1/workspaces", json={"name": "W", "color": "blue"}, headers=auth_headers(user)
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == "VALIDATION_ERROR"

    async def test_requires_session(self, client):
        resp = await client.get("/api/v1/workspaces")
        assert resp.status_code == 401

    async def test_list_shows_own_role(self, client, auth_headers, team):
        resp = await client.get("/api/v1/workspaces", headers=auth_headers(team["member"]))
        assert resp.status_code == 200
        items = resp.json()["workspaces"]
        assert [(w["id"], w["role"]) for w in items] == [(team["ws_id"], "member")]

        resp = await client.get("/api/v1/workspaces", headers=auth_headers(team["outsider"]))
        assert resp.json()["workspaces"] == []

    async def test_details_members_only(self, client, auth_headers, team):
        resp = await client.get(f"/api/v1/workspaces/{team['ws_id']}", headers=auth_headers(team["member"]))
        assert resp.status_code == 200
        assert len(resp.json()["workspace"]["members"]) == 3

        resp = await client.get(f"/api/v1/workspaces/{team['ws_id']}", headers=auth_headers(team["outsider"]))
        assert resp.status_code == 403

    async def test_unknown_workspace(self, client, auth_headers, team):
        resp = await client.get(
            "/api/v1/workspaces/00000000-0000-0000-0000-000000000000", headers=auth_headers(team["owner"])
        )
        assert resp.status_code == 404
        assert resp.json()["message"] == "Workspace not found"

    async def test_update_owner_only(self, client, auth_headers, team):
        resp = await client.put(
            f"/api/v1/workspaces/{team['ws_id']}", json={"name": "Hijacked"}, headers=auth_headers(team["admin"])
        )
        assert resp.status_code == 403

    async def test_partial_update_keeps_other_fields(self, client, auth_headers, team):
        resp = await client.put(
            f"/api/v1/workspaces/{team['ws_id']}", json={"name": "Acme Corp"}, headers=auth_headers(team["owner"])
        )
        assert resp.status_code == 200
        workspace = resp.json()["workspace"]
        assert workspace["name"] == "Acme Corp"
        assert workspace["description"] == "Rockets"
        assert workspace["color"] == "#112233"

    async def test_delete_cascades(self, client, auth_headers, session_factory, team):
        ws_id = team["ws_id"]
        await client.post(
            f"/api/v1/workspaces/{ws_id}/invite-member",
            json={"email": team["outsider"].email},
            headers=auth_headers(team["owner"]),
        )

        resp = await client.delete(f"/api/v1/workspaces/{ws_id}", headers=auth_headers(team["admin"]))
        assert resp.status_code == 403

        resp = await client.delete(f"/api/v1/workspaces/{ws_id}", headers=auth_headers(team["owner"]))
        assert resp.status_code == 200

        async with session_factory() as s:
            for model in (WorkspaceMember, Project, ProjectMember, TokenRecord, Notification):
                rows = (await s.execute(select(model).where(model.workspace_id == uuid.UUID(ws_id)))).scalars().all()
                assert rows == [], model.__name__

        resp = await client.get(f"/api/v1/workspaces/{ws_id}", headers=auth_headers(team["owner"]))
        assert resp.status_code == 404


class TestWorkspaceProjects:
    async def test_managers_see_every_project(self, client, auth_headers, team):
        # Created by the member; the owner is not listed on it.
        await client.post(
            f"/api/v1/workspaces/{team['ws_id']}/projects",
            json={"title": "Side quest"},
            headers=auth_headers(team["member"]),
        )
        resp = await client.get(f"/api/v1/workspaces/{team['ws_id']}/projects", headers=auth_headers(team["admin"]))
        assert sorted(p["title"] for p in resp.json()["projects"]) == ["Launchpad", "Side quest"]

    async def test_members_see_their_projects(self, client, auth_headers, make_user, join, team):
        late = await make_user()
        await join(team["ws_id"], late)
        await client.post(
            f"/api/v1/workspaces/{team['ws_id']}/projects",
            json={"title": "Private"},
            headers=auth_headers(team["owner"]),
        )
        # Joined before "Private" existed, so only the cascaded project is visible.
        resp = await client.get(f"/api/v1/workspaces/{team['ws_id']}/projects", headers=auth_headers(late))
        assert [p["title"] for p in resp.json()["projects"]] == ["Launchpad"]

    async def test_outsider_cannot_list(self, client, auth_headers, team):
        resp = await client.get(
            f"/api/v1/workspaces/{team['ws_id']}/projects", headers=auth_headers(team["outsider"])
        )
        assert resp.status_code == 403


class TestLeaveAndRemove:
    async def test_leave_drops_project_rows(self, client, auth_headers, session_factory, team):
        member = team["member"]
        resp = await client.post(f"/api/v1/workspaces/{team['ws_id']}/leave", headers=auth_headers(member))
        assert resp.status_code == 200

        async with session_factory() as s:
            rows = (await s.execute(select(ProjectMember).where(ProjectMember.user_id == member.id))).scalars().all()
        assert rows == []

        resp = await client.get(f"/api/v1/workspaces/{team['ws_id']}", headers=auth_headers(member))
        assert resp.status_code == 403

    async def test_owner_cannot_leave(self, client, auth_headers, team):
        resp = await client.post(f"/api/v1/workspaces/{team['ws_id']}/leave", headers=auth_headers(team["owner"]))
        assert resp.status_code == 403

    async def test_remove_member_notifies(self, client, auth_headers, session_factory, team):
        member = team["member"]
        resp = await client.delete(
            f"/api/v1/workspaces/{team['ws_id']}/members/{member.id}", headers=auth_headers(team["admin"])
        )
        assert resp.status_code == 200

        async with session_factory() as s:
            notes = (
                await s.execute(select(Notification).where(Notification.user_id == member.id))
            ).scalars().all()
        assert [n.title for n in notes if n.title == "Removed from Workspace"] == ["Removed from Workspace"]

    async def test_remove_owner_forbidden(self, client, auth_headers, team):
        resp = await client.delete(
            f"/api/v1/workspaces/{team['ws_id']}/members/{team['owner'].id}", headers=auth_headers(team["admin"])
        )
        assert resp.status_code == 403
        assert resp.json()["message"] == "Cannot remove the workspace owner"

    async def test_member_cannot_remove(self, client, auth_headers, team):
        resp = await client.delete(
            f"/api/v1/workspaces/{team['ws_id']}/members/{team['admin'].id}", headers=auth_headers(team["member"])
        )
        assert resp.status_code == 403


class TestRoleUpdates:
    async def test_owner_promotes_member(self, client, auth_headers, team):
        member = team["member"]
        resp = await client.put(
            f"/api/v1/workspaces/{team['ws_id']}/members/{member.id}/role",
            json={"role": "admin"},
            headers=auth_headers(team["owner"]),
        )
        assert resp.status_code == 200
        assert resp.json()["member"]["role"] == "admin"

        # Workspace admins resolve to project manager regardless of stored role.
        resp = await client.get(f"/api/v1/projects/{team['project_id']}", headers=auth_headers(member))
        assert resp.json()["permission"] == "manager"

    async def test_admin_cannot_grant_admin(self, client, auth_headers, team):
        resp = await client.put(
            f"/api/v1/workspaces/{team['ws_id']}/members/{team['member'].id}/role",
            json={"role": "admin"},
            headers=auth_headers(team["admin"]),
        )
        assert resp.status_code == 403
        assert resp.json()["message"] == "Only the workspace owner can assign admin roles"

    async def test_admin_demotes_member_to_viewer(self, client, auth_headers, team):
        resp = await client.put(
            f"/api/v1/workspaces/{team['ws_id']}/members/{team['member'].id}/role",
            json={"role": "viewer"},
            headers=auth_headers(team["admin"]),
        )
        assert resp.status_code == 200
        assert resp.json()["member"]["role"] == "viewer"

    async def test_owner_role_is_fixed(self, client, auth_headers, team):
        resp = await client.put(
            f"/api/v1/workspaces/{team['ws_id']}/members/{team['owner'].id}/role",
            json={"role": "member"},
            headers=auth_headers(team["owner"]),
        )
        assert resp.status_code == 403

        resp = await client.put(
            f"/api/v1/workspaces/{team['ws_id']}/members/{team['member'].id}/role",
            json={"role": "owner"},
            headers=auth_headers(team["owner"]),
        )
        assert resp.status_code == 403
