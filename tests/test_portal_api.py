"""
Portal surface tests: login, invitation setup, tasks and comments.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import PORTAL_PASSWORD, portal_headers, staff_headers
from crm_access.models.task import Task, TaskComment

API = "/api"


async def _task(db: AsyncSession, account_id: int, assigned: list[int], **fields) -> Task:
    task = Task(
        title=fields.pop("title", "Quarterly review"),
        description=fields.pop("description", "Prepare the numbers"),
        account_id=account_id,
        assigned_contact_ids=assigned,
        **fields,
    )
    db.add(task)
    await db.commit()
    return task


# ── Login / setup ───────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_portal_login_returns_profile(async_client: AsyncClient, portal_contact):
    resp = await async_client.post(
        f"{API}/portal/login",
        json={"email": portal_contact.email, "password": PORTAL_PASSWORD},
    )
    assert resp.status_code == 200
    contact = resp.json()["contact"]
    assert contact["id"] == portal_contact.id
    assert contact["firstName"] == "Pat"
    assert contact["accountName"] == "Acme Industries"

    me = await async_client.get(
        f"{API}/portal/me", headers={"Authorization": f"Bearer {resp.json()['token']}"}
    )
    assert me.status_code == 200
    assert me.json()["email"] == portal_contact.email


@pytest.mark.asyncio
async def test_portal_login_failure(async_client: AsyncClient, portal_contact):
    resp = await async_client.post(
        f"{API}/portal/login", json={"email": portal_contact.email, "password": "wrong-one"}
    )
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid credentials"
    assert "token" not in resp.json()

    malformed = await async_client.post(
        f"{API}/portal/login", json={"email": portal_contact.email}
    )
    assert malformed.status_code == 422
    assert malformed.json()["error"]


@pytest.mark.asyncio
async def test_staff_token_rejected_by_portal(async_client: AsyncClient, admin_user):
    resp = await async_client.get(f"{API}/portal/tasks", headers=staff_headers(admin_user))
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_invite_and_setup_over_http(
    async_client: AsyncClient, make_contact, seeded_rbac, make_user, admin_headers
):
    contact = await make_contact("fresh@acme.test")
    invited = await async_client.post(
        f"{API}/contacts/{contact.id}/portal/invite", headers=admin_headers
    )
    assert invited.status_code == 200
    link = invited.json()["inviteLink"]
    assert "/portal/setup?token=" in link
    token = link.split("token=", 1)[1]

    short = await async_client.post(
        f"{API}/portal/setup", json={"token": token, "password": "123"}
    )
    assert short.status_code == 400

    ok = await async_client.post(
        f"{API}/portal/setup", json={"token": token, "password": "123456"}
    )
    assert ok.status_code == 200
    assert ok.json()["success"] is True

    again = await async_client.post(
        f"{API}/portal/setup", json={"token": token, "password": "123456"}
    )
    assert again.status_code == 400

    login = await async_client.post(
        f"{API}/portal/login", json={"email": "fresh@acme.test", "password": "123456"}
    )
    assert login.status_code == 200


@pytest.mark.asyncio
async def test_invite_requires_contacts_write(
    async_client: AsyncClient, make_contact, seeded_rbac, make_user
):
    contact = await make_contact("guarded@acme.test")
    reader = await make_user("reader@crm.test", role=seeded_rbac["user"])
    resp = await async_client.post(
        f"{API}/contacts/{contact.id}/portal/invite", headers=staff_headers(reader)
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_revoke_access_over_http(async_client: AsyncClient, portal_contact, admin_headers):
    resp = await async_client.delete(
        f"{API}/contacts/{portal_contact.id}/portal/access", headers=admin_headers
    )
    assert resp.status_code == 200

    probe = await async_client.get(f"{API}/portal/tasks", headers=portal_headers(portal_contact))
    assert probe.status_code == 401


# ── Tasks ───────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_tasks_only_assigned_and_public_comments(
    async_client: AsyncClient, db_session: AsyncSession, portal_contact, make_contact
):
    other = await make_contact("other@acme.test", portal=True)
    mine = await _task(db_session, portal_contact.account_id, [portal_contact.id])
    await _task(db_session, portal_contact.account_id, [other.id], title="Not mine")
    db_session.add_all(
        [
            TaskComment(task_id=mine.id, content="Hello", author_name="Staff", is_private=False),
            TaskComment(task_id=mine.id, content="Secret", author_name="Staff", is_private=True),
        ]
    )
    await db_session.commit()

    resp = await async_client.get(f"{API}/portal/tasks", headers=portal_headers(portal_contact))
    assert resp.status_code == 200
    tasks = resp.json()
    assert [t["id"] for t in tasks] == [mine.id]
    assert [c["content"] for c in tasks[0]["comments"]] == ["Hello"]


@pytest.mark.asyncio
async def test_status_update_and_comment(
    async_client: AsyncClient, db_session: AsyncSession, portal_contact
):
    task = await _task(db_session, portal_contact.account_id, [portal_contact.id])
    headers = portal_headers(portal_contact)

    done = await async_client.patch(
        f"{API}/portal/tasks/{task.id}/status", json={"status": "Completed"}, headers=headers
    )
    assert done.status_code == 200
    assert done.json()["status"] == "Completed"
    assert done.json()["progress"] == 100

    cancelled = await async_client.patch(
        f"{API}/portal/tasks/{task.id}/status", json={"status": "Cancelled"}, headers=headers
    )
    assert cancelled.status_code == 422

    posted = await async_client.post(
        f"{API}/portal/tasks/{task.id}/comments", json={"content": "Thanks!"}, headers=headers
    )
    assert posted.status_code == 201
    assert posted.json()["authorType"] == "external"
    assert posted.json()["authorName"] == "Pat Client"

    listed = await async_client.get(f"{API}/portal/tasks/{task.id}/comments", headers=headers)
    assert [c["content"] for c in listed.json()] == ["Thanks!"]


@pytest.mark.asyncio
async def test_unassigned_task_forbidden(
    async_client: AsyncClient, db_session: AsyncSession, portal_contact
):
    task = await _task(db_session, portal_contact.account_id, [])
    resp = await async_client.get(
        f"{API}/portal/tasks/{task.id}/comments", headers=portal_headers(portal_contact)
    )
    assert resp.status_code == 403

    missing = await async_client.get(
        f"{API}/portal/tasks/424242/comments", headers=portal_headers(portal_contact)
    )
    assert missing.status_code == 404
