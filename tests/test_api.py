# tests/test_api.py

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from taskflow_api.app.core.config import settings as app_settings
from taskflow_api.app.schemas.workspace import MemberRole
from taskflow_api.app.services.password_reset_service import PasswordResetService

from . import factories
from .fakes import FakeJob

API = "/api/v1"


def test_health(client: TestClient) -> None:
    response = client.get(f"{API}/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_register_login_me(client: TestClient) -> None:
    registered = client.post(
        f"{API}/auth/register",
        json={"email": "First@Example.com", "full_name": "First", "password": "long-enough-pw"},
    )
    assert registered.status_code == 201
    # The first account becomes the super administrator.
    assert registered.json()["role_id"] == 1
    assert registered.json()["email"] == "first@example.com"

    bad = client.post(f"{API}/auth/login", json={"email": "first@example.com", "password": "wrong-password"})
    assert bad.status_code == 401

    login = client.post(f"{API}/auth/login", json={"email": "first@example.com", "password": "long-enough-pw"})
    token = login.json()["access_token"]
    me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["full_name"] == "First"


# ----------------------------------------------------------------------
# Cron
# ----------------------------------------------------------------------


@pytest.mark.parametrize("path", ["/cron/routinary-tasks", "/cron/overdue-tasks"])
def test_cron_requires_authentication(client: TestClient, path: str) -> None:
    assert client.post(f"{API}{path}").status_code == 401
    assert client.get(f"{API}{path}", headers={"Authorization": "Bearer not-a-token"}).status_code == 401


@pytest.mark.parametrize("path", ["/cron/routinary-tasks", "/cron/overdue-tasks"])
def test_cron_requires_super_admin(client: TestClient, owner: dict, path: str) -> None:
    response = client.post(f"{API}{path}", headers=factories.auth_headers(owner))

    assert response.status_code == 403
    assert response.json()["detail"] == "Only super admins can access cron jobs"


def test_cron_trigger_and_status(client: TestClient, super_admin: dict) -> None:
    headers = factories.auth_headers(super_admin)

    triggered = client.post(f"{API}/cron/overdue-tasks", headers=headers)
    status = client.get(f"{API}/cron/overdue-tasks", headers=headers)

    assert triggered.status_code == 200
    body = triggered.json()
    assert body["success"] is True
    assert body["result"]["updated_count"] == 0
    assert status.json()["overdue_tasks_count"] == 0
    assert status.json()["cron_job"]["last_execution"]["success"] is True
    assert status.json()["cron_job"]["is_running"] is False


def test_routinary_trigger_creates_tasks(client: TestClient, super_admin: dict, workspace: dict) -> None:
    # A run date far in the past gets one catch-up run.
    factories.create_service(workspace, "Pump Check", "DAILY", next_run=datetime(2020, 1, 1, tzinfo=timezone.utc))
    headers = factories.auth_headers(super_admin)

    response = client.post(f"{API}/cron/routinary-tasks", headers=headers)
    overview = client.get(f"{API}/cron/routinary-tasks", headers=headers).json()

    assert response.status_code == 200
    assert response.json()["result"]["created"] == 1
    assert overview["routinary_services_due_count"] == 0
    assert overview["routinary_services"][0]["name"] == "Pump Check"


def test_cron_failure_returns_500(client: TestClient, super_admin: dict) -> None:
    client.app.state.scheduler.get_job("routinary-tasks").func = FakeJob(error=RuntimeError("boom"))

    response = client.post(f"{API}/cron/routinary-tasks", headers=factories.auth_headers(super_admin))

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to create routinary tasks"


def test_static_super_admin_token(client: TestClient, super_admin: dict, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app_settings, "super_admin_static_token", "static-cron-secret")

    response = client.post(
        f"{API}/cron/overdue-tasks", headers={"Authorization": "Bearer static-cron-secret"}
    )

    assert response.status_code == 200


# ----------------------------------------------------------------------
# Forgot password
# ----------------------------------------------------------------------


def test_forgot_password_is_rate_limited(client: TestClient, owner: dict) -> None:
    first = client.post(f"{API}/auth/forgot-password", json={"email": "owner@example.com"})
    # Same identifier after normalisation.
    second = client.post(f"{API}/auth/forgot-password", json={"email": " OWNER@example.com "})

    assert first.status_code == 200
    assert second.status_code == 429
    assert second.json()["detail"].startswith("You can only request a password reset once per day.")
    assert int(second.headers["Retry-After"]) > 0


def test_forgot_password_refunds_failed_send(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    async def failing_request_reset(email: str) -> None:
        raise ConnectionError("smtp down")

    monkeypatch.setattr(PasswordResetService, "request_reset", failing_request_reset)

    first = client.post(f"{API}/auth/forgot-password", json={"email": "someone@example.com"})
    second = client.post(f"{API}/auth/forgot-password", json={"email": "someone@example.com"})

    assert first.status_code == 400
    # Not 429: the failed attempt was refunded.
    assert second.status_code == 400


def test_reset_password_with_issued_token(client: TestClient, owner: dict) -> None:
    token = asyncio.run(PasswordResetService.request_reset("owner@example.com"))

    reset = client.post(f"{API}/auth/reset-password", json={"token": token, "password": "brand-new-pw"})
    reused = client.post(f"{API}/auth/reset-password", json={"token": token, "password": "another-pw-1"})
    login = client.post(f"{API}/auth/login", json={"email": "owner@example.com", "password": "brand-new-pw"})

    assert reset.status_code == 200
    assert reused.status_code == 400
    assert login.status_code == 200


def test_change_password(client: TestClient, owner: dict) -> None:
    headers = factories.auth_headers(owner)

    wrong = client.post(
        f"{API}/auth/change-password",
        json={"current_password": "not-my-password", "new_password": "brand-new-pw"},
        headers=headers,
    )
    changed = client.post(
        f"{API}/auth/change-password",
        json={"current_password": factories.PASSWORD, "new_password": "brand-new-pw"},
        headers=headers,
    )
    old_login = client.post(f"{API}/auth/login", json={"email": "owner@example.com", "password": factories.PASSWORD})
    new_login = client.post(f"{API}/auth/login", json={"email": "owner@example.com", "password": "brand-new-pw"})

    assert wrong.status_code == 400
    assert wrong.json()["detail"] == "Current password is incorrect"
    assert changed.status_code == 200
    assert old_login.status_code == 401
    assert new_login.status_code == 200


def test_change_password_requires_authentication(client: TestClient) -> None:
    response = client.post(
        f"{API}/auth/change-password", json={"current_password": "whatever", "new_password": "brand-new-pw"}
    )

    assert response.status_code == 401


# ----------------------------------------------------------------------
# Workspaces, tasks and notifications
# ----------------------------------------------------------------------


def test_workspace_access_errors(client: TestClient, owner: dict, workspace: dict) -> None:
    outsider = factories.create_user("out@example.com", "Outsider")

    assert client.get(f"{API}/workspaces/9999", headers=factories.auth_headers(owner)).status_code == 404
    assert client.get(f"{API}/workspaces/{workspace['id']}", headers=factories.auth_headers(outsider)).status_code == 403


def test_task_flow_over_http(client: TestClient, owner: dict, workspace: dict) -> None:
    john = factories.create_user("john@example.com", "John Smith")
    factories.add_member(workspace, john, MemberRole.MEMBER)
    headers = factories.auth_headers(owner)

    created = client.post(f"{API}/tasks", json={"name": "  Fix pump ", "workspace_id": workspace["id"]}, headers=headers)
    task_id = created.json()["id"]
    message = client.post(f"{API}/tasks/{task_id}/messages", json={"content": "@john please check"}, headers=headers)
    too_long = client.post(f"{API}/tasks/{task_id}/messages", json={"content": "x" * 1001}, headers=headers)
    listed = client.get(f"{API}/tasks", params={"workspace_id": workspace["id"]}, headers=headers)

    assert created.status_code == 201
    assert created.json()["name"] == "Fix pump"
    assert created.json()["task_number"] == "Task #0000001"
    assert message.status_code == 201
    assert message.json()["mentioned_user_ids"] == [john["user_id"]]
    assert too_long.status_code == 422
    assert [t["id"] for t in listed.json()] == [task_id]

    john_headers = factories.auth_headers(john)
    count = client.get(f"{API}/notifications/count", headers=john_headers)
    page = client.get(f"{API}/notifications", params={"limit": 10}, headers=john_headers)
    read = client.post(f"{API}/notifications/read", json={"task_id": task_id}, headers=john_headers)

    assert count.json() == {"count": 1}
    assert page.json()["documents"][0]["type"] == "MENTION"
    assert read.json() == {"updated_count": 1}


def test_mark_read_without_selector_is_400(client: TestClient, owner: dict) -> None:
    response = client.post(f"{API}/notifications/read", json={}, headers=factories.auth_headers(owner))

    assert response.status_code == 400
    assert response.json()["detail"] == "Must specify notification IDs, task ID, or mark all"


def test_create_mention_endpoint(client: TestClient, owner: dict, workspace: dict) -> None:
    maria = factories.create_user("maria@example.com", "Maria Santos")
    factories.add_member(workspace, maria, MemberRole.MEMBER)

    response = client.post(
        f"{API}/notifications/create-mention",
        json={
            "user_id": maria["user_id"],
            "type": "MENTION",
            "title": "Heads up",
            "message": "Look at the pump",
            "workspace_id": workspace["id"],
        },
        headers=factories.auth_headers(owner),
    )

    assert response.status_code == 201
    assert response.json()["mentioned_by"] == owner["user_id"]


@pytest.mark.parametrize("field", ["name", "is_public", "include_weekends", "is_routinary"])
def test_service_update_rejects_null_for_required_fields(
    client: TestClient, owner: dict, workspace: dict, field: str
) -> None:
    service = factories.create_service(
        workspace, "Pump Check", "DAILY", next_run=datetime(2030, 1, 1, tzinfo=timezone.utc)
    )

    response = client.patch(f"{API}/services/{service['id']}", json={field: None}, headers=factories.auth_headers(owner))
    row = factories.fetch_one("SELECT * FROM services WHERE id = ?", (service["id"],))

    assert response.status_code == 400
    assert row["name"] == "Pump Check"
    assert row["is_routinary"] == 1
    assert row["routinary_next_run_date"] is not None


def test_service_update_applies_name(client: TestClient, owner: dict, workspace: dict) -> None:
    service = factories.create_service(workspace, "Pump Check")

    response = client.patch(
        f"{API}/services/{service['id']}", json={"name": "  Boiler Check "}, headers=factories.auth_headers(owner)
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Boiler Check"
