from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from flecto_manager.apps.api.main import create_app
from flecto_manager.core.config import get_settings
from flecto_manager.domain.types import SubjectPermissions
from flecto_manager.tests.utils.factories import (
    FULL_ACCESS,
    NAMESPACE,
    PROJECT,
    create_project,
    create_token_headers,
    create_user_with_permissions,
    project_rules,
)

_PROJECT_URL = f"/v1/namespaces/{NAMESPACE}/projects/{PROJECT}"
_FEED_URL = f"/v1/api/namespace/{NAMESPACE}/project/{PROJECT}"


def _client() -> AsyncClient:
    transport = ASGITransport(app=create_app())
    return AsyncClient(transport=transport, base_url="http://test")


def _redirect_body(source: str = "/old", target: str = "/new", status: int = 301) -> dict:
    return {"new_redirect": {"type": "basic", "source": source, "target": target, "status": status}}


@pytest.mark.asyncio
async def test_health_is_public_and_enveloped() -> None:
    async with _client() as client:
        response = await client.get("/v1/health", headers={"X-Request-Id": "req-123"})
    assert response.status_code == 200
    body = response.json()
    assert body["data"]["status"] == "ok"
    assert body["meta"]["request_id"] == "req-123"
    assert response.headers["X-Request-Id"] == "req-123"


@pytest.mark.asyncio
async def test_missing_or_bad_credentials_are_rejected() -> None:
    async with _client() as client:
        missing = await client.get("/v1/namespaces")
        garbage = await client.get("/v1/namespaces", headers={"Authorization": "Bearer not-a-jwt"})
        unknown_token = await client.get("/v1/namespaces", headers={"Authorization": "Bearer flecto_nope"})
    for response in (missing, garbage, unknown_token):
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_UNAUTHORIZED"
        assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_insufficient_rules_are_forbidden() -> None:
    await create_project()
    await create_project(project_code="shop")
    _user_id, _username, headers = await create_user_with_permissions(project_rules("redirect", "read"))
    async with _client() as client:
        allowed = await client.get(f"{_PROJECT_URL}/redirects", headers=headers)
        other_project = await client.get(f"/v1/namespaces/{NAMESPACE}/projects/shop/redirects", headers=headers)
        write = await client.post(f"{_PROJECT_URL}/redirect-drafts", json=_redirect_body(), headers=headers)
        admin = await client.post("/v1/namespaces", json={"namespace_code": "beta", "name": "Beta"}, headers=headers)
    assert allowed.status_code == 200
    for response in (other_project, write, admin):
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"


@pytest.mark.asyncio
async def test_login_refresh_me_and_logout() -> None:
    await create_user_with_permissions(project_rules(), username="alice", password="s3cret-pass")
    async with _client() as client:
        bad = await client.post("/v1/auth/login", json={"username": "alice", "password": "wrong"})
        assert bad.status_code == 401

        login = await client.post("/v1/auth/login", json={"username": "alice", "password": "s3cret-pass"})
        assert login.status_code == 200
        tokens = login.json()["data"]
        assert tokens["user"]["username"] == "alice"
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}

        me = await client.get("/v1/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json()["data"]["auth_type"] == "basic"
        assert me.json()["data"]["permissions"]["resources"] == [
            {"namespace": NAMESPACE, "project": PROJECT, "resource": "*", "action": "*"}
        ]

        refreshed = await client.post("/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refreshed.status_code == 200
        rotated = refreshed.json()["data"]["refresh_token"]

        # A refresh token is not an access token.
        misuse = await client.get("/v1/auth/me", headers={"Authorization": f"Bearer {rotated}"})
        assert misuse.status_code == 401

        logout = await client.post("/v1/auth/logout", headers=headers)
        assert logout.json()["data"] == {"logged_out": True}
        after = await client.post("/v1/auth/refresh", json={"refresh_token": rotated})
        assert after.status_code == 401


@pytest.mark.asyncio
async def test_draft_publish_and_agent_feed_flow() -> None:
    _user_id, _username, headers = await create_user_with_permissions(FULL_ACCESS)
    agent_headers = await create_token_headers(project_rules(action="read"), name="edge-agent")
    async with _client() as client:
        namespace = await client.post(
            "/v1/namespaces", json={"namespace_code": NAMESPACE, "name": "Acme"}, headers=headers
        )
        assert namespace.status_code == 201
        project = await client.post(
            f"/v1/namespaces/{NAMESPACE}/projects", json={"project_code": PROJECT, "name": "Web"}, headers=headers
        )
        assert project.status_code == 201
        assert project.json()["data"]["version"] == 1

        draft = await client.post(f"{_PROJECT_URL}/redirect-drafts", json=_redirect_body(), headers=headers)
        assert draft.status_code == 201
        assert draft.json()["data"]["change_type"] == "CREATE"

        # Nothing reaches agents before publishing.
        before = await client.get(f"{_FEED_URL}/redirects", headers=agent_headers)
        assert before.json()["data"]["total"] == 0

        published = await client.post(f"{_PROJECT_URL}/publish", headers=headers)
        assert published.status_code == 200
        assert published.json()["data"]["version"] == 2
        assert published.json()["data"]["redirects_upserted"] == 1

        version = await client.get(f"{_FEED_URL}/version", headers=agent_headers)
        assert version.json()["data"] == {"version": 2}
        feed = await client.get(f"{_FEED_URL}/redirects", headers=agent_headers)
        items = feed.json()["data"]["items"]
        assert [(item["source"], item["target"], item["status"]) for item in items] == [("/old", "/new", 301)]

        listed = await client.get(f"{_PROJECT_URL}/redirects", headers=headers)
        assert listed.json()["data"]["items"][0]["draft"] is None

        nothing = await client.post(f"{_PROJECT_URL}/publish", headers=headers)
        assert nothing.status_code == 400
        assert nothing.json()["error"]["code"] == "NOTHING_TO_PUBLISH"


@pytest.mark.asyncio
async def test_agent_registration_through_feed() -> None:
    await create_project()
    agent_headers = await create_token_headers(project_rules(), name="edge-agent")
    body = {"name": "edge-1", "type": "traefik", "status": "success", "version": "1.0.0", "load_duration_ms": 15}
    async with _client() as client:
        created = await client.post(f"{_FEED_URL}/agents", json=body, headers=agent_headers)
        assert created.status_code == 200
        assert created.json()["data"]["name"] == "edge-1"
        hit = await client.patch(f"{_FEED_URL}/agents/edge-1/hit", headers=agent_headers)
        assert hit.status_code == 200
        missing = await client.patch(f"{_FEED_URL}/agents/edge-9/hit", headers=agent_headers)
        assert missing.status_code == 404


@pytest.mark.asyncio
async def test_validation_failures_map_to_422() -> None:
    await create_project()
    _user_id, _username, headers = await create_user_with_permissions(project_rules())
    async with _client() as client:
        invalid = await client.post(
            f"{_PROJECT_URL}/redirect-drafts", json=_redirect_body(source="no-slash"), headers=headers
        )
        malformed = await client.post(f"{_PROJECT_URL}/redirect-drafts", json={"new_redirect": {}}, headers=headers)
    assert invalid.status_code == 422
    error = invalid.json()["error"]
    assert error["code"] == "VALIDATION_FAILED"
    assert {"field": "source", "rule": "basic_path", "value": "no-slash"} in error["details"]["issues"]
    assert malformed.status_code == 422
    assert malformed.json()["error"]["code"] == "REQUEST_VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_import_upload() -> None:
    await create_project()
    _user_id, _username, headers = await create_user_with_permissions(project_rules())
    content = b"type\tsource\ttarget\tstatus\nbasic\t/a\t/x\t301\nbasic\tbad\t/y\t302\n"
    async with _client() as client:
        response = await client.post(
            f"{_PROJECT_URL}/redirects/import",
            files={"file": ("redirects.tsv", content, "text/tab-separated-values")},
            data={"overwrite": "false"},
            headers=headers,
        )
    assert response.status_code == 200
    result = response.json()["data"]
    assert (result["success"], result["imported"], result["error_count"]) == (False, 1, 1)
    assert result["errors"][0]["line"] == 3


@pytest.mark.asyncio
async def test_import_upload_over_size_limit_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    await create_project()
    _user_id, _username, headers = await create_user_with_permissions(project_rules())
    monkeypatch.setattr(get_settings(), "import_max_file_size", 64)
    content = b"type\tsource\ttarget\tstatus\n" + b"basic\t/a\t/x\t301\n" * 20
    async with _client() as client:
        response = await client.post(
            f"{_PROJECT_URL}/redirects/import",
            files={"file": ("redirects.tsv", content, "text/tab-separated-values")},
            headers=headers,
        )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_IMPORT_FILE"
    async with _client() as client:
        listed = await client.get(f"{_PROJECT_URL}/redirects", headers=headers)
    assert listed.json()["data"]["total"] == 0


@pytest.mark.asyncio
async def test_token_admin_returns_plain_value_once() -> None:
    _user_id, _username, headers = await create_user_with_permissions(FULL_ACCESS)
    body = {
        "name": "ci-deploy",
        "permissions": {"resources": [{"namespace": "*", "project": "*", "resource": "*", "action": "read"}]},
    }
    async with _client() as client:
        created = await client.post("/v1/tokens", json=body, headers=headers)
        assert created.status_code == 201
        data = created.json()["data"]
        assert data["token"].startswith("flecto_")
        assert data["preview"] != data["token"]

        detail = await client.get(f"/v1/tokens/{data['id']}", headers=headers)
        assert "token" not in detail.json()["data"]

        token_headers = {"Authorization": f"Bearer {data['token']}"}
        me = await client.get("/v1/auth/me", headers=token_headers)
        assert me.json()["data"]["auth_type"] == "token"
        assert me.json()["data"]["username"] == "ci-deploy"

        duplicate = await client.post("/v1/tokens", json=body, headers=headers)
        assert duplicate.status_code == 409

        deleted = await client.delete(f"/v1/tokens/{data['id']}", headers=headers)
        assert deleted.status_code == 200
        revoked = await client.get("/v1/auth/me", headers=token_headers)
        assert revoked.status_code == 401


@pytest.mark.asyncio
async def test_token_without_rules_cannot_read_projects() -> None:
    await create_project()
    token_headers = await create_token_headers(SubjectPermissions())
    async with _client() as client:
        response = await client.get(f"{_FEED_URL}/version", headers=token_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_openapi_marks_protected_routes() -> None:
    async with _client() as client:
        response = await client.get("/v1/openapi.json")
    paths = response.json()["paths"]
    assert "security" not in paths["/v1/health"]["get"]
    assert paths["/v1/namespaces"]["get"]["security"] == [{"BearerAuth": []}]
