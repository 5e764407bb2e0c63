import httpx
import pytest

from feedback_tracker.core.auth import CurrentUser, get_current_user, issue_token
from feedback_tracker.core.config import get_settings
from feedback_tracker.core.dependencies import get_db


@pytest.mark.asyncio
async def test_health_has_security_headers(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["X-Frame-Options"] == "DENY"


@pytest.mark.asyncio
async def test_protected_routes_require_bearer_token(client):
    for method, path in [
        ("GET", "/api/requests"),
        ("GET", "/api/requests/stats"),
        ("POST", "/api/requests/similar"),
        ("GET", "/api/tags"),
        ("GET", "/api/customers/search"),
        ("GET", "/api/users/profile"),
    ]:
        resp = await client.request(method, path)
        assert resp.status_code == 401, path
        assert resp.json() == {"detail": "Missing bearer token"}


@pytest.mark.asyncio
async def test_admin_route_rejects_user_role(client):
    token, _ = issue_token(user_id="00000000-0000-0000-0000-000000000002", role="user", email="u@example.com")
    resp = await client.get("/api/users", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Requires role: admin"


@pytest.mark.asyncio
async def test_token_with_wrong_audience_is_rejected(client, monkeypatch):
    monkeypatch.setenv("JWT_AUDIENCE", "someone-else")
    from feedback_tracker.core.config import get_settings

    get_settings.cache_clear()
    token, _ = issue_token(user_id="00000000-0000-0000-0000-000000000002", role="user", email=None)
    monkeypatch.delenv("JWT_AUDIENCE")
    get_settings.cache_clear()

    resp = await client.get("/api/users/profile", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_unhandled_error_hides_details_unless_enabled(monkeypatch):
    from feedback_tracker.main import app

    def _no_db():
        yield None

    def _explode(db):
        raise RuntimeError("boom")

    app.dependency_overrides[get_current_user] = lambda: CurrentUser(id="00000000-0000-0000-0000-000000000003", role="user")
    app.dependency_overrides[get_db] = _no_db
    monkeypatch.setattr("feedback_tracker.api.routes.requests.build_request_stats", _explode)
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            resp = await c.get("/api/requests/stats")
            assert resp.status_code == 500
            assert resp.json() == {"detail": "Internal server error"}

            monkeypatch.setenv("EXPOSE_ERROR_DETAILS", "true")
            get_settings.cache_clear()
            resp = await c.get("/api/requests/stats")
            assert resp.status_code == 500
            assert resp.json() == {"detail": "Internal server error", "error": "boom"}
    finally:
        app.dependency_overrides.clear()
