import pytest
from httpx import AsyncClient, ASGITransport
from jose import jwt

from coursewallet.config import settings
from coursewallet.core.security import create_access_token
from coursewallet.main import app
from coursewallet.models.user import UserRole

from conftest import auth_headers, create_user


@pytest.mark.asyncio
async def test_health_needs_no_auth(test_db):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.get("/health")
        assert r.status_code == 200, r.text
        assert r.json() == {"status": "ok"}

@pytest.mark.asyncio
async def test_missing_token_returns_401(test_db):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.get("/api/wallet")
        assert r.status_code == 401, r.text
        assert r.json()["error"] == "authentication_missing"

@pytest.mark.asyncio
async def test_garbage_token_returns_401(test_db):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.get("/api/wallet", headers={"Authorization": "Bearer not-a-jwt"})
        assert r.status_code == 401, r.text

@pytest.mark.asyncio
async def test_token_for_wrong_audience_returns_401(test_db):
    user_id = await create_user(test_db, "aud@example.com")
    token = jwt.encode({"sub": user_id, "aud": "someone-else"}, settings.SUPABASE_JWT_SECRET, settings.JWT_ALGORITHM)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.get("/api/wallet", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 401, r.text

@pytest.mark.asyncio
async def test_expired_token_returns_401(test_db):
    user_id = await create_user(test_db, "expired@example.com")
    headers = {"Authorization": f"Bearer {create_access_token(user_id, expires_minutes=-5)}"}
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.get("/api/wallet", headers=headers)
        assert r.status_code == 401, r.text

@pytest.mark.asyncio
async def test_suspended_user_returns_403(test_db):
    user_id = await create_user(test_db, "suspended@example.com", is_suspended=True)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.get("/api/wallet", headers=auth_headers(user_id))
        assert r.status_code == 403, r.text

@pytest.mark.asyncio
async def test_non_admin_cannot_reach_admin_routes(test_db):
    user_id = await create_user(test_db, "plain@example.com")
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.get("/api/admin/analytics", headers=auth_headers(user_id))
        assert r.status_code == 403, r.text

@pytest.mark.asyncio
async def test_admin_cannot_suspend_self(test_db):
    admin_id = await create_user(test_db, "root@example.com", role=UserRole.admin)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.put(
            f"/api/admin/users/{admin_id}/suspension",
            json={"is_suspended": True},
            headers=auth_headers(admin_id),
        )
        assert r.status_code == 400, r.text

@pytest.mark.asyncio
async def test_suspension_locks_user_out(test_db):
    admin_id = await create_user(test_db, "mod@example.com", role=UserRole.admin)
    user_id = await create_user(test_db, "bad@example.com")
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.put(
            f"/api/admin/users/{user_id}/suspension",
            json={"is_suspended": True},
            headers=auth_headers(admin_id),
        )
        assert r.status_code == 200, r.text
        r = await client.get("/api/notifications", headers=auth_headers(user_id))
        assert r.status_code == 403, r.text
