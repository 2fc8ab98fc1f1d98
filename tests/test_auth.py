"""
Auth endpoint tests — signup (which also opens the user's blog), login,
and bearer-token identity on /auth/me.
"""
from datetime import timedelta

import jwt
import pytest
from httpx import AsyncClient

from vlog.config import settings
from vlog.exceptions import AuthenticationError
from vlog.security import create_access_token, decode_access_token, hash_password, verify_password


# ---------------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_signup_creates_user_and_blog(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/auth/signup", json={
        "email": "new@example.com",
        "password": "password123",
        "nickname": "newbie",
    })
    assert resp.status_code == 201
    user = resp.json()
    assert user["email"] == "new@example.com"
    assert user["nickname"] == "newbie"
    assert user["blog_id"] is not None
    assert "password" not in user


@pytest.mark.asyncio
async def test_signup_duplicate_email_conflicts(async_client: AsyncClient, register):
    await register("dup@example.com")
    resp = await async_client.post("/api/v1/auth/signup", json={
        "email": "dup@example.com",
        "password": "password123",
        "nickname": "again",
    })
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_signup_validation(async_client: AsyncClient):
    short = await async_client.post("/api/v1/auth/signup", json={
        "email": "short@example.com", "password": "short", "nickname": "s",
    })
    assert short.status_code == 422

    bad_email = await async_client.post("/api/v1/auth/signup", json={
        "email": "not-an-email", "password": "password123", "nickname": "x",
    })
    assert bad_email.status_code == 422


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_login_returns_bearer_token(async_client: AsyncClient, register):
    await register("login@example.com")
    resp = await async_client.post("/api/v1/auth/login", json={
        "email": "login@example.com", "password": "password123",
    })
    assert resp.status_code == 200
    body = resp.json()
    assert body["token_type"] == "bearer"
    assert decode_access_token(body["access_token"]) == "login@example.com"


@pytest.mark.asyncio
async def test_login_wrong_password(async_client: AsyncClient, register):
    await register("login@example.com")
    resp = await async_client.post("/api/v1/auth/login", json={
        "email": "login@example.com", "password": "wrong-password",
    })
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_login_unknown_email(async_client: AsyncClient):
    resp = await async_client.post("/api/v1/auth/login", json={
        "email": "ghost@example.com", "password": "password123",
    })
    assert resp.status_code == 401


# ---------------------------------------------------------------------------
# /me
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_me_returns_acting_user(async_client: AsyncClient, register):
    user, headers = await register("me@example.com", nickname="myself")
    resp = await async_client.get("/api/v1/auth/me", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["id"] == user["id"]
    assert resp.json()["blog_id"] == user["blog_id"]


@pytest.mark.asyncio
async def test_me_requires_token(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/auth/me")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_me_rejects_garbage_and_expired_tokens(async_client: AsyncClient, register):
    await register("me@example.com")
    garbage = await async_client.get(
        "/api/v1/auth/me", headers={"Authorization": "Bearer not.a.token"}
    )
    assert garbage.status_code == 401

    expired = create_access_token("me@example.com", expires_delta=timedelta(minutes=-1))
    resp = await async_client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {expired}"}
    )
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token has expired"


# ---------------------------------------------------------------------------
# Security helpers
# ---------------------------------------------------------------------------

def test_password_hash_round_trip():
    hashed = hash_password("password123")
    assert hashed != "password123"
    assert verify_password("password123", hashed)
    assert not verify_password("password124", hashed)


def test_decode_rejects_token_without_subject():
    token = jwt.encode({"foo": "bar"}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_logout_revokes_token(async_client: AsyncClient, register, fake_redis):
    _, headers = await register("leaving@example.com")

    resp = await async_client.post("/api/v1/auth/logout", headers=headers)
    assert resp.status_code == 204

    resp = await async_client.get("/api/v1/auth/me", headers=headers)
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token has been revoked"

    login = await async_client.post("/api/v1/auth/login", json={
        "email": "leaving@example.com", "password": "password123",
    })
    fresh = {"Authorization": f"Bearer {login.json()['access_token']}"}
    assert (await async_client.get("/api/v1/auth/me", headers=fresh)).status_code == 200


@pytest.mark.asyncio
async def test_logout_without_redis_is_accepted(async_client: AsyncClient, register):
    _, headers = await register("leaving@example.com")
    assert (await async_client.post("/api/v1/auth/logout", headers=headers)).status_code == 204


@pytest.mark.asyncio
async def test_logout_requires_token(async_client: AsyncClient):
    assert (await async_client.post("/api/v1/auth/logout")).status_code == 401
