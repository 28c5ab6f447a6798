"""Tests for login, JWT and API key authentication."""

import uuid
from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.security import (
    API_KEY_PREFIX,
    create_jwt,
    generate_api_key,
    hash_api_key,
    hash_password,
    mask_api_key,
    verify_password,
)
from app.models.api_key import ApiKey
from app.models.user import User, UserRole
from app.services.accounts import create_user_account


async def _user_with_password(session: AsyncSession, password: str = "testpass123") -> dict:
    """Helper: create a password user through the account service."""
    email = f"login-{uuid.uuid4().hex[:8]}@fusion.dev"
    user = await create_user_account(
        session, email=email, display_name="Login User", role=UserRole.USER, password=password
    )
    await session.commit()
    return {"id": user.id, "email": email}


def test_api_key_format():
    raw = generate_api_key()
    assert raw.startswith(API_KEY_PREFIX)
    assert len(raw) == len(API_KEY_PREFIX) + 56
    assert hash_api_key(raw) == hash_api_key(raw)
    assert mask_api_key(raw[:12], raw[-4:]) == f"{raw[:12]}...{raw[-4:]}"


def test_password_hashing():
    hashed = hash_password("hunter22")
    assert verify_password("hunter22", hashed)
    assert not verify_password("hunter23", hashed)
    assert not verify_password("anything", None)


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient, session: AsyncSession):
    """Login returns a JWT that authenticates /auth/me."""
    user = await _user_with_password(session)

    resp = await client.post("/v1/auth/login", json={
        "email": user["email"].upper(),
        "password": "testpass123",
    })
    assert resp.status_code == 200
    data = resp.json()
    assert data["token_type"] == "bearer"
    assert "." in data["access_token"]
    assert data["user"]["email"] == user["email"]

    resp = await client.get(
        "/v1/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"}
    )
    assert resp.status_code == 200
    assert resp.json()["user"]["id"] == str(user["id"])
    assert resp.json()["balance_cents"] == 0


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, session: AsyncSession):
    user = await _user_with_password(session)
    resp = await client.post("/v1/auth/login", json={
        "email": user["email"],
        "password": "wrongpassword",
    })
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_login_unknown_email(client: AsyncClient):
    resp = await client.post("/v1/auth/login", json={
        "email": "nobody@nowhere.com",
        "password": "whatever123",
    })
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_login_disabled_account(client: AsyncClient, session: AsyncSession):
    user = await _user_with_password(session)
    row = await session.get(User, user["id"])
    row.is_active = False
    session.add(row)
    await session.commit()

    resp = await client.post("/v1/auth/login", json={
        "email": user["email"],
        "password": "testpass123",
    })
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_jwt_role_is_read_from_database(client: AsyncClient, member):
    """A forged admin claim does not grant admin access."""
    token = create_jwt(subject=str(member["id"]), role="admin")
    resp = await client.get("/v1/admin/users", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_expired_jwt_rejected(client: AsyncClient, member):
    token = create_jwt(subject=str(member["id"]), role="user", expires_delta=timedelta(minutes=-1))
    resp = await client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_inactive_key_rejected(client: AsyncClient, session: AsyncSession, member):
    raw = generate_api_key()
    session.add(ApiKey(
        user_id=member["id"],
        name="revoked",
        key_hash=hash_api_key(raw),
        key_prefix=raw[:12],
        key_suffix=raw[-4:],
        is_active=False,
    ))
    await session.commit()

    resp = await client.get("/v1/auth/me", headers={"Authorization": f"Bearer {raw}"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_api_key_records_last_use(client: AsyncClient, session: AsyncSession, member):
    resp = await client.get("/v1/auth/me", headers=member["headers"])
    assert resp.status_code == 200

    raw = member["headers"]["Authorization"].removeprefix("Bearer ")
    last_used = (await session.execute(
        select(ApiKey.last_used_at).where(ApiKey.key_hash == hash_api_key(raw))
    )).scalar_one()
    assert last_used is not None
