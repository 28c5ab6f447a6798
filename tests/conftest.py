"""Shared test fixtures: async SQLite in-memory DB + test client."""

import os
import uuid
from collections.abc import AsyncGenerator

os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

# Import all models so metadata is populated
import app.models  # noqa: F401
from app.core.database import get_session
from app.core.security import generate_api_key, hash_api_key
from app.main import app
from app.models.api_key import ApiKey
from app.models.credit import CreditAccount
from app.models.user import User, UserRole


@pytest.fixture(scope="session")
async def engine():
    # One shared connection so separate sessions see each other's commits
    eng = create_async_engine("sqlite+aiosqlite://", echo=False, poolclass=StaticPool)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture(scope="session")
def test_session_factory(engine):
    """Session factory bound to the test SQLite engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(test_session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with test_session_factory() as sess:
        yield sess
        await sess.rollback()


@pytest.fixture
async def client(session) -> AsyncGenerator[AsyncClient, None]:
    """HTTPX async test client with DB session override."""

    async def _override_session():
        yield session

    app.dependency_overrides[get_session] = _override_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _make_user(
    session: AsyncSession,
    role: UserRole = UserRole.USER,
    balance_cents: int | None = 0,
    with_key: bool = True,
) -> dict:
    """Insert a user (optionally with a credit account and API key) and commit.

    Returns plain values so callers never touch expired ORM instances.
    """
    user = User(
        email=f"{role.value}-{uuid.uuid4().hex[:10]}@fusion.dev",
        display_name=f"Test {role.value}",
        role=role,
    )
    session.add(user)
    await session.flush()
    user_id = user.id

    if balance_cents is not None:
        session.add(CreditAccount(user_id=user_id, balance_cents=balance_cents))

    headers = {}
    if with_key:
        raw = generate_api_key()
        session.add(ApiKey(
            user_id=user_id,
            name="test key",
            key_hash=hash_api_key(raw),
            key_prefix=raw[:12],
            key_suffix=raw[-4:],
        ))
        headers = {"Authorization": f"Bearer {raw}"}

    await session.commit()
    return {"id": user_id, "email": user.email, "headers": headers}


@pytest.fixture
async def admin(session) -> dict:
    """A fresh admin user with an API key: {"id", "email", "headers"}."""
    return await _make_user(session, role=UserRole.ADMIN)


@pytest.fixture
async def member(session) -> dict:
    """A fresh non-admin user with an API key and a zero balance."""
    return await _make_user(session, role=UserRole.USER)


@pytest.fixture
def user_factory(session):
    """Coroutine factory: ``await user_factory(role=..., balance_cents=...)``."""

    async def _factory(**kwargs) -> dict:
        return await _make_user(session, **kwargs)

    return _factory
