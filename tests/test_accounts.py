"""Tests for account creation, the bootstrap admin and usage recording."""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.security import verify_password
from app.models.app_config import NEUROSWITCH_CLASSIFIER_FEE_CENTS, PRICING_PRIME_PERCENTAGE, AppConfig
from app.models.credit import CreditAccount
from app.models.usage_log import UsageLog
from app.models.user import UserRole
from app.services.accounts import (
    DuplicateEmailError,
    create_user_account,
    ensure_bootstrap_admin,
    find_user_by_email,
    parse_role,
)
from app.services.usage import record_usage


def test_parse_role():
    assert parse_role("Admin") == UserRole.ADMIN
    assert parse_role(" sub_user ") == UserRole.SUB_USER
    assert parse_role("owner") is None
    assert parse_role(None) is None
    assert parse_role(3) is None


@pytest.mark.asyncio
async def test_create_account_opens_zero_balance(session: AsyncSession):
    email = f"acct-{uuid.uuid4().hex[:8]}@fusion.dev"
    user = await create_user_account(session, email=email, display_name=" Acct ", role=UserRole.PRO)
    await session.commit()

    assert user.display_name == "Acct"
    assert user.password_hash is None
    account = await session.get(CreditAccount, user.id)
    assert account.balance_cents == 0

    with pytest.raises(DuplicateEmailError):
        await create_user_account(session, email=email.upper(), display_name="Again", role=UserRole.USER)


@pytest.mark.asyncio
async def test_bootstrap_admin_created_once(session: AsyncSession):
    email = f"root-{uuid.uuid4().hex[:8]}@fusion.dev"

    assert await ensure_bootstrap_admin(session, email, "bootstrap-pass") is True
    assert await ensure_bootstrap_admin(session, email, "bootstrap-pass") is False

    user = await find_user_by_email(session, email)
    assert user.role == UserRole.ADMIN
    assert verify_password("bootstrap-pass", user.password_hash)


@pytest.mark.asyncio
async def test_bootstrap_admin_needs_credentials(session: AsyncSession):
    assert await ensure_bootstrap_admin(session, "", "x") is False
    assert await ensure_bootstrap_admin(session, "someone@fusion.dev", "") is False


async def _set_config(session: AsyncSession, key: str, value: str) -> None:
    row = (await session.execute(select(AppConfig).where(AppConfig.key == key))).scalar_one_or_none()
    row = row or AppConfig(key=key)
    row.value = value
    session.add(row)
    await session.commit()


@pytest.mark.asyncio
async def test_record_usage_prices_request(session: AsyncSession, member):
    """Usage rows carry the primed provider cost and the classifier fee separately."""
    await _set_config(session, PRICING_PRIME_PERCENTAGE, "20")
    await _set_config(session, NEUROSWITCH_CLASSIFIER_FEE_CENTS, "1")

    entry = await record_usage(
        session,
        user_id=member["id"],
        provider="openai",
        model="dall-e-3",
        prompt_tokens=12,
        completion_tokens=0,
        routed=True,
        request_model="neuroswitch",
        response_time=850,
    )
    await session.commit()

    stored = (await session.execute(select(UsageLog).where(UsageLog.id == entry.id))).scalar_one()
    assert stored.cost == 0.048
    assert stored.neuroswitch_fee == 0.01
    assert stored.total_tokens == 12
    assert stored.request_model == "neuroswitch"
