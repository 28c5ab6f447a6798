"""Tests for the credit ledger adjustment operation."""

import asyncio
import uuid

import pytest
from sqlalchemy import func
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.admin_action import AdminActionLog
from app.models.credit import CreditAccount, CreditMethod, CreditStatus, CreditTransaction
from app.models.user import UserRole
from app.services import credit_ledger
from app.services.credit_ledger import (
    MAX_CENTS,
    InvalidAdjustmentError,
    NegativeBalanceError,
    UserNotFoundError,
    adjust_balance,
    get_balance,
    ledger_balance,
    list_transactions,
    validate_adjustment,
)


async def _transaction_count(session: AsyncSession, user_id: uuid.UUID) -> int:
    stmt = select(func.count()).select_from(CreditTransaction).where(
        CreditTransaction.user_id == user_id
    )
    return (await session.execute(stmt)).scalar_one()


@pytest.mark.asyncio
async def test_credit_then_debit(session: AsyncSession, admin, user_factory):
    """Each adjustment writes one transaction and the balance matches the ledger."""
    target = await user_factory()

    change = await adjust_balance(session, target["id"], 500, "Welcome bonus", admin["id"])
    assert change.previous_balance_cents == 0
    assert change.adjusted_amount_cents == 500
    assert change.new_balance_cents == 500

    change = await adjust_balance(session, target["id"], -120, "Refund reversal", admin["id"])
    assert change.previous_balance_cents == 500
    assert change.new_balance_cents == 380

    assert await get_balance(session, target["id"]) == 380
    assert await ledger_balance(session, target["id"]) == 380
    assert await _transaction_count(session, target["id"]) == 2

    txns = await list_transactions(session, target["id"])
    amounts = sorted(t.amount_cents for t in txns)
    assert amounts == [-120, 500]
    for txn in txns:
        assert txn.method == CreditMethod.ADMIN_ADJUSTMENT
        assert txn.status == CreditStatus.COMPLETED
        assert txn.description.startswith("Admin Credit Adjustment: ")


@pytest.mark.asyncio
async def test_overdraft_rejected_without_changes(session: AsyncSession, admin, user_factory):
    """A deduction beyond the balance fails and leaves no trace."""
    target = await user_factory()
    await adjust_balance(session, target["id"], 100, "Top up", admin["id"])

    with pytest.raises(NegativeBalanceError) as exc_info:
        await adjust_balance(session, target["id"], -101, "Too much", admin["id"])

    assert exc_info.value.current_balance_cents == 100
    assert exc_info.value.max_deduction_cents == 100
    assert "Maximum possible deduction is 100 cents" in str(exc_info.value)
    assert await get_balance(session, target["id"]) == 100
    assert await _transaction_count(session, target["id"]) == 1


@pytest.mark.asyncio
async def test_deduction_to_exactly_zero_allowed(session: AsyncSession, admin, user_factory):
    target = await user_factory(balance_cents=None)
    await adjust_balance(session, target["id"], 250, "Top up", admin["id"])

    change = await adjust_balance(session, target["id"], -250, "Drain", admin["id"])
    assert change.new_balance_cents == 0
    assert await get_balance(session, target["id"]) == 0
    assert await ledger_balance(session, target["id"]) == 0


@pytest.mark.asyncio
async def test_missing_account_row_counts_as_zero(session: AsyncSession, admin, user_factory):
    """Users without a user_credits row start from 0; the row is created."""
    target = await user_factory(balance_cents=None)

    with pytest.raises(NegativeBalanceError) as exc_info:
        await adjust_balance(session, target["id"], -1, "Debit", admin["id"])
    assert exc_info.value.current_balance_cents == 0

    change = await adjust_balance(session, target["id"], 75, "Credit", admin["id"])
    assert change.previous_balance_cents == 0
    account = await session.get(CreditAccount, target["id"])
    assert account is not None
    assert account.balance_cents == 75


@pytest.mark.asyncio
async def test_unknown_user_rejected(session: AsyncSession, admin):
    with pytest.raises(UserNotFoundError):
        await adjust_balance(session, uuid.uuid4(), 100, "Ghost", admin["id"])


@pytest.mark.parametrize("amount", [0, 1.5, "100", True, None])
def test_invalid_amount_rejected(amount):
    with pytest.raises(InvalidAdjustmentError, match="non-zero integer"):
        validate_adjustment(amount, "reason")


@pytest.mark.parametrize("reason", ["", "   ", None, 42])
def test_empty_reason_rejected(reason):
    with pytest.raises(InvalidAdjustmentError, match="Reason"):
        validate_adjustment(10, reason)


def test_reason_is_trimmed():
    assert validate_adjustment(-3, "  goodwill  ") == "goodwill"


@pytest.mark.asyncio
async def test_adjustment_is_audited(session: AsyncSession, admin, user_factory):
    """The audit row shares the adjustment's transaction and captures both balances."""
    target = await user_factory()
    await adjust_balance(
        session, target["id"], 40, "Support credit", admin["id"], ip_address="10.0.0.7"
    )

    stmt = select(AdminActionLog).where(
        AdminActionLog.action_type == "USER_CREDIT_ADJUSTMENT",
        AdminActionLog.target_entity_id == str(target["id"]),
    )
    entry = (await session.execute(stmt)).scalar_one()
    assert entry.admin_user_id == admin["id"]
    assert entry.ip_address == "10.0.0.7"
    assert entry.details == {
        "adjusted_amount_cents": 40,
        "previous_balance_cents": 0,
        "new_balance_cents": 40,
        "reason": "Support credit",
    }


@pytest.mark.asyncio
async def test_concurrent_adjustments_are_serialized(
    test_session_factory, session: AsyncSession, admin, user_factory
):
    """-50 and -60 against 100: exactly one succeeds and the balance ends at 50."""
    target = await user_factory(role=UserRole.PRO, balance_cents=None)
    await adjust_balance(session, target["id"], 100, "Seed", admin["id"])

    async def _debit(amount: int):
        async with test_session_factory() as sess:
            return await adjust_balance(sess, target["id"], amount, "Race", admin["id"])

    results = await asyncio.gather(_debit(-50), _debit(-60), return_exceptions=True)

    failures = [r for r in results if isinstance(r, NegativeBalanceError)]
    successes = [r for r in results if not isinstance(r, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert successes[0].new_balance_cents == 50
    assert failures[0].current_balance_cents == 50

    assert await get_balance(session, target["id"]) == 50
    assert await ledger_balance(session, target["id"]) == 50
    assert await _transaction_count(session, target["id"]) == 2


@pytest.mark.asyncio
async def test_audit_failure_rolls_back_adjustment(
    session: AsyncSession, admin, user_factory, monkeypatch
):
    """Balance, ledger row and audit row are written together or not at all."""
    target = await user_factory(balance_cents=None)
    await adjust_balance(session, target["id"], 100, "Seed", admin["id"])

    async def _failing_audit(*args, **kwargs):
        raise OperationalError("INSERT INTO admin_actions_logs", {}, Exception("disk I/O error"))

    monkeypatch.setattr(credit_ledger, "log_admin_action", _failing_audit)
    with pytest.raises(OperationalError):
        await adjust_balance(session, target["id"], -40, "Lost audit", admin["id"])

    assert await get_balance(session, target["id"]) == 100
    assert await ledger_balance(session, target["id"]) == 100
    assert await _transaction_count(session, target["id"]) == 1


@pytest.mark.parametrize("amount", [2**31, -(2**31) - 1, 3_000_000_000])
def test_out_of_range_amount_rejected(amount):
    with pytest.raises(InvalidAdjustmentError, match="between"):
        validate_adjustment(amount, "reason")


@pytest.mark.asyncio
async def test_balance_overflow_rejected(session: AsyncSession, admin, user_factory):
    target = await user_factory(balance_cents=None)
    await adjust_balance(session, target["id"], MAX_CENTS, "Seed", admin["id"])

    with pytest.raises(InvalidAdjustmentError):
        await adjust_balance(session, target["id"], 1, "One more", admin["id"])
    assert await get_balance(session, target["id"]) == MAX_CENTS
    assert await _transaction_count(session, target["id"]) == 1
