"""Credit ledger: balance adjustments with an append-only transaction log.

``user_credits.balance_cents`` is a denormalized fold over
``credit_transactions``. Every balance change writes exactly one transaction
row of the same signed amount, in the same database transaction.

Adjustments for one user are serialized twice over: an in-process lock per
user id, and ``SELECT ... FOR UPDATE`` on the account row for writers in
other processes. The new balance is written as a precomputed value, which is
only safe under that serialization.
"""

import asyncio
import logging
import uuid
import weakref
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.base import utcnow
from app.models.credit import (
    CreditAccount,
    CreditMethod,
    CreditStatus,
    CreditTransaction,
)
from app.models.user import User
from app.services.audit import log_admin_action

logger = logging.getLogger(__name__)

_user_locks: "weakref.WeakValueDictionary[uuid.UUID, asyncio.Lock]" = weakref.WeakValueDictionary()

# balance_cents and amount_cents are 32-bit INTEGER columns
MAX_CENTS = 2**31 - 1
MIN_CENTS = -(2**31)


# ── Errors ────────────────────────────────────────────────────

class LedgerError(Exception):
    """Base class for rejected ledger operations."""


class InvalidAdjustmentError(LedgerError):
    pass


class UserNotFoundError(LedgerError):
    def __init__(self, user_id: uuid.UUID) -> None:
        super().__init__("Target user not found.")
        self.user_id = user_id


class NegativeBalanceError(LedgerError):
    def __init__(self, current_balance_cents: int) -> None:
        super().__init__(
            "Adjustment would result in a negative balance. "
            f"User has {current_balance_cents} cents. "
            f"Maximum possible deduction is {current_balance_cents} cents."
        )
        self.current_balance_cents = current_balance_cents

    @property
    def max_deduction_cents(self) -> int:
        return self.current_balance_cents


@dataclass(frozen=True)
class BalanceChange:
    previous_balance_cents: int
    adjusted_amount_cents: int
    new_balance_cents: int


# ── Helpers ───────────────────────────────────────────────────

def _lock_for(user_id: uuid.UUID) -> asyncio.Lock:
    lock = _user_locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _user_locks[user_id] = lock
    return lock


def validate_adjustment(amount_cents: object, reason: object) -> str:
    """Check request shape; returns the trimmed reason."""
    if (
        not isinstance(amount_cents, int)
        or isinstance(amount_cents, bool)
        or amount_cents == 0
    ):
        raise InvalidAdjustmentError("Invalid amount_cents. Must be a non-zero integer.")
    if not MIN_CENTS <= amount_cents <= MAX_CENTS:
        raise InvalidAdjustmentError(
            f"Invalid amount_cents. Must be between {MIN_CENTS} and {MAX_CENTS}."
        )
    if not isinstance(reason, str) or not reason.strip():
        raise InvalidAdjustmentError(
            "Reason for credit adjustment is required and cannot be empty."
        )
    return reason.strip()


async def _locked_account(session: AsyncSession, user_id: uuid.UUID) -> CreditAccount | None:
    stmt = (
        select(CreditAccount)
        .where(CreditAccount.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


# ── Operations ────────────────────────────────────────────────

def open_account(session: AsyncSession, user_id: uuid.UUID) -> CreditAccount:
    """Stage a zero-balance account for a new user. The caller commits."""
    account = CreditAccount(user_id=user_id, balance_cents=0)
    session.add(account)
    return account


async def get_balance(session: AsyncSession, user_id: uuid.UUID) -> int:
    result = await session.execute(
        select(CreditAccount.balance_cents).where(CreditAccount.user_id == user_id)
    )
    return result.scalar_one_or_none() or 0


async def ledger_balance(session: AsyncSession, user_id: uuid.UUID) -> int:
    """Recompute the balance as the sum of completed transactions.

    Reconciliation helper for operators and tests; ``balance_cents`` must
    always equal this value.
    """
    result = await session.execute(
        select(func.coalesce(func.sum(CreditTransaction.amount_cents), 0)).where(
            CreditTransaction.user_id == user_id,
            CreditTransaction.status == CreditStatus.COMPLETED,
        )
    )
    return int(result.scalar_one())


async def list_transactions(
    session: AsyncSession,
    user_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
) -> list[CreditTransaction]:
    stmt = (
        select(CreditTransaction)
        .where(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.created_at.desc())  # type: ignore[union-attr]
        .limit(limit)
        .offset(offset)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def adjust_balance(
    session: AsyncSession,
    user_id: uuid.UUID,
    amount_cents: int,
    reason: str,
    actor_id: uuid.UUID,
    ip_address: str | None = None,
) -> BalanceChange:
    """Apply a signed admin adjustment atomically and commit it.

    Raises InvalidAdjustmentError, UserNotFoundError or NegativeBalanceError
    without writing anything. Any other failure rolls back and propagates.
    """
    reason = validate_adjustment(amount_cents, reason)

    async with _lock_for(user_id):
        try:
            if await session.get(User, user_id) is None:
                raise UserNotFoundError(user_id)

            account = await _locked_account(session, user_id)
            previous = account.balance_cents if account is not None else 0
            projected = previous + amount_cents
            if projected < 0:
                raise NegativeBalanceError(previous)
            if projected > MAX_CENTS:
                raise InvalidAdjustmentError(
                    f"Adjustment would exceed the maximum balance of {MAX_CENTS} cents."
                )

            # Set, never increment: the row is locked and `previous` is current
            if account is None:
                account = CreditAccount(user_id=user_id, balance_cents=projected)
            else:
                account.balance_cents = projected
                account.updated_at = utcnow()
            session.add(account)

            session.add(CreditTransaction(
                user_id=user_id,
                amount_cents=amount_cents,
                method=CreditMethod.ADMIN_ADJUSTMENT,
                status=CreditStatus.COMPLETED,
                description=f"Admin Credit Adjustment: {reason}",
            ))

            await log_admin_action(
                session,
                admin_user_id=actor_id,
                action_type="USER_CREDIT_ADJUSTMENT",
                target_entity_type="USER",
                target_entity_id=str(user_id),
                details={
                    "adjusted_amount_cents": amount_cents,
                    "previous_balance_cents": previous,
                    "new_balance_cents": projected,
                    "reason": reason,
                },
                summary=reason,
                ip_address=ip_address,
            )
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    logger.info(
        "Adjusted credits for user %s by %d cents (%d -> %d) by admin %s",
        user_id, amount_cents, previous, projected, actor_id,
    )
    return BalanceChange(
        previous_balance_cents=previous,
        adjusted_amount_cents=amount_cents,
        new_balance_cents=projected,
    )
