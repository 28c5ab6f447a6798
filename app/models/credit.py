"""Credit ledger models: per-user balance plus append-only transactions."""

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlmodel import Field, SQLModel

from app.models.base import CreatedAtMixin, new_uuid, utcnow


class CreditMethod(StrEnum):
    STRIPE = "stripe"
    BTCPAY = "btcpay"
    ADMIN_ADJUSTMENT = "admin_adjustment"


class CreditStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class CreditAccount(SQLModel, table=True):
    """Denormalized running balance; must equal the sum of completed transactions."""

    __tablename__ = "user_credits"

    user_id: uuid.UUID = Field(
        foreign_key="users.id", primary_key=True, ondelete="CASCADE"
    )
    balance_cents: int = Field(default=0, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)


class CreditTransaction(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "credit_transactions"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    user_id: uuid.UUID = Field(
        foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE"
    )
    # Positive = credit, negative = debit
    amount_cents: int = Field(nullable=False)
    method: CreditMethod = Field(index=True)
    status: CreditStatus = Field(index=True)
    # Stripe / BTCPay reference
    provider_transaction_id: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None)


# ── Pydantic schemas ─────────────────────────────────────────

class CreditTransactionRead(SQLModel):
    id: uuid.UUID
    amount_cents: int
    method: CreditMethod
    status: CreditStatus
    description: str | None
    created_at: datetime


class CreditAdjustmentRequest(SQLModel):
    # Loosely typed: shape errors are reported by the ledger as 400s
    amount_cents: Any = None
    reason: Any = None


class CreditAdjustmentResponse(SQLModel):
    message: str = "User credits adjusted successfully."
    user_id: uuid.UUID
    previous_balance_cents: int
    adjusted_amount_cents: int
    new_balance_cents: int
