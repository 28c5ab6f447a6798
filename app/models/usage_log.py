"""UsageLog model: one row per routed LLM request, with its billed cost."""

import uuid
from datetime import datetime

from sqlmodel import Field, SQLModel

from app.models.base import CreatedAtMixin, new_uuid


class UsageLog(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "usage_logs"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    user_id: uuid.UUID | None = Field(default=None, foreign_key="users.id", index=True)
    api_key_id: uuid.UUID | None = Field(default=None, foreign_key="api_keys.id")

    # What the caller asked for vs. what actually served the request
    request_model: str | None = Field(default=None, max_length=255)
    model: str | None = Field(default=None, max_length=255)
    provider: str | None = Field(default=None, max_length=255)

    prompt_tokens: int = Field(default=0)
    completion_tokens: int = Field(default=0)
    total_tokens: int = Field(default=0)

    # Dollars; cost includes the pricing prime
    cost: float = Field(default=0.0)
    neuroswitch_fee: float = Field(default=0.0)

    fallback_reason: str | None = Field(default=None)
    response_time: int | None = Field(default=None)


# ── Pydantic schemas ─────────────────────────────────────────

class UsageActivity(SQLModel):
    id: uuid.UUID
    timestamp: datetime
    provider: str | None
    model: str | None
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    llm_provider_cost: float
    neuroswitch_fee: float
    response_time: int | None
    fallback_reason: str | None
    request_model: str | None
    api_key_id: uuid.UUID | None
    api_key_name: str | None
