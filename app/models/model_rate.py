"""ModelRate: platform model catalog with per-million-token pricing."""

import uuid
from datetime import date, datetime

from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, new_uuid


class ModelRate(TimestampMixin, SQLModel, table=True):
    __tablename__ = "models"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    name: str = Field(max_length=255, nullable=False)
    # "provider/model", e.g. "google/gemini-1.5-flash"
    id_string: str = Field(max_length=255, unique=True, nullable=False, index=True)
    provider: str = Field(max_length=100, nullable=False, index=True)

    # USD per 1M tokens; NULL means "unpriced" and triggers the fallback rate
    input_cost_per_million_tokens: float | None = Field(default=None, ge=0)
    output_cost_per_million_tokens: float | None = Field(default=None, ge=0)

    context_length_tokens: int = Field(default=0)
    supports_json_mode: bool = Field(default=False)
    supports_tool_use: bool = Field(default=False)
    supports_vision: bool = Field(default=False)
    description: str | None = Field(default=None)
    release_date: date | None = Field(default=None)

    # Never deleted, only deactivated
    is_active: bool = Field(default=False)


# ── Pydantic schemas ─────────────────────────────────────────

class ModelRateRead(SQLModel):
    id: uuid.UUID
    name: str
    id_string: str
    provider: str
    input_cost_per_million_tokens: float | None
    output_cost_per_million_tokens: float | None
    context_length_tokens: int
    supports_json_mode: bool
    supports_tool_use: bool
    supports_vision: bool
    description: str | None
    release_date: date | None
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ModelRateUpdate(SQLModel):
    # Sign is checked by the handler so it can answer 400
    input_cost_per_million_tokens: float
    output_cost_per_million_tokens: float
    is_active: bool
