"""API key model: bearer keys issued to users."""

import uuid
from datetime import datetime

from sqlmodel import Field, SQLModel

from app.models.base import CreatedAtMixin, new_uuid


class ApiKey(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "api_keys"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    user_id: uuid.UUID = Field(
        foreign_key="users.id", nullable=False, index=True, ondelete="CASCADE"
    )

    name: str = Field(default="My API Key", max_length=255, nullable=False)

    # SHA-256 hash of the raw key; the raw value is shown only once at creation
    key_hash: str = Field(nullable=False, unique=True, index=True)

    # Kept for the masked display, e.g. "sk-fusion-ab...9f3c"
    key_prefix: str = Field(max_length=12, nullable=False)
    key_suffix: str = Field(max_length=4, nullable=False)

    is_active: bool = Field(default=True)
    last_used_at: datetime | None = Field(default=None)


# ── Pydantic schemas ─────────────────────────────────────────

class ApiKeyCreate(SQLModel):
    name: str = Field(max_length=255)


class ApiKeyRead(SQLModel):
    """Returned on list. Never includes the raw key."""
    id: uuid.UUID
    name: str
    api_key_masked: str
    created_at: datetime
    last_used_at: datetime | None
    is_active: bool


class ApiKeyCreated(SQLModel):
    """Returned exactly once at creation time, with the raw key."""
    id: uuid.UUID
    name: str
    api_key: str
    created_at: datetime
    is_active: bool
    message: str = (
        "API Key created successfully. Please save this key securely. "
        "You will not be able to see it again."
    )
