"""Shared base fields for all models."""

import uuid
from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class CreatedAtMixin(SQLModel):
    """Creation timestamp for append-only rows (ledger, audit, usage)."""

    created_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)


class TimestampMixin(SQLModel):
    """Created / updated timestamps for mutable rows."""

    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)
