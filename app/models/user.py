"""User model: platform accounts with a fixed role set."""

import uuid
from enum import StrEnum

from sqlmodel import Field, SQLModel

from app.models.base import TimestampMixin, new_uuid


class UserRole(StrEnum):
    ADMIN = "admin"
    PRO = "pro"
    USER = "user"
    SUB_USER = "sub_user"
    TESTER = "tester"


class User(TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    email: str = Field(max_length=255, unique=True, nullable=False, index=True)
    # NULL for OAuth-only accounts
    password_hash: str | None = Field(default=None)
    display_name: str = Field(default="", max_length=100)
    role: UserRole = Field(default=UserRole.USER)
    is_active: bool = Field(default=True)


# ── Pydantic schemas ─────────────────────────────────────────

class UserCreate(SQLModel):
    email: str = Field(max_length=255)
    display_name: str = Field(max_length=100)
    role: str
    password: str | None = Field(default=None, max_length=128)
    is_active: bool = True


class UserRead(SQLModel):
    id: uuid.UUID
    email: str
    display_name: str
    role: UserRole
    is_active: bool
