"""AdminActionLog: audit trail of administrative changes."""

import uuid
from typing import Any

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from app.models.base import CreatedAtMixin, new_uuid


class AdminActionLog(CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "admin_actions_logs"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    # Not a foreign key: the trail must outlive deleted admins
    admin_user_id: uuid.UUID | None = Field(default=None, index=True)
    action_type: str = Field(max_length=255, nullable=False, index=True)
    target_entity_type: str | None = Field(default=None, max_length=100)
    target_entity_id: str | None = Field(default=None, max_length=255, index=True)
    details: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    summary: str | None = Field(default=None)
    ip_address: str | None = Field(default=None, max_length=100)
