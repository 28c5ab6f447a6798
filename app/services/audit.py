"""Admin action audit sink.

Rows are added to the caller's session and flushed, never committed here:
the audit entry belongs to the same transaction as the change it describes,
so a failed write rolls the change back too.
"""

import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.admin_action import AdminActionLog


async def log_admin_action(
    session: AsyncSession,
    admin_user_id: uuid.UUID,
    action_type: str,
    target_entity_type: str,
    target_entity_id: str,
    details: dict[str, Any],
    summary: str | None = None,
    ip_address: str | None = None,
) -> AdminActionLog:
    entry = AdminActionLog(
        admin_user_id=admin_user_id,
        action_type=action_type,
        target_entity_type=target_entity_type,
        target_entity_id=target_entity_id,
        details=details,
        summary=summary,
        ip_address=ip_address,
    )
    session.add(entry)
    await session.flush()
    return entry
