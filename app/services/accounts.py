"""User account creation, shared by the admin API and startup bootstrap."""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.security import hash_password
from app.models.user import User, UserRole
from app.services.audit import log_admin_action
from app.services.credit_ledger import open_account

logger = logging.getLogger(__name__)

VALID_ROLES: tuple[str, ...] = tuple(r.value for r in UserRole)


class DuplicateEmailError(Exception):
    pass


def parse_role(role: object) -> UserRole | None:
    """Case-insensitive role lookup; None when not one of VALID_ROLES."""
    if not isinstance(role, str):
        return None
    try:
        return UserRole(role.strip().lower())
    except ValueError:
        return None


async def find_user_by_email(session: AsyncSession, email: str) -> User | None:
    result = await session.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalar_one_or_none()


async def create_user_account(
    session: AsyncSession,
    email: str,
    display_name: str,
    role: UserRole,
    password: str | None = None,
    is_active: bool = True,
    actor_id: uuid.UUID | None = None,
) -> User:
    """Stage a user with a zero credit account. The caller commits.

    When ``actor_id`` is given the creation is audited as USER_CREATED.
    """
    normalized_email = email.strip().lower()
    if await find_user_by_email(session, normalized_email) is not None:
        raise DuplicateEmailError(normalized_email)

    has_password = bool(password and password.strip())
    user = User(
        email=normalized_email,
        display_name=display_name.strip(),
        role=role,
        password_hash=hash_password(password.strip()) if has_password else None,
        is_active=is_active,
    )
    session.add(user)
    await session.flush()  # populate user.id
    open_account(session, user.id)

    if actor_id is not None:
        await log_admin_action(
            session,
            admin_user_id=actor_id,
            action_type="USER_CREATED",
            target_entity_type="USER",
            target_entity_id=str(user.id),
            details={
                "created_user_id": str(user.id),
                "email": normalized_email,
                "display_name": user.display_name,
                "role": role.value,
                "is_active": is_active,
                "has_password": has_password,
            },
            summary=f"Created user account for {normalized_email}",
        )
    return user


async def ensure_bootstrap_admin(session: AsyncSession, email: str, password: str) -> bool:
    """Create the configured first admin if that email is unknown.

    Returns True when a user was created.
    """
    if not email or not password:
        return False
    if await find_user_by_email(session, email) is not None:
        return False

    await create_user_account(
        session,
        email=email,
        display_name="Administrator",
        role=UserRole.ADMIN,
        password=password,
    )
    await session.commit()
    logger.info("Created bootstrap admin %s", email.strip().lower())
    return True
