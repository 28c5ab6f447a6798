"""FastAPI dependencies for authentication and role checks."""

import uuid
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.database import get_session
from app.core.security import API_KEY_PREFIX, decode_jwt, hash_api_key
from app.models.api_key import ApiKey
from app.models.base import utcnow
from app.models.user import User, UserRole

bearer_scheme = HTTPBearer()


class AuthContext:
    """Resolved identity carried through a request."""

    __slots__ = ("user_id", "user_role", "api_key_id")

    def __init__(
        self,
        user_id: uuid.UUID,
        user_role: str,
        api_key_id: uuid.UUID | None = None,
    ) -> None:
        self.user_id = user_id
        self.user_role = user_role
        self.api_key_id = api_key_id

    @property
    def is_admin(self) -> bool:
        return self.user_role == UserRole.ADMIN


async def _resolve_api_key(raw_key: str, session: AsyncSession) -> AuthContext:
    """Look up an API key by its SHA-256 hash."""
    stmt = select(ApiKey).where(
        ApiKey.key_hash == hash_api_key(raw_key),
        ApiKey.is_active.is_(True),  # type: ignore[union-attr]
    )
    api_key = (await session.execute(stmt)).scalar_one_or_none()
    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or revoked API key",
        )

    user = await session.get(User, api_key.user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Key owner account is disabled",
        )

    api_key.last_used_at = utcnow()
    session.add(api_key)
    await session.commit()

    return AuthContext(user_id=user.id, user_role=user.role, api_key_id=api_key.id)


async def _resolve_jwt(token: str, session: AsyncSession) -> AuthContext:
    """Decode a JWT; the role is re-read from the database, not trusted from the claim."""
    try:
        payload = decode_jwt(token)
        user_id = uuid.UUID(payload["sub"])
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired JWT",
        ) from exc
    except (KeyError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed JWT payload",
        ) from exc

    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is disabled",
        )
    return AuthContext(user_id=user.id, user_role=user.role)


async def get_auth_context(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    session: Annotated[AsyncSession, Depends(get_session)],
) -> AuthContext:
    """Resolve a bearer token to an AuthContext.

    Supports two token types:
    - API keys (``sk-fusion-`` followed by 56 hex chars)
    - JWTs (contain dots: header.payload.signature)
    """
    raw = credentials.credentials

    if raw.startswith(API_KEY_PREFIX) or "." not in raw:
        return await _resolve_api_key(raw, session)
    return await _resolve_jwt(raw, session)


async def require_admin(
    auth: Annotated[AuthContext, Depends(get_auth_context)],
) -> AuthContext:
    if not auth.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return auth


# Typed shorthand for use in route signatures
Auth = Annotated[AuthContext, Depends(get_auth_context)]
AdminAuth = Annotated[AuthContext, Depends(require_admin)]
Session = Annotated[AsyncSession, Depends(get_session)]
