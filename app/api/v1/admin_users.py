"""Admin user management: accounts, roles, credits, API keys, usage."""

import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import delete, func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from app.api.deps import AdminAuth, Session
from app.core.security import generate_api_key, hash_api_key, mask_api_key
from app.models.api_key import ApiKey, ApiKeyCreate, ApiKeyCreated, ApiKeyRead
from app.models.base import utcnow
from app.models.credit import (
    CreditAccount,
    CreditAdjustmentRequest,
    CreditAdjustmentResponse,
    CreditTransaction,
    CreditTransactionRead,
)
from app.models.usage_log import UsageActivity, UsageLog
from app.models.user import User, UserCreate, UserRead, UserRole
from app.services.accounts import (
    VALID_ROLES,
    DuplicateEmailError,
    create_user_account,
    parse_role,
)
from app.services.audit import log_admin_action
from app.services.credit_ledger import (
    InvalidAdjustmentError,
    NegativeBalanceError,
    UserNotFoundError,
    adjust_balance,
    list_transactions,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/users", tags=["admin-users"])

_INVALID_ROLE = f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}"


# ── Schemas ──────────────────────────────────────────────────

class AdminUserRead(UserRead):
    created_at: datetime
    balance_cents: int | None


class RoleUpdate(BaseModel):
    role: Any = None
    summary: str | None = None


class RoleUpdateResponse(BaseModel):
    message: str
    user: UserRead


class UserSummary(BaseModel):
    id: uuid.UUID
    email: str
    display_name: str


class ApiKeyList(BaseModel):
    user: UserSummary
    api_keys: list[ApiKeyRead]


class UsageMetrics(BaseModel):
    spend: float
    tokens: int
    requests: int


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_logs: int
    limit: int


class UsageReport(BaseModel):
    user: UserSummary
    metrics: UsageMetrics
    activity: list[UsageActivity]
    pagination: Pagination


# ── Routes ───────────────────────────────────────────────────

@router.post("", response_model=AdminUserRead, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    auth: AdminAuth,
    session: Session,
) -> AdminUserRead:
    """Create an account (password optional for OAuth-only users) with zero credits."""
    if not body.email.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email is required and must be a non-empty string.",
        )
    if not body.display_name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Display name is required and must be a non-empty string.",
        )
    role = parse_role(body.role)
    if role is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_INVALID_ROLE)

    try:
        user = await create_user_account(
            session,
            email=body.email,
            display_name=body.display_name,
            role=role,
            password=body.password,
            is_active=body.is_active,
            actor_id=auth.user_id,
        )
        await session.commit()
    except DuplicateEmailError as exc:
        await session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with this email already exists.",
        ) from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Error creating user %s", body.email)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create user.",
        ) from exc

    await session.refresh(user)
    return AdminUserRead(
        **UserRead.model_validate(user).model_dump(),
        created_at=user.created_at,
        balance_cents=0,
    )


@router.get("", response_model=list[AdminUserRead])
async def list_users(
    auth: AdminAuth,
    session: Session,
) -> list[AdminUserRead]:
    stmt = (
        select(User, CreditAccount.balance_cents)
        .outerjoin(CreditAccount, CreditAccount.user_id == User.id)
        .order_by(User.created_at.asc())  # type: ignore[union-attr]
    )
    rows = (await session.execute(stmt)).all()
    return [
        AdminUserRead(
            **UserRead.model_validate(user).model_dump(),
            created_at=user.created_at,
            balance_cents=balance,
        )
        for user, balance in rows
    ]


@router.put("/{user_id}/role", response_model=RoleUpdateResponse)
async def update_user_role(
    user_id: uuid.UUID,
    body: RoleUpdate,
    auth: AdminAuth,
    session: Session,
    request: Request,
) -> RoleUpdateResponse:
    new_role = parse_role(body.role)
    if new_role is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_INVALID_ROLE)

    if user_id == auth.user_id and new_role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admins cannot demote themselves from the admin role.",
        )

    user = await _get_or_404(user_id, session)
    current_role = user.role
    if current_role == new_role:
        return RoleUpdateResponse(
            message=f"User role is already {new_role.value}. No change made.",
            user=UserRead.model_validate(user),
        )

    # Inactive admins do not count towards the active admin total
    if (
        current_role == UserRole.ADMIN
        and user.is_active
        and await _count_active_admins(session) <= 1
    ):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Cannot demote the last remaining admin.",
        )

    try:
        user.role = new_role
        user.updated_at = utcnow()
        session.add(user)
        await log_admin_action(
            session,
            admin_user_id=auth.user_id,
            action_type="USER_ROLE_UPDATED",
            target_entity_type="USER",
            target_entity_id=str(user_id),
            details={
                "old_role": current_role.value,
                "new_role": new_role.value,
                "target_user_id": str(user_id),
            },
            summary=body.summary or None,
            ip_address=_client_ip(request),
        )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Error updating role for user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update user role.",
        ) from exc

    await session.refresh(user)
    return RoleUpdateResponse(
        message="User role updated successfully.",
        user=UserRead.model_validate(user),
    )


@router.post(
    "/{user_id}/adjust-credits",
    response_model=CreditAdjustmentResponse,
    responses={400: {"description": "Invalid request or negative resulting balance"}},
)
async def adjust_user_credits(
    user_id: uuid.UUID,
    body: CreditAdjustmentRequest,
    auth: AdminAuth,
    session: Session,
    request: Request,
) -> CreditAdjustmentResponse | JSONResponse:
    """Manually credit or debit a user's balance. Balances never go negative."""
    try:
        change = await adjust_balance(
            session,
            user_id=user_id,
            amount_cents=body.amount_cents,
            reason=body.reason,
            actor_id=auth.user_id,
            ip_address=_client_ip(request),
        )
    except NegativeBalanceError as exc:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": str(exc),
                "current_balance_cents": exc.current_balance_cents,
            },
        )
    except InvalidAdjustmentError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except UserNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        logger.exception("Error adjusting credits for user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to adjust user credits.",
        ) from exc

    return CreditAdjustmentResponse(
        user_id=user_id,
        previous_balance_cents=change.previous_balance_cents,
        adjusted_amount_cents=change.adjusted_amount_cents,
        new_balance_cents=change.new_balance_cents,
    )


@router.get("/{user_id}/transactions", response_model=list[CreditTransactionRead])
async def list_user_transactions(
    user_id: uuid.UUID,
    auth: AdminAuth,
    session: Session,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[CreditTransactionRead]:
    await _get_or_404(user_id, session)
    txns = await list_transactions(session, user_id, limit=limit, offset=offset)
    return [CreditTransactionRead.model_validate(t) for t in txns]


@router.post(
    "/{user_id}/api-keys",
    response_model=ApiKeyCreated,
    status_code=status.HTTP_201_CREATED,
)
async def create_user_api_key(
    user_id: uuid.UUID,
    body: ApiKeyCreate,
    auth: AdminAuth,
    session: Session,
) -> ApiKeyCreated:
    """Issue an API key for a user. The raw key is returned once."""
    name = body.name.strip()
    if not name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="API key name is required and must be a non-empty string.",
        )
    user = await _get_or_404(user_id, session)

    raw_key = generate_api_key()
    api_key = ApiKey(
        user_id=user_id,
        name=name,
        key_hash=hash_api_key(raw_key),
        key_prefix=raw_key[:12],
        key_suffix=raw_key[-4:],
    )
    try:
        session.add(api_key)
        await session.flush()
        await log_admin_action(
            session,
            admin_user_id=auth.user_id,
            action_type="API_KEY_CREATED_FOR_USER",
            target_entity_type="API_KEY",
            target_entity_id=str(api_key.id),
            details={
                "target_user_id": str(user_id),
                "target_user_email": user.email,
                "api_key_id": str(api_key.id),
                "api_key_name": name,
            },
            summary=f'Created API key "{name}" for user {user.email}',
        )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Error creating API key for user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create API key.",
        ) from exc

    await session.refresh(api_key)
    return ApiKeyCreated(
        id=api_key.id,
        name=api_key.name,
        api_key=raw_key,
        created_at=api_key.created_at,
        is_active=api_key.is_active,
    )


@router.get("/{user_id}/api-keys", response_model=ApiKeyList)
async def list_user_api_keys(
    user_id: uuid.UUID,
    auth: AdminAuth,
    session: Session,
) -> ApiKeyList:
    user = await _get_or_404(user_id, session)
    stmt = (
        select(ApiKey)
        .where(ApiKey.user_id == user_id)
        .order_by(ApiKey.created_at.desc())  # type: ignore[union-attr]
    )
    keys = (await session.execute(stmt)).scalars().all()
    return ApiKeyList(
        user=_summary(user),
        api_keys=[
            ApiKeyRead(
                id=k.id,
                name=k.name,
                api_key_masked=mask_api_key(k.key_prefix, k.key_suffix),
                created_at=k.created_at,
                last_used_at=k.last_used_at,
                is_active=k.is_active,
            )
            for k in keys
        ],
    )


@router.get("/{user_id}/usage", response_model=UsageReport)
async def get_user_usage(
    user_id: uuid.UUID,
    auth: AdminAuth,
    session: Session,
    date_from: datetime | None = Query(default=None, alias="from"),
    date_to: datetime | None = Query(default=None, alias="to"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    provider: str | None = None,
    model: str | None = None,
    api_key_id: uuid.UUID | None = None,
) -> UsageReport:
    """Spend, token and request totals plus paged activity (default: last 30 days)."""
    user = await _get_or_404(user_id, session)

    date_to = _naive_utc(date_to) if date_to else utcnow()
    date_from = _naive_utc(date_from) if date_from else date_to - timedelta(days=30)

    conditions = [
        UsageLog.user_id == user_id,
        UsageLog.created_at >= date_from,
        UsageLog.created_at <= date_to,
    ]
    if provider:
        conditions.append(UsageLog.provider == provider)
    if model:
        conditions.append(UsageLog.model == model)
    if api_key_id:
        conditions.append(UsageLog.api_key_id == api_key_id)

    totals = (await session.execute(
        select(
            func.coalesce(func.sum(UsageLog.cost + UsageLog.neuroswitch_fee), 0),
            func.coalesce(func.sum(UsageLog.total_tokens), 0),
            func.count(),
        ).where(*conditions)
    )).one()
    total_logs = int(totals[2])

    activity_stmt = (
        select(UsageLog, ApiKey.name)
        .outerjoin(ApiKey, ApiKey.id == UsageLog.api_key_id)
        .where(*conditions)
        .order_by(UsageLog.created_at.desc())  # type: ignore[union-attr]
        .limit(limit)
        .offset((page - 1) * limit)
    )
    activity = [
        UsageActivity(
            id=log.id,
            timestamp=log.created_at,
            provider=log.provider,
            model=log.model,
            prompt_tokens=log.prompt_tokens,
            completion_tokens=log.completion_tokens,
            total_tokens=log.total_tokens,
            llm_provider_cost=log.cost,
            neuroswitch_fee=log.neuroswitch_fee,
            response_time=log.response_time,
            fallback_reason=log.fallback_reason,
            request_model=log.request_model,
            api_key_id=log.api_key_id,
            api_key_name=key_name,
        )
        for log, key_name in (await session.execute(activity_stmt)).all()
    ]

    return UsageReport(
        user=_summary(user),
        metrics=UsageMetrics(
            spend=round(float(totals[0]), 6),
            tokens=int(totals[1]),
            requests=total_logs,
        ),
        activity=activity,
        pagination=Pagination(
            current_page=page,
            total_pages=math.ceil(total_logs / limit),
            total_logs=total_logs,
            limit=limit,
        ),
    )


@router.delete("/{user_id}", response_model=UserRead)
async def delete_user(
    user_id: uuid.UUID,
    auth: AdminAuth,
    session: Session,
    request: Request,
) -> UserRead:
    """Delete an account with its keys and ledger; usage rows are kept, detached."""
    if user_id == auth.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admins cannot delete their own account.",
        )
    user = await _get_or_404(user_id, session)
    deleted = UserRead.model_validate(user)

    try:
        await log_admin_action(
            session,
            admin_user_id=auth.user_id,
            action_type="USER_DELETED",
            target_entity_type="USER",
            target_entity_id=str(user_id),
            details={
                "deleted_user_id": str(user_id),
                "email": user.email,
                "display_name": user.display_name,
                "role": user.role.value,
            },
            summary=f"Deleted user account for {user.email}",
            ip_address=_client_ip(request),
        )
        await session.execute(
            update(UsageLog)
            .where(UsageLog.user_id == user_id)
            .values(user_id=None, api_key_id=None)
        )
        for table in (ApiKey, CreditTransaction, CreditAccount):
            await session.execute(delete(table).where(table.user_id == user_id))
        await session.delete(user)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Error deleting user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete user.",
        ) from exc

    return deleted


# ── Internal helpers ──────────────────────────────────────────

async def _get_or_404(user_id: uuid.UUID, session) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Target user not found.")
    return user


async def _count_active_admins(session) -> int:
    stmt = select(func.count()).select_from(User).where(
        User.role == UserRole.ADMIN,
        User.is_active.is_(True),  # type: ignore[union-attr]
    )
    return (await session.execute(stmt)).scalar_one()


def _summary(user: User) -> UserSummary:
    return UserSummary(id=user.id, email=user.email, display_name=user.display_name)


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def _naive_utc(value: datetime) -> datetime:
    # Timestamps are stored as naive UTC
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
