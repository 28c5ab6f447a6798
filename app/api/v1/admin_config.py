"""Admin pricing configuration: prime percentage and classifier fee."""

import logging
import math

from fastapi import APIRouter, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from app.api.deps import AdminAuth, Session
from app.models.app_config import (
    NEUROSWITCH_CLASSIFIER_FEE_CENTS,
    PRICING_PRIME_PERCENTAGE,
    AppConfig,
    PricingConfigRead,
    PricingConfigUpdate,
)
from app.models.base import utcnow
from app.services.audit import log_admin_action

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/pricing-config", tags=["admin-config"])

_DESCRIPTIONS = {
    PRICING_PRIME_PERCENTAGE: "Global pricing prime percentage (e.g., 20 for 20%). Applied to LLM costs.",
    NEUROSWITCH_CLASSIFIER_FEE_CENTS: "NeuroSwitch classifier fee in cents (e.g., 1 for $0.01).",
}


@router.get("", response_model=PricingConfigRead)
async def get_pricing_config(auth: AdminAuth, session: Session) -> PricingConfigRead:
    return PricingConfigRead(**await _current_values(session))


@router.put("", response_model=PricingConfigRead)
async def update_pricing_config(
    body: PricingConfigUpdate,
    auth: AdminAuth,
    session: Session,
) -> PricingConfigRead:
    """Set one or both pricing keys. Omitted keys are left unchanged."""
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide pricing_prime_percentage and/or neuroswitch_classifier_fee_cents.",
        )
    if not all(math.isfinite(v) for v in changes.values()):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Pricing values must be finite numbers.",
        )

    before = await _current_values(session)
    try:
        for key, value in changes.items():
            row = (await session.execute(
                select(AppConfig).where(AppConfig.key == key)
            )).scalar_one_or_none()
            if row is None:
                row = AppConfig(key=key, description=_DESCRIPTIONS[key])
            row.value = _format(value)
            row.updated_at = utcnow()
            session.add(row)

        await log_admin_action(
            session,
            admin_user_id=auth.user_id,
            action_type="PRICING_CONFIG_UPDATED",
            target_entity_type="APP_CONFIG",
            target_entity_id=",".join(sorted(changes)),
            details={
                key: {"old": before[key], "new": _format(value)}
                for key, value in changes.items()
            },
            summary="Updated pricing configuration",
        )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Error updating pricing configuration")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update pricing configuration.",
        ) from exc

    return PricingConfigRead(**await _current_values(session))


async def _current_values(session) -> dict[str, str | None]:
    stmt = select(AppConfig.key, AppConfig.value).where(
        AppConfig.key.in_(list(_DESCRIPTIONS))  # type: ignore[attr-defined]
    )
    stored = dict((await session.execute(stmt)).all())
    return {key: stored.get(key) for key in _DESCRIPTIONS}


def _format(value: float) -> str:
    # Exact text form; whole numbers without a trailing ".0"
    return str(int(value)) if value.is_integer() else repr(value)
