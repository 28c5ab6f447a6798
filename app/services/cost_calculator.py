"""Per-request cost calculation against the model catalog and pricing config.

Nothing in this module raises. Missing or malformed pricing data degrades to
the fallback constants below and is logged; database failures are logged,
the session is rolled back, and the fallback is used.
"""

import logging
import math
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.app_config import (
    NEUROSWITCH_CLASSIFIER_FEE_CENTS,
    PRICING_PRIME_PERCENTAGE,
    AppConfig,
)
from app.models.model_rate import ModelRate

logger = logging.getLogger(__name__)

# USD per 1K tokens when a model has no usable rate
DEFAULT_FALLBACK_RATE: tuple[float, float] = (0.002, 0.002)
FALLBACK_CLASSIFIER_FEE_DOLLARS = 0.001
FALLBACK_PRIME_MULTIPLIER = 1.0

# Models billed per call instead of per token ("provider/model" -> USD)
FIXED_MODEL_COSTS: dict[str, float] = {
    "openai/dall-e-3": 0.04,       # 1024x1024
    "openai/dall-e-3-wide": 0.08,  # 1024x1792
    "openai/dall-e-3-tall": 0.08,  # 1792x1024
}

PROVIDER_ALIASES: dict[str, str] = {
    "gemini": "google",
    "claude": "anthropic",
}


@dataclass(frozen=True)
class RequestPrice:
    provider_cost: float
    classifier_fee: float

    @property
    def total(self) -> float:
        return round(self.provider_cost + self.classifier_fee, 6)


def normalize_provider(provider: str) -> str:
    """Lower-case a provider name and map router synonyms to catalog names."""
    name = provider.strip().lower()
    return PROVIDER_ALIASES.get(name, name)


def model_key(provider: str, model_id: str) -> str:
    return f"{normalize_provider(provider)}/{model_id.strip().lower()}"


def _token_cost(input_tokens: int, output_tokens: int, rates_per_1k: tuple[float, float]) -> float:
    input_rate, output_rate = rates_per_1k
    return (input_tokens / 1000) * input_rate + (output_tokens / 1000) * output_rate


def _parse_non_negative(raw: object) -> float | None:
    """Parse a stored number; None when missing, non-numeric, negative or not finite."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return value


async def _read_config_value(session: AsyncSession, key: str) -> str | None:
    result = await session.execute(select(AppConfig.value).where(AppConfig.key == key))
    return result.scalar_one_or_none()


async def _absorb_db_error(session: AsyncSession, message: str, *args: object) -> None:
    logger.exception(message, *args)
    try:
        await session.rollback()
    except Exception:
        logger.exception("Rollback after pricing lookup failure also failed")


async def get_pricing_prime_multiplier(session: AsyncSession) -> float:
    """Return ``1 + pricing_prime_percentage / 100``, or 1.0 when unavailable."""
    try:
        raw = await _read_config_value(session, PRICING_PRIME_PERCENTAGE)
    except Exception:
        await _absorb_db_error(
            session, "DB error fetching %s; using fallback multiplier", PRICING_PRIME_PERCENTAGE
        )
        return FALLBACK_PRIME_MULTIPLIER

    if raw is None:
        logger.warning("%s not found in app_config; using fallback multiplier", PRICING_PRIME_PERCENTAGE)
        return FALLBACK_PRIME_MULTIPLIER

    percentage = _parse_non_negative(raw)
    if percentage is None:
        logger.warning(
            "Invalid %s in app_config: %r; using fallback multiplier", PRICING_PRIME_PERCENTAGE, raw
        )
        return FALLBACK_PRIME_MULTIPLIER
    return 1 + percentage / 100


async def _lookup_rates_per_1k(
    session: AsyncSession, provider: str, id_string: str
) -> tuple[float, float] | None:
    stmt = select(
        ModelRate.input_cost_per_million_tokens,
        ModelRate.output_cost_per_million_tokens,
    ).where(
        func.lower(ModelRate.provider) == provider,
        func.lower(ModelRate.id_string) == id_string,
    )
    row = (await session.execute(stmt)).first()
    if row is None:
        logger.warning("Pricing not found for %s; using fallback rate", id_string)
        return None

    input_per_m = _parse_non_negative(row[0])
    output_per_m = _parse_non_negative(row[1])
    if input_per_m is None or output_per_m is None:
        logger.warning("Invalid rates stored for %s; using fallback rate", id_string)
        return None
    return input_per_m / 1000, output_per_m / 1000


async def compute_provider_cost(
    session: AsyncSession,
    provider: str,
    model_id: str | None,
    input_tokens: int,
    output_tokens: int,
) -> float:
    """Cost in USD of one provider call, prime included, rounded to 6 places.

    Fixed-price models skip token math. Token-metered models use the
    catalog's per-million rates, falling back to ``DEFAULT_FALLBACK_RATE``.
    """
    db_provider = normalize_provider(provider)

    if not model_id:
        logger.warning(
            "No model id for provider %s; using fallback rate for base cost", provider
        )
        base_cost = _token_cost(input_tokens, output_tokens, DEFAULT_FALLBACK_RATE)
    else:
        key = model_key(db_provider, model_id)
        fixed = FIXED_MODEL_COSTS.get(key)
        if fixed is not None:
            base_cost = fixed
        else:
            try:
                rates = await _lookup_rates_per_1k(session, db_provider, key)
            except Exception:
                await _absorb_db_error(session, "DB error fetching pricing for %s; using fallback rate", key)
                rates = None
            base_cost = _token_cost(input_tokens, output_tokens, rates or DEFAULT_FALLBACK_RATE)

    multiplier = await get_pricing_prime_multiplier(session)
    final_cost = round(base_cost * multiplier, 6)
    logger.debug(
        "Priced %s/%s: base=%.6f prime=%.4fx final=%.6f",
        db_provider, model_id, base_cost, multiplier, final_cost,
    )
    return final_cost


async def get_classifier_fee(session: AsyncSession) -> float:
    """Flat NeuroSwitch classifier fee in USD (stored in cents)."""
    try:
        raw = await _read_config_value(session, NEUROSWITCH_CLASSIFIER_FEE_CENTS)
    except Exception:
        await _absorb_db_error(
            session, "DB error fetching %s; using fallback fee", NEUROSWITCH_CLASSIFIER_FEE_CENTS
        )
        return FALLBACK_CLASSIFIER_FEE_DOLLARS

    if raw is None:
        logger.warning("%s not found in app_config; using fallback fee", NEUROSWITCH_CLASSIFIER_FEE_CENTS)
        return FALLBACK_CLASSIFIER_FEE_DOLLARS

    cents = _parse_non_negative(raw)
    if cents is None:
        logger.warning(
            "Invalid %s in app_config: %r; using fallback fee", NEUROSWITCH_CLASSIFIER_FEE_CENTS, raw
        )
        return FALLBACK_CLASSIFIER_FEE_DOLLARS
    return cents / 100


async def price_request(
    session: AsyncSession,
    provider: str,
    model_id: str | None,
    input_tokens: int,
    output_tokens: int,
    routed: bool,
) -> RequestPrice:
    """Provider cost plus the classifier fee when NeuroSwitch routed the call."""
    provider_cost = await compute_provider_cost(
        session, provider, model_id, input_tokens, output_tokens
    )
    fee = await get_classifier_fee(session) if routed else 0.0
    return RequestPrice(provider_cost=provider_cost, classifier_fee=fee)
