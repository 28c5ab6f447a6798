"""Model catalog sync from the cached OpenRouter model list.

The cache file (``openrouter-models.json``) is written by the rankings page;
this module only reads it. New models are inserted inactive, existing ones
are updated in place with ``is_active`` preserved.
"""

import json
import logging
import re
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.base import utcnow
from app.models.model_rate import ModelRate

logger = logging.getLogger(__name__)

CACHE_FILE_NAME = "openrouter-models.json"

# OpenRouter prefix -> catalog provider name
PROVIDER_MAPPING: dict[str, str] = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "google": "Google",
}

_GEMINI_FLASH = re.compile(r"gemini-flash-(\d+\.?\d*)")
_GEMINI_PRO = re.compile(r"gemini-pro-(\d+\.?\d*)")


class CacheFileError(Exception):
    """The cache file is missing or cannot be parsed."""


@dataclass
class SyncStats:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    @property
    def total_processed(self) -> int:
        return self.created + self.updated + self.skipped + self.errors

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class SyncResult:
    stats: SyncStats
    cache_last_updated: str | None


def normalize_id_string(original_id: str) -> str:
    """Rewrite OpenRouter ids into the catalog's id_string convention."""
    provider, _, raw_id = original_id.partition("/")
    if provider == "anthropic":
        return f"{provider}/{raw_id.replace('.', '-')}"
    if provider == "google" and "gemini" in raw_id:
        fixed = _GEMINI_FLASH.sub(r"gemini-\1-flash", raw_id)
        fixed = _GEMINI_PRO.sub(r"gemini-\1-pro", fixed)
        return f"{provider}/{fixed}"
    return original_id


def extract_features(model: dict[str, Any]) -> dict[str, bool]:
    params = model.get("supported_parameters") or []
    architecture = model.get("architecture") or {}
    modality = architecture.get("modality") or ""
    description = (model.get("description") or "").lower()
    name = (model.get("name") or "").lower()
    return {
        "supports_json_mode": "response_format" in params or "structured_outputs" in params,
        "supports_tool_use": "tool_choice" in params or "tools" in params or "tool" in description,
        "supports_vision": (
            "image" in (architecture.get("input_modalities") or [])
            or "vision" in modality
            or "image" in modality
            or "vision" in name
        ),
    }


def convert_pricing(price_per_token: object) -> float:
    """Per-token price string -> USD per million tokens (0 when unparsable)."""
    try:
        return float(price_per_token) * 1_000_000  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0


def parse_release_date(created: object) -> date | None:
    if not created:
        return None
    try:
        return datetime.fromtimestamp(float(created), tz=timezone.utc).date()  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError, OSError):
        logger.warning("Failed to parse release date: %r", created)
        return None


def load_cache(cache_path: Path) -> dict[str, Any]:
    if not cache_path.is_file():
        raise CacheFileError(
            f"Cache file not found: {cache_path}. Make sure the rankings page "
            "has been loaded to generate the cache file."
        )
    try:
        data = json.loads(cache_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise CacheFileError(f"Failed to read or parse cache file: {exc}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("data"), list):
        raise CacheFileError("Failed to read or parse cache file: missing 'data' list")
    return data


async def _upsert_model(session: AsyncSession, model: dict[str, Any], stats: SyncStats) -> None:
    model_id = str(model.get("id", ""))
    provider = PROVIDER_MAPPING.get(model_id.split("/", 1)[0])
    if provider is None:
        logger.debug("Unsupported provider for model %s, skipping", model_id)
        stats.skipped += 1
        return

    normalized = normalize_id_string(model_id)
    try:
        values = _model_values(model, provider, normalized)
    except (TypeError, ValueError, AttributeError):
        logger.exception("Error preparing model %s (%s)", model.get("name"), normalized)
        stats.errors += 1
        return

    existing = (await session.execute(
        select(ModelRate).where(ModelRate.id_string == normalized)
    )).scalar_one_or_none()

    if existing is not None:
        for field, value in values.items():
            setattr(existing, field, value)
        existing.updated_at = utcnow()
        session.add(existing)
        stats.updated += 1
    else:
        session.add(ModelRate(id_string=normalized, is_active=False, **values))
        stats.created += 1


def _model_values(model: dict[str, Any], provider: str, normalized: str) -> dict[str, Any]:
    pricing = model.get("pricing") or {}
    return {
        "name": model.get("name") or normalized,
        "provider": provider,
        "input_cost_per_million_tokens": convert_pricing(pricing.get("prompt")),
        "output_cost_per_million_tokens": convert_pricing(pricing.get("completion")),
        "context_length_tokens": int(model.get("context_length") or 0),
        "description": model.get("description"),
        "release_date": parse_release_date(model.get("created")),
        **extract_features(model),
    }


async def sync_models(session: AsyncSession, cache: dict[str, Any]) -> SyncResult:
    """Upsert every cached model from a supported provider. The caller commits."""
    models = cache["data"]
    logger.info("Model sync: %d cached models", len(models))

    stats = SyncStats()
    for model in models:
        if not isinstance(model, dict):
            stats.errors += 1
            continue
        await _upsert_model(session, model, stats)

    logger.info(
        "Model sync done: %d created, %d updated, %d skipped, %d errors",
        stats.created, stats.updated, stats.skipped, stats.errors,
    )
    return SyncResult(stats=stats, cache_last_updated=cache.get("last_updated"))


async def sync_models_from_cache(session: AsyncSession, cache_dir: str) -> SyncResult:
    cache_path = Path(cache_dir) / CACHE_FILE_NAME
    logger.info("Reading model cache from %s", cache_path)
    return await sync_models(session, load_cache(cache_path))
