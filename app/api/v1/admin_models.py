"""Admin model catalog: pricing edits, activation and bulk sync."""

import logging
import uuid

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from app.api.deps import AdminAuth, Session
from app.core.config import get_settings
from app.models.base import utcnow
from app.models.model_rate import ModelRate, ModelRateRead, ModelRateUpdate
from app.services.audit import log_admin_action
from app.services.model_sync import CacheFileError, sync_models_from_cache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/models", tags=["admin-models"])


# ── Schemas ──────────────────────────────────────────────────

class ModelUpdateResponse(BaseModel):
    message: str
    model: ModelRateRead


class SyncRequest(BaseModel):
    action: str


class SyncResponse(BaseModel):
    success: bool = True
    message: str = "Model sync completed successfully"
    stats: dict[str, int]
    cache_last_updated: str | None


# ── Routes ───────────────────────────────────────────────────

@router.get("", response_model=list[ModelRateRead])
async def list_models(auth: AdminAuth, session: Session) -> list[ModelRateRead]:
    stmt = select(ModelRate).order_by(
        ModelRate.provider.asc(),  # type: ignore[union-attr]
        ModelRate.name.asc(),  # type: ignore[union-attr]
    )
    models = (await session.execute(stmt)).scalars().all()
    return [ModelRateRead.model_validate(m) for m in models]


@router.put("/{model_id}", response_model=ModelUpdateResponse)
async def update_model(
    model_id: uuid.UUID,
    body: ModelRateUpdate,
    auth: AdminAuth,
    session: Session,
) -> ModelUpdateResponse:
    """Update a model's per-million pricing and active flag."""
    if body.input_cost_per_million_tokens < 0 or body.output_cost_per_million_tokens < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Costs must be non-negative numbers.",
        )

    model = await session.get(ModelRate, model_id)
    if model is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Model not found.")

    old_input = model.input_cost_per_million_tokens
    old_output = model.output_cost_per_million_tokens
    old_active = model.is_active

    if (
        old_input == body.input_cost_per_million_tokens
        and old_output == body.output_cost_per_million_tokens
        and old_active == body.is_active
    ):
        return ModelUpdateResponse(
            message="Model details are already set to the provided values. No change made.",
            model=ModelRateRead.model_validate(model),
        )

    try:
        model.input_cost_per_million_tokens = body.input_cost_per_million_tokens
        model.output_cost_per_million_tokens = body.output_cost_per_million_tokens
        model.is_active = body.is_active
        model.updated_at = utcnow()
        session.add(model)
        await log_admin_action(
            session,
            admin_user_id=auth.user_id,
            action_type="MODEL_CONFIG_UPDATED",
            target_entity_type="MODEL",
            target_entity_id=str(model_id),
            details={
                "model_id": str(model_id),
                "model_name": model.name,
                "old_input_cost": old_input,
                "new_input_cost": body.input_cost_per_million_tokens,
                "old_output_cost": old_output,
                "new_output_cost": body.output_cost_per_million_tokens,
                "old_is_active": old_active,
                "new_is_active": body.is_active,
            },
            summary=f"Updated configuration for model {model.name} (ID: {model_id})",
        )
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Error updating configuration for model %s", model_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update model configuration.",
        ) from exc

    await session.refresh(model)
    return ModelUpdateResponse(
        message="Model configuration updated successfully.",
        model=ModelRateRead.model_validate(model),
    )


@router.post("/sync", response_model=SyncResponse)
async def sync_models(
    body: SyncRequest,
    auth: AdminAuth,
    session: Session,
) -> SyncResponse:
    """Upsert OpenAI / Anthropic / Google models from the OpenRouter cache file."""
    if body.action != "sync":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid action. Expected "sync".',
        )

    try:
        result = await sync_models_from_cache(session, get_settings().model_cache_dir)
        stats = result.stats
        await log_admin_action(
            session,
            admin_user_id=auth.user_id,
            action_type="MODELS_SYNC_BULK",
            target_entity_type="MODELS",
            target_entity_id="bulk_sync",
            details={
                **stats.as_dict(),
                "total_processed": stats.total_processed,
                "cache_last_updated": result.cache_last_updated,
            },
            summary=(
                f"Platform models synced from OpenRouter cache: {stats.created} created, "
                f"{stats.updated} updated, {stats.errors} errors"
            ),
        )
        await session.commit()
    except CacheFileError as exc:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.exception("Model sync failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sync models",
        ) from exc

    return SyncResponse(stats=stats.as_dict(), cache_last_updated=result.cache_last_updated)
