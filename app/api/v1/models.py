"""Public model catalog: browse, filter and sort priced models."""

from fastapi import APIRouter, HTTPException, Query, status
from sqlmodel import select

from app.api.deps import Auth, Session
from app.models.model_rate import ModelRate, ModelRateRead
from app.services.model_catalog import (
    ModelFilters,
    ModelType,
    SortDirection,
    SortOption,
    filter_models,
    sort_models,
)

router = APIRouter(prefix="/models", tags=["models"])


@router.get("", response_model=list[ModelRateRead])
async def list_models(
    auth: Auth,
    session: Session,
    provider: list[str] = Query(default=[]),
    model_type: list[ModelType] = Query(default=[]),
    min_context: int | None = Query(default=None, ge=0),
    max_context: int | None = Query(default=None, ge=0),
    tool_support: bool | None = None,
    active_only: bool = True,
    sort: SortOption = SortOption.NAME,
    direction: SortDirection = SortDirection.ASC,
) -> list[ModelRateRead]:
    """List catalog models. Context bounds are inclusive; either may be omitted."""
    context_range = None
    if min_context is not None or max_context is not None:
        low = min_context or 0
        high = max_context if max_context is not None else 2**63 - 1
        if low > high:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="min_context must not exceed max_context",
            )
        context_range = (low, high)

    filters = ModelFilters(
        providers=provider,
        model_types=model_type,
        context_range=context_range,
        tool_support=tool_support,
        active_only=active_only,
    )
    rows = list((await session.execute(select(ModelRate))).scalars().all())
    models = sort_models(filter_models(rows, filters), sort, direction)
    return [ModelRateRead.model_validate(m) for m in models]
