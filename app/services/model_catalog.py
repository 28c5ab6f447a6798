"""Catalog browsing: filter and sort model rows for the models page."""

from dataclasses import dataclass, field
from enum import StrEnum

from app.models.model_rate import ModelRate


class ModelType(StrEnum):
    CHAT = "chat"
    TEXT = "text"
    VISION = "vision"
    EMBEDDING = "embedding"


class SortOption(StrEnum):
    NAME = "name"
    PROVIDER = "provider"
    CONTEXT = "context"
    PRICE = "price"


class SortDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


@dataclass
class ModelFilters:
    providers: list[str] = field(default_factory=list)
    model_types: list[ModelType] = field(default_factory=list)
    context_range: tuple[int, int] | None = None
    # True: must support tools, False: must not, None: either
    tool_support: bool | None = None
    active_only: bool = True


def infer_model_types(model: ModelRate) -> set[ModelType]:
    name = model.name.lower()
    types: set[ModelType] = set()
    if model.supports_vision:
        types.add(ModelType.VISION)
    if "embedding" in name:
        types.add(ModelType.EMBEDDING)
    if "chat" in name or "gpt" in name or "claude" in name:
        types.add(ModelType.CHAT)
    if not model.supports_vision and "embedding" not in name:
        types.add(ModelType.TEXT)
    return types


def matches(model: ModelRate, filters: ModelFilters) -> bool:
    if filters.providers and model.provider.lower() not in {p.lower() for p in filters.providers}:
        return False
    if filters.model_types and not infer_model_types(model) & set(filters.model_types):
        return False
    if filters.context_range is not None:
        low, high = filters.context_range
        if not low <= model.context_length_tokens <= high:
            return False
    if filters.tool_support is not None and model.supports_tool_use != filters.tool_support:
        return False
    if filters.active_only and not model.is_active:
        return False
    return True


def filter_models(models: list[ModelRate], filters: ModelFilters) -> list[ModelRate]:
    return [m for m in models if matches(m, filters)]


def _sort_key(option: SortOption):
    if option is SortOption.PROVIDER:
        return lambda m: m.provider.lower()
    if option is SortOption.CONTEXT:
        return lambda m: m.context_length_tokens
    if option is SortOption.PRICE:
        # Unpriced models sort as free
        return lambda m: m.input_cost_per_million_tokens or 0.0
    return lambda m: m.name.lower()


def sort_models(
    models: list[ModelRate],
    option: SortOption = SortOption.NAME,
    direction: SortDirection = SortDirection.ASC,
) -> list[ModelRate]:
    """Stable sort by one column."""
    return sorted(models, key=_sort_key(option), reverse=direction is SortDirection.DESC)
