"""Usage recording: prices a routed request and stores it in usage_logs.

This service has no ingest route. The request-routing gateway that proxies
LLM calls imports ``record_usage`` and commits the row in its own
transaction. ``GET /v1/admin/users/{id}/usage`` reads what it writes.
"""

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.usage_log import UsageLog
from app.services.cost_calculator import price_request


async def record_usage(
    session: AsyncSession,
    user_id: uuid.UUID,
    provider: str,
    model: str | None,
    prompt_tokens: int,
    completion_tokens: int,
    routed: bool,
    api_key_id: uuid.UUID | None = None,
    request_model: str | None = None,
    fallback_reason: str | None = None,
    response_time: int | None = None,
) -> UsageLog:
    """Add a priced UsageLog row to the session. The caller commits.

    Pricing runs before anything is staged: a pricing lookup failure rolls
    the session back.
    """
    price = await price_request(
        session, provider, model, prompt_tokens, completion_tokens, routed
    )
    entry = UsageLog(
        user_id=user_id,
        api_key_id=api_key_id,
        request_model=request_model,
        model=model,
        provider=provider,
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
        cost=price.provider_cost,
        neuroswitch_fee=price.classifier_fee,
        fallback_reason=fallback_reason,
        response_time=response_time,
    )
    session.add(entry)
    return entry
