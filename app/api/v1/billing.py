"""Caller-facing billing: balance, ledger history and cost estimates."""

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from app.api.deps import Auth, Session
from app.models.credit import CreditTransactionRead
from app.services.cost_calculator import price_request
from app.services.credit_ledger import get_balance, list_transactions

router = APIRouter(prefix="/billing", tags=["billing"])


# ── Schemas ──────────────────────────────────────────────────

class BalanceResponse(BaseModel):
    balance_cents: int


class EstimateRequest(BaseModel):
    provider: str = Field(min_length=1)
    model_id: str | None = None
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    routed: bool = False


class EstimateResponse(BaseModel):
    provider_cost: float
    classifier_fee: float
    total: float


# ── Routes ───────────────────────────────────────────────────

@router.get("/balance", response_model=BalanceResponse)
async def get_my_balance(auth: Auth, session: Session) -> BalanceResponse:
    return BalanceResponse(balance_cents=await get_balance(session, auth.user_id))


@router.get("/transactions", response_model=list[CreditTransactionRead])
async def list_my_transactions(
    auth: Auth,
    session: Session,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[CreditTransactionRead]:
    txns = await list_transactions(session, auth.user_id, limit=limit, offset=offset)
    return [CreditTransactionRead.model_validate(t) for t in txns]


@router.post("/estimate", response_model=EstimateResponse)
async def estimate_cost(body: EstimateRequest, auth: Auth, session: Session) -> EstimateResponse:
    """Price a hypothetical request in USD with the current rates and prime."""
    price = await price_request(
        session,
        provider=body.provider,
        model_id=body.model_id,
        input_tokens=body.input_tokens,
        output_tokens=body.output_tokens,
        routed=body.routed,
    )
    return EstimateResponse(
        provider_cost=price.provider_cost,
        classifier_fee=price.classifier_fee,
        total=price.total,
    )
