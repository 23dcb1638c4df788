"""Quote API endpoints."""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.api.deps import (
    get_db,
    get_idempotency_guard,
    require_customer_or_service,
    require_idempotency_key,
)
from settlement.core.idempotency import IdempotencyGuard, IdempotentResponse
from settlement.core.security import AuthClaims
from settlement.schemas.quote import QuoteCreate, QuoteResponse
from settlement.services import quote_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.post("", response_model=QuoteResponse, status_code=status.HTTP_201_CREATED)
async def create_quote(
    quote_data: QuoteCreate,
    idempotency_key: str = Depends(require_idempotency_key),
    claims: AuthClaims = Depends(require_customer_or_service),
    db: AsyncSession = Depends(get_db),
    guard: IdempotencyGuard = Depends(get_idempotency_guard),
):
    """Lock a send amount, fee and FX rate for a limited time."""

    async def work() -> IdempotentResponse:
        quote = await quote_service.create_quote(
            db,
            chain=quote_data.chain,
            token=quote_data.token,
            send_amount_usd=quote_data.send_amount_usd,
            fee_usd=quote_data.fee_usd,
            fx_rate_usd_to_etb=quote_data.fx_rate_usd_to_etb,
            expires_in_seconds=quote_data.expires_in_seconds,
        )
        body = QuoteResponse.model_validate(quote).model_dump(mode="json")
        return IdempotentResponse(status.HTTP_201_CREATED, body)

    result = await guard.execute("quote:create", idempotency_key, quote_data.model_dump(mode="json"), work)
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get("/{quote_id}", response_model=QuoteResponse)
async def get_quote(
    quote_id: str,
    claims: AuthClaims = Depends(require_customer_or_service),
    db: AsyncSession = Depends(get_db),
):
    """Get a quote by id."""
    quote = await quote_service.get_quote(db, quote_id)
    return QuoteResponse.model_validate(quote)
