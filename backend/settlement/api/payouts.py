"""Payout API endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.api.deps import (
    get_auth_claims,
    get_db,
    get_idempotency_guard,
    get_payout_orchestrator,
    require_idempotency_key,
    require_service_token,
    parse_signed_body,
    verify_signed_body,
)
from settlement.config import settings
from settlement.core.idempotency import IdempotencyGuard, IdempotentResponse
from settlement.core.security import AuthClaims
from settlement.schemas.payout import PayoutCallbackResult, PayoutInitiate, PayoutResult, PayoutStatusCallback
from settlement.services.payout_service import PayoutOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payouts", tags=["payouts"])


@router.post("/initiate", response_model=PayoutResult)
async def initiate_payout(
    payout_data: PayoutInitiate,
    idempotency_key: str = Depends(require_idempotency_key),
    claims: AuthClaims = Depends(require_service_token),
    db: AsyncSession = Depends(get_db),
    guard: IdempotencyGuard = Depends(get_idempotency_guard),
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
):
    """
    Dispatch the payout for a funded transfer.

    Blocks while the adapter is retried with backoff. Both ``initiated`` and
    ``review_required`` are successful outcomes (HTTP 200): a decision was recorded.
    """

    async def work() -> IdempotentResponse:
        result = await orchestrator.initiate_payout(db, payout_data)
        return IdempotentResponse(status.HTTP_200_OK, result.model_dump(mode="json"))

    response = await guard.execute(
        "payout:initiate",
        idempotency_key,
        payout_data.model_dump(mode="json"),
        work,
    )
    return JSONResponse(status_code=response.status_code, content=response.body)


@router.post("/status-callback", response_model=PayoutCallbackResult)
async def payout_status_callback(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
):
    """
    Apply a provider status update (completed or failed).

    Authenticated by HMAC signature when webhook signing is enabled, otherwise by a
    service bearer token. Callbacks for payouts already completed or failed are
    acknowledged without changes.
    """
    raw_body = await request.body()

    if settings.PAYOUT_WEBHOOK_SIGNATURE_ENABLED:
        verify_signed_body(
            request,
            raw_body,
            secret=settings.PAYOUT_WEBHOOK_SECRET,
            signature_header=settings.PAYOUT_WEBHOOK_SIGNATURE_HEADER,
            timestamp_header=settings.PAYOUT_WEBHOOK_TIMESTAMP_HEADER,
            max_age_seconds=settings.PAYOUT_WEBHOOK_MAX_AGE_SECONDS,
        )
        actor_id = "payout-provider"
    else:
        claims = await require_service_token(await get_auth_claims(authorization))
        actor_id = claims.subject

    callback = parse_signed_body(PayoutStatusCallback, raw_body, "callback payload")

    return await orchestrator.apply_status_callback(db, callback, actor_id=actor_id)
