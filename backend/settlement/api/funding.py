"""Internal endpoint consumed by the on-chain watcher."""

import logging

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.api.deps import (
    get_db,
    get_idempotency_guard,
    require_service_or_admin,
    parse_signed_body,
    verify_signed_body,
)
from settlement.config import settings
from settlement.core.idempotency import IdempotencyGuard, IdempotentResponse
from settlement.core.security import AuthClaims
from settlement.schemas.funding import FundingConfirmedEvent
from settlement.services import funding_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["internal"])

CALLBACK_SIGNATURE_HEADER = "x-callback-signature"
CALLBACK_TIMESTAMP_HEADER = "x-callback-timestamp"


@router.post("/funding-confirmed")
async def funding_confirmed(
    request: Request,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key"),
    claims: AuthClaims = Depends(require_service_or_admin),
    db: AsyncSession = Depends(get_db),
    guard: IdempotencyGuard = Depends(get_idempotency_guard),
):
    """
    Consume a funding confirmation from the on-chain watcher.

    The body must be signed with the shared watcher secret. Returns 202 when the
    event funded a transfer and 200 for duplicate, unmatched or rejected events.
    """
    raw_body = await request.body()
    verify_signed_body(
        request,
        raw_body,
        secret=settings.WATCHER_CALLBACK_SECRET,
        signature_header=CALLBACK_SIGNATURE_HEADER,
        timestamp_header=CALLBACK_TIMESTAMP_HEADER,
        max_age_seconds=settings.WATCHER_CALLBACK_MAX_AGE_SECONDS,
    )

    event = parse_signed_body(FundingConfirmedEvent, raw_body, "funding event")

    # The watcher's event id doubles as the idempotency key when no header is sent
    key = idempotency_key or event.event_id

    async def work() -> IdempotentResponse:
        result = await funding_service.process_funding_confirmed(db, event)
        status_code = status.HTTP_202_ACCEPTED if result.status == funding_service.CONFIRMED else status.HTTP_200_OK
        return IdempotentResponse(status_code, {
            "result": result.model_dump(mode="json"),
            "accepted_by": claims.subject,
        })

    response = await guard.execute("funding:confirmed", key, event.model_dump(mode="json"), work)
    return JSONResponse(status_code=response.status_code, content=response.body)
