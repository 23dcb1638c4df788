"""Transfer API endpoints."""

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
from settlement.core.errors import ForbiddenError
from settlement.core.idempotency import IdempotencyGuard, IdempotentResponse
from settlement.core.security import AuthClaims
from settlement.schemas.transfer import (
    DepositRouteResponse,
    TransferCreate,
    TransferCreationResponse,
    TransferDetailResponse,
    TransferResponse,
    TransferTransitionResponse,
)
from settlement.services import transfer_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transfers", tags=["transfers"])


def _assert_sender_access(claims: AuthClaims, sender_id: str) -> None:
    # Customers act only on their own transfers; services act on behalf of anyone
    if claims.token_type == "customer" and claims.subject != sender_id:
        raise ForbiddenError("Customers can only access their own transfers.")


@router.post("", response_model=TransferCreationResponse, status_code=status.HTTP_201_CREATED)
async def create_transfer(
    transfer_data: TransferCreate,
    idempotency_key: str = Depends(require_idempotency_key),
    claims: AuthClaims = Depends(require_customer_or_service),
    db: AsyncSession = Depends(get_db),
    guard: IdempotencyGuard = Depends(get_idempotency_guard),
):
    """
    Create a transfer from a locked quote and allocate its deposit address.

    A repeated request with the same Idempotency-Key and body replays the original
    response (same transfer id and route id).
    """
    _assert_sender_access(claims, transfer_data.sender_id)

    async def work() -> IdempotentResponse:
        transfer, route = await transfer_service.create_transfer(db, transfer_data)
        body = TransferCreationResponse(
            transfer=TransferResponse.model_validate(transfer),
            deposit_route=DepositRouteResponse.model_validate(route),
        )
        return IdempotentResponse(status.HTTP_201_CREATED, body.model_dump(mode="json"))

    result = await guard.execute(
        "transfer:create",
        idempotency_key,
        transfer_data.model_dump(mode="json"),
        work,
    )
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get("/{transfer_id}", response_model=TransferDetailResponse)
async def get_transfer(
    transfer_id: str,
    claims: AuthClaims = Depends(require_customer_or_service),
    db: AsyncSession = Depends(get_db),
):
    """Get a transfer with its deposit route and status timeline."""
    transfer, route, timeline = await transfer_service.get_transfer_detail(db, transfer_id)
    _assert_sender_access(claims, transfer.sender_id)

    return TransferDetailResponse(
        transfer=TransferResponse.model_validate(transfer),
        deposit_route=DepositRouteResponse.model_validate(route) if route else None,
        timeline=[TransferTransitionResponse.model_validate(t) for t in timeline],
    )
