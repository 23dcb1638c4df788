"""Internal ledger posting endpoint."""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.api.deps import (
    get_db,
    get_idempotency_guard,
    require_idempotency_key,
    require_service_or_admin,
    require_service_token,
)
from settlement.core.idempotency import IdempotencyGuard, IdempotentResponse
from settlement.core.security import AuthClaims
from settlement.schemas.ledger import (
    JournalBalanceResponse,
    JournalPost,
    JournalResponse,
    LedgerEntryResponse,
)
from settlement.services import ledger_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal/ledger", tags=["ledger"])


@router.post("/journals", response_model=JournalResponse, status_code=status.HTTP_201_CREATED)
async def post_journal(
    journal_data: JournalPost,
    idempotency_key: str = Depends(require_idempotency_key),
    claims: AuthClaims = Depends(require_service_token),
    db: AsyncSession = Depends(get_db),
    guard: IdempotencyGuard = Depends(get_idempotency_guard),
):
    """Post a balanced debit/credit pair for a transfer."""

    async def work() -> IdempotentResponse:
        journal = await ledger_service.post_double_entry(
            db,
            transfer_id=journal_data.transfer_id,
            debit_account=journal_data.debit_account,
            credit_account=journal_data.credit_account,
            amount_usd=journal_data.amount_usd,
            description=journal_data.description,
        )
        entries = await ledger_service.get_journal_entries(db, journal.journal_id)
        body = JournalResponse(
            journal_id=journal.journal_id,
            transfer_id=journal.transfer_id,
            description=journal.description,
            created_at=journal.created_at,
            entries=[LedgerEntryResponse.model_validate(e) for e in entries],
        )
        return IdempotentResponse(status.HTTP_201_CREATED, body.model_dump(mode="json"))

    result = await guard.execute("ledger:journal", idempotency_key, journal_data.model_dump(mode="json"), work)
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.get("/journals/{journal_id}/balance", response_model=JournalBalanceResponse)
async def get_journal_balance(
    journal_id: str,
    claims: AuthClaims = Depends(require_service_or_admin),
    db: AsyncSession = Depends(get_db),
):
    """Debit and credit totals of a journal."""
    await ledger_service.get_journal(db, journal_id)
    totals = await ledger_service.get_journal_balance(db, journal_id)
    return JournalBalanceResponse(
        journal_id=journal_id,
        debit=totals["debit"],
        credit=totals["credit"],
        balanced=totals["debit"] == totals["credit"],
    )
