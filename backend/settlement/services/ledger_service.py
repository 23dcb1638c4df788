"""Double-entry ledger postings."""

import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.errors import JournalNotFoundError, LedgerValidationError
from settlement.models.ledger import LedgerEntry, LedgerEntryType, LedgerJournal

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


async def post_double_entry(
    db: AsyncSession,
    *,
    transfer_id: str,
    debit_account: str,
    credit_account: str,
    amount_usd: Decimal,
    description: Optional[str] = None,
) -> LedgerJournal:
    """
    Write one journal with a matching debit and credit line.

    Args:
        db: Database session
        transfer_id: Transfer the posting belongs to
        debit_account: Account code debited
        credit_account: Account code credited
        amount_usd: Positive USD amount, rounded half-up to cents
        description: Free-form journal description

    Returns:
        The committed journal

    Raises:
        LedgerValidationError: Non-positive amount or identical accounts
    """
    amount = Decimal(amount_usd).quantize(CENTS, rounding=ROUND_HALF_UP)
    if amount <= 0:
        raise LedgerValidationError("Ledger amount must be greater than zero.")
    if debit_account == credit_account:
        raise LedgerValidationError("Debit and credit accounts must differ.")

    journal = LedgerJournal(
        journal_id=f"jr_{uuid.uuid4()}",
        transfer_id=transfer_id,
        description=description,
    )
    db.add(journal)
    await db.flush()

    db.add_all([
        LedgerEntry(
            journal_id=journal.journal_id,
            transfer_id=transfer_id,
            account_code=debit_account,
            entry_type=LedgerEntryType.DEBIT,
            amount_usd=amount,
        ),
        LedgerEntry(
            journal_id=journal.journal_id,
            transfer_id=transfer_id,
            account_code=credit_account,
            entry_type=LedgerEntryType.CREDIT,
            amount_usd=amount,
        ),
    ])
    await db.commit()
    await db.refresh(journal)

    logger.info(f"Posted journal {journal.journal_id}: {debit_account} -> {credit_account} {amount} USD")
    return journal


async def get_journal(db: AsyncSession, journal_id: str) -> LedgerJournal:
    journal = await db.get(LedgerJournal, journal_id)
    if journal is None:
        raise JournalNotFoundError(journal_id)
    return journal


async def get_journal_entries(db: AsyncSession, journal_id: str) -> list[LedgerEntry]:
    result = await db.execute(
        select(LedgerEntry).where(LedgerEntry.journal_id == journal_id).order_by(LedgerEntry.id)
    )
    return list(result.scalars().all())


async def get_journal_balance(db: AsyncSession, journal_id: str) -> Dict[str, Decimal]:
    """Debit and credit totals of one journal."""
    result = await db.execute(
        select(
            func.coalesce(
                func.sum(case((LedgerEntry.entry_type == LedgerEntryType.DEBIT, LedgerEntry.amount_usd), else_=0)),
                0,
            ).label("debit"),
            func.coalesce(
                func.sum(case((LedgerEntry.entry_type == LedgerEntryType.CREDIT, LedgerEntry.amount_usd), else_=0)),
                0,
            ).label("credit"),
        ).where(LedgerEntry.journal_id == journal_id)
    )
    row = result.one()
    return {
        "debit": Decimal(row.debit or 0).quantize(CENTS),
        "credit": Decimal(row.credit or 0).quantize(CENTS),
    }
