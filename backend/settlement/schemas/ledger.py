"""Ledger posting schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from settlement.models.ledger import LedgerEntryType


class JournalPost(BaseModel):
    """Balanced two-leg posting for a transfer."""
    transfer_id: str = Field(..., min_length=1)
    debit_account: str = Field(..., min_length=1, max_length=64)
    credit_account: str = Field(..., min_length=1, max_length=64)
    amount_usd: Decimal = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=500)


class LedgerEntryResponse(BaseModel):
    account_code: str
    entry_type: LedgerEntryType
    amount_usd: Decimal

    model_config = {"from_attributes": True}


class JournalResponse(BaseModel):
    journal_id: str
    transfer_id: str
    description: Optional[str]
    created_at: datetime
    entries: List[LedgerEntryResponse]


class JournalBalanceResponse(BaseModel):
    journal_id: str
    debit: Decimal
    credit: Decimal
    balanced: bool
