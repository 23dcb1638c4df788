"""On-chain funding confirmation schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from settlement.schemas.common import naive_utc


class FundingConfirmedEvent(BaseModel):
    """Confirmed deposit reported by the on-chain watcher."""

    event_id: str = Field(..., min_length=1, max_length=128)
    chain: str = Field(..., pattern="^(base|solana)$")
    token: str = Field(..., pattern="^(USDC|USDT)$")
    tx_hash: str = Field(..., min_length=1, max_length=128)
    log_index: int = Field(..., ge=0)
    deposit_address: str = Field(..., min_length=1, max_length=128)
    amount_usd: Decimal = Field(..., gt=0)
    confirmed_at: datetime

    @field_validator("confirmed_at")
    @classmethod
    def normalize_confirmed_at(cls, v: datetime) -> datetime:
        return naive_utc(v)


class FundingResult(BaseModel):
    """Outcome of processing a funding confirmation."""

    status: str  # confirmed|duplicate|route_not_found|invalid_state
    transfer_id: Optional[str] = None
