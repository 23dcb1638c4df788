"""Quote request and response schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class QuoteCreate(BaseModel):
    """Request to lock a price for a transfer."""

    chain: str = Field(..., pattern="^(base|solana)$")
    token: str = Field(..., pattern="^(USDC|USDT)$")
    send_amount_usd: Decimal = Field(..., gt=0, description="Stablecoin amount the sender will deposit")
    fee_usd: Decimal = Field(..., ge=0)
    fx_rate_usd_to_etb: Decimal = Field(..., gt=0)
    expires_in_seconds: Optional[int] = Field(None, description="Defaults to the configured quote lifetime")


class QuoteResponse(BaseModel):
    """Locked quote."""

    quote_id: str
    chain: str
    token: str
    send_amount_usd: Decimal
    fee_usd: Decimal
    fx_rate_usd_to_etb: Decimal
    recipient_amount_etb: Decimal
    expires_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True
