"""Payout initiation and provider callback schemas."""

from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class PayoutInitiate(BaseModel):
    """Request to pay out a funded transfer."""

    transfer_id: str = Field(..., min_length=1)
    method: str = Field(..., pattern="^(bank|telebirr)$")
    recipient_account_ref: str = Field(..., min_length=1, max_length=256)
    amount_etb: Decimal = Field(..., gt=0)


class PayoutResult(BaseModel):
    """Decision recorded for a payout initiation."""

    status: str  # initiated|review_required, or completed|failed when re-requested after the outcome
    payout_id: str
    transfer_id: str
    provider_reference: Optional[str] = None
    attempts: int


class PayoutStatusCallback(BaseModel):
    """Out-of-band status update from the payout provider."""

    payout_id: str = Field(..., min_length=1)
    provider_reference: str = Field(..., min_length=1)
    status: str = Field(..., pattern="^(completed|failed)$")
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PayoutCallbackResult(BaseModel):
    """Result of applying a provider callback."""

    payout_id: str
    transfer_id: str
    status: str  # completed|failed
    idempotent: bool = False
