"""Transfer creation and read schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from settlement.models.transfer import TransferStatus, DepositRouteStatus


class TransferCreate(BaseModel):
    """
    Request to create a transfer from a locked quote.

    Receiver KYC fields are the caller's view; a stored receiver KYC profile
    takes precedence over them.
    """
    quote_id: str = Field(..., min_length=1)
    sender_id: str = Field(..., min_length=1)
    receiver_id: str = Field(..., min_length=1)
    sender_kyc_status: str = Field(..., pattern="^(approved|pending|rejected)$")
    receiver_kyc_status: str = Field(..., pattern="^(approved|pending|rejected)$")
    receiver_national_id_verified: bool


class DepositRouteResponse(BaseModel):
    """Where the sender should deposit funds."""
    route_id: str
    transfer_id: str
    chain: str
    token: str
    deposit_address: str
    deposit_memo: Optional[str]
    status: DepositRouteStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class TransferResponse(BaseModel):
    """Transfer aggregate."""
    transfer_id: str
    quote_id: str
    sender_id: str
    receiver_id: str
    sender_kyc_status: str
    receiver_kyc_status: str
    receiver_national_id_verified: bool
    chain: str
    token: str
    send_amount_usd: Decimal
    status: TransferStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TransferCreationResponse(BaseModel):
    """Response after creating a transfer (replayed verbatim on duplicate requests)."""
    transfer: TransferResponse
    deposit_route: DepositRouteResponse


class TransferTransitionResponse(BaseModel):
    from_state: Optional[str]
    to_state: str
    occurred_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="transition_metadata")

    model_config = {"from_attributes": True}


class TransferDetailResponse(BaseModel):
    """Transfer with its active deposit route and status timeline."""
    transfer: TransferResponse
    deposit_route: Optional[DepositRouteResponse]
    timeline: List[TransferTransitionResponse]
