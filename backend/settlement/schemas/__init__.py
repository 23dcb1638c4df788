"""Pydantic schemas package."""

from settlement.schemas.quote import QuoteCreate, QuoteResponse
from settlement.schemas.transfer import (
    TransferCreate,
    TransferResponse,
    DepositRouteResponse,
    TransferCreationResponse,
    TransferTransitionResponse,
    TransferDetailResponse,
)
from settlement.schemas.funding import FundingConfirmedEvent, FundingResult
from settlement.schemas.payout import (
    PayoutInitiate,
    PayoutResult,
    PayoutStatusCallback,
    PayoutCallbackResult,
)
from settlement.schemas.ledger import JournalPost, JournalResponse, JournalBalanceResponse, LedgerEntryResponse
from settlement.schemas.reconciliation import (
    ReconciliationRunRequest,
    ReconciliationRunResult,
    ReconciliationRunResponse,
    ReconciliationIssueResponse,
    ReconciliationRunDetail,
)

__all__ = [
    # Quote schemas
    "QuoteCreate",
    "QuoteResponse",
    # Transfer schemas
    "TransferCreate",
    "TransferResponse",
    "DepositRouteResponse",
    "TransferCreationResponse",
    "TransferTransitionResponse",
    "TransferDetailResponse",
    # Funding schemas
    "FundingConfirmedEvent",
    "FundingResult",
    # Payout schemas
    "PayoutInitiate",
    "PayoutResult",
    "PayoutStatusCallback",
    "PayoutCallbackResult",
    # Ledger schemas
    "JournalPost",
    "JournalResponse",
    "LedgerEntryResponse",
    "JournalBalanceResponse",
    # Reconciliation schemas
    "ReconciliationRunRequest",
    "ReconciliationRunResult",
    "ReconciliationRunResponse",
    "ReconciliationIssueResponse",
    "ReconciliationRunDetail",
]
