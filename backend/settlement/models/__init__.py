"""Database models package."""

from settlement.models.quote import Quote
from settlement.models.receiver_kyc_profile import ReceiverKycProfile
from settlement.models.transfer import (
    Transfer,
    TransferStatus,
    DepositRoute,
    DepositRouteStatus,
    TransferTransition,
)
from settlement.models.funding_event import OnchainFundingEvent
from settlement.models.payout import PayoutInstruction, PayoutStatusEvent, PayoutStatus, PayoutMethod
from settlement.models.ledger import LedgerJournal, LedgerEntry, LedgerEntryType
from settlement.models.idempotency_record import IdempotencyRecord, IN_FLIGHT_STATUS
from settlement.models.reconciliation import (
    ReconciliationRun,
    ReconciliationRunStatus,
    ReconciliationIssue,
    ReconciliationIssueCode,
)
from settlement.models.audit_log import AuditLog

__all__ = [
    "Quote",
    "ReceiverKycProfile",
    "Transfer",
    "TransferStatus",
    "DepositRoute",
    "DepositRouteStatus",
    "TransferTransition",
    "OnchainFundingEvent",
    "PayoutInstruction",
    "PayoutStatusEvent",
    "PayoutStatus",
    "PayoutMethod",
    "LedgerJournal",
    "LedgerEntry",
    "LedgerEntryType",
    "IdempotencyRecord",
    "IN_FLIGHT_STATUS",
    "ReconciliationRun",
    "ReconciliationRunStatus",
    "ReconciliationIssue",
    "ReconciliationIssueCode",
    "AuditLog",
]
