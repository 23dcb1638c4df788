"""Business logic services package."""

from settlement.services.quote_service import create_quote, get_quote
from settlement.services.transfer_service import create_transfer, get_transfer_detail
from settlement.services.funding_service import process_funding_confirmed
from settlement.services.payout_service import PayoutOrchestrator, payout_orchestrator
from settlement.services.ledger_service import post_double_entry, get_journal_balance
from settlement.services.reconciliation_service import ReconciliationEngine, reconciliation_engine

__all__ = [
    # Quote service
    "create_quote",
    "get_quote",
    # Transfer service
    "create_transfer",
    "get_transfer_detail",
    # Funding confirmations
    "process_funding_confirmed",
    # Payout orchestration
    "PayoutOrchestrator",
    "payout_orchestrator",
    # Ledger
    "post_double_entry",
    "get_journal_balance",
    # Reconciliation
    "ReconciliationEngine",
    "reconciliation_engine",
]
