"""API routers package."""

from settlement.api import quotes, transfers, funding, payouts, ledger, reconciliation, events, deps

__all__ = [
    "quotes",
    "transfers",
    "funding",
    "payouts",
    "ledger",
    "reconciliation",
    "events",
    "deps",
]
