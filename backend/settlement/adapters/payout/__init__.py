"""Payout adapters: one implementation per settlement rail behind PayoutAdapter."""

from settlement.adapters.payout.base import (
    PayoutAdapter,
    PayoutRequest,
    PayoutResponse,
    RetryableAdapterError,
    NonRetryableAdapterError,
)
from settlement.adapters.payout.bank import BankPayoutAdapter
from settlement.adapters.payout.telebirr import TelebirrPayoutAdapter

__all__ = [
    "PayoutAdapter",
    "PayoutRequest",
    "PayoutResponse",
    "RetryableAdapterError",
    "NonRetryableAdapterError",
    "BankPayoutAdapter",
    "TelebirrPayoutAdapter",
]
