"""Payout adapter contract shared by every settlement rail."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


class RetryableAdapterError(Exception):
    """Transient provider failure (timeout, connection error, 5xx). Safe to retry."""


class NonRetryableAdapterError(Exception):
    """Provider rejected the payout (e.g. invalid beneficiary). Retrying will not help."""


@dataclass(frozen=True)
class PayoutRequest:
    payout_id: str
    transfer_id: str
    method: str
    recipient_account_ref: str  # plaintext, decrypted just before dispatch
    amount_etb: Decimal


@dataclass(frozen=True)
class PayoutResponse:
    provider_reference: str
    accepted_at: datetime


class PayoutAdapter(ABC):
    """Sends one payout to a provider.

    Implementations must raise RetryableAdapterError or NonRetryableAdapterError
    for provider failures; anything else is treated as a bug by the orchestrator.
    The idempotency key is forwarded to the provider so a retried send never pays twice.
    """

    @abstractmethod
    async def send(self, request: PayoutRequest, idempotency_key: str) -> PayoutResponse:
        ...
