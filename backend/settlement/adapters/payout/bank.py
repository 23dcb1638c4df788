"""Bank transfer payout adapter (HTTP)."""

import logging
from datetime import datetime
from typing import Optional

import httpx

from settlement.adapters.payout.base import (
    NonRetryableAdapterError,
    PayoutAdapter,
    PayoutRequest,
    PayoutResponse,
    RetryableAdapterError,
)

logger = logging.getLogger(__name__)


class BankPayoutAdapter(PayoutAdapter):
    """
    Posts payout instructions to the partner bank's payout API.

    With no ``api_url`` configured the adapter runs in sandbox mode and accepts
    every request locally, which is what development and tests use.
    """

    def __init__(
        self,
        api_url: str = "",
        api_key: str = "",
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    @property
    def sandbox(self) -> bool:
        return not self.api_url

    async def send(self, request: PayoutRequest, idempotency_key: str) -> PayoutResponse:
        if self.sandbox:
            logger.info(f"Sandbox bank payout accepted for {request.payout_id}")
            return PayoutResponse(
                provider_reference=f"bank_ref_{request.payout_id}",
                accepted_at=datetime.utcnow(),
            )

        body = {
            "payout_id": request.payout_id,
            "transfer_id": request.transfer_id,
            "account": request.recipient_account_ref,
            "amount": f"{request.amount_etb:.2f}",
            "currency": "ETB",
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Idempotency-Key": idempotency_key,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = await client.post(f"{self.api_url}/payouts", json=body, headers=headers)
        except httpx.TimeoutException as exc:
            raise RetryableAdapterError(f"Bank payout timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise RetryableAdapterError(f"Bank payout request failed: {exc}") from exc

        if response.status_code >= 500 or response.status_code == 429:
            raise RetryableAdapterError(f"Bank payout temporary failure: HTTP {response.status_code}")
        if response.status_code >= 400:
            raise NonRetryableAdapterError(
                f"Bank rejected payout: HTTP {response.status_code} {response.text[:200]}"
            )

        try:
            payload = response.json()
            reference = payload["reference"]
        except (ValueError, KeyError, TypeError) as exc:
            raise RetryableAdapterError("Bank payout response is missing a reference") from exc

        return PayoutResponse(provider_reference=str(reference), accepted_at=datetime.utcnow())
