"""Telebirr mobile-money payout adapter."""

from datetime import datetime

from settlement.adapters.payout.base import PayoutAdapter, PayoutRequest, PayoutResponse
from settlement.core.errors import FeatureDisabledError


class TelebirrPayoutAdapter(PayoutAdapter):
    """Placeholder rail until the Telebirr integration goes live; gated by a feature flag."""

    def __init__(self, enabled: bool):
        self.enabled = enabled

    async def send(self, request: PayoutRequest, idempotency_key: str) -> PayoutResponse:
        if not self.enabled:
            raise FeatureDisabledError("Telebirr payout")

        return PayoutResponse(
            provider_reference=f"telebirr_{request.payout_id}",
            accepted_at=datetime.utcnow(),
        )
