"""Quote creation and lookup."""

import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from settlement.config import settings
from settlement.core.errors import QuoteNotFoundError, QuoteValidationError
from settlement.models.quote import Quote

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def compute_recipient_amount_etb(
    send_amount_usd: Decimal,
    fee_usd: Decimal,
    fx_rate_usd_to_etb: Decimal,
) -> Decimal:
    """ETB paid out after the fee: (send - fee) * fx, rounded half-up to cents."""
    return ((send_amount_usd - fee_usd) * fx_rate_usd_to_etb).quantize(CENTS, rounding=ROUND_HALF_UP)


async def create_quote(
    db: AsyncSession,
    *,
    chain: str,
    token: str,
    send_amount_usd: Decimal,
    fee_usd: Decimal,
    fx_rate_usd_to_etb: Decimal,
    expires_in_seconds: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Quote:
    """
    Lock a price for a future transfer.

    Raises:
        QuoteValidationError: Amount above the per-transfer limit, fee larger than
            the amount, or a non-positive expiry window
    """
    now = now or datetime.utcnow()
    expires_in = expires_in_seconds if expires_in_seconds is not None else settings.QUOTE_EXPIRATION_SECONDS

    if send_amount_usd > settings.MAX_TRANSFER_USD:
        raise QuoteValidationError(
            f"Send amount exceeds the {settings.MAX_TRANSFER_USD} USD per-transfer limit."
        )
    if fee_usd > send_amount_usd:
        raise QuoteValidationError("Fee cannot exceed the send amount.")
    if expires_in <= 0:
        raise QuoteValidationError("Quote expiry must be in the future.")

    quote = Quote(
        quote_id=f"q_{uuid.uuid4().hex}",
        chain=chain,
        token=token,
        send_amount_usd=send_amount_usd,
        fee_usd=fee_usd,
        fx_rate_usd_to_etb=fx_rate_usd_to_etb,
        recipient_amount_etb=compute_recipient_amount_etb(send_amount_usd, fee_usd, fx_rate_usd_to_etb),
        expires_at=now + timedelta(seconds=expires_in),
        created_at=now,
    )
    db.add(quote)
    await db.commit()
    await db.refresh(quote)

    logger.info(f"Created quote {quote.quote_id} for {send_amount_usd} USD on {chain}/{token}")
    return quote


async def get_quote(db: AsyncSession, quote_id: str) -> Quote:
    quote = await db.get(Quote, quote_id)
    if quote is None:
        raise QuoteNotFoundError(quote_id)
    return quote
