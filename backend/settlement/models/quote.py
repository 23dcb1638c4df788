"""Quote database model (immutable price lock)."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Numeric, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from settlement.database import Base


class Quote(Base):
    """Price lock for a USD stablecoin send converted to an ETB payout.

    Rows are written once by the quote service and never updated.
    """

    __tablename__ = "quotes"

    # Primary Key
    quote_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Rail
    chain: Mapped[str] = mapped_column(String(16), nullable=False)  # base|solana
    token: Mapped[str] = mapped_column(String(16), nullable=False)  # USDC|USDT

    # Pricing
    send_amount_usd: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    fee_usd: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    fx_rate_usd_to_etb: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    recipient_amount_etb: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)

    # Timestamps
    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<Quote(quote_id={self.quote_id}, send_amount_usd={self.send_amount_usd})>"
