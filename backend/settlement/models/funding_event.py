"""On-chain funding event model."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Numeric, Integer, ForeignKey, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement.database import Base


class OnchainFundingEvent(Base):
    """Confirmed deposit matched to a transfer's deposit route.

    The two unique constraints are the dedup boundary: an on-chain log can be
    recorded once, and a transfer can be funded once.
    """

    __tablename__ = "onchain_funding_event"

    # Primary Key
    event_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    # On-chain coordinates
    chain: Mapped[str] = mapped_column(String(16), nullable=False)
    token: Mapped[str] = mapped_column(String(16), nullable=False)
    tx_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)

    transfer_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("transfers.transfer_id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )
    deposit_address: Mapped[str] = mapped_column(String(128), nullable=False)
    amount_usd: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)

    confirmed_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )

    __table_args__ = (
        UniqueConstraint("chain", "tx_hash", "log_index", name="uq_funding_event_chain_tx_log"),
    )

    def __repr__(self) -> str:
        return f"<OnchainFundingEvent(event_id={self.event_id}, transfer_id={self.transfer_id})>"
