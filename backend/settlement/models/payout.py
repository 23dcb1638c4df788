"""Payout instruction and payout status history models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import String, Text, Numeric, Integer, ForeignKey, TIMESTAMP, JSON, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from settlement.database import Base


class PayoutMethod(str, Enum):
    """Supported payout rails."""
    BANK = "bank"
    TELEBIRR = "telebirr"


class PayoutStatus(str, Enum):
    """Payout instruction lifecycle states."""
    PAYOUT_PENDING = "PAYOUT_PENDING"
    PAYOUT_INITIATED = "PAYOUT_INITIATED"
    PAYOUT_COMPLETED = "PAYOUT_COMPLETED"
    PAYOUT_FAILED = "PAYOUT_FAILED"
    PAYOUT_REVIEW_REQUIRED = "PAYOUT_REVIEW_REQUIRED"


class PayoutInstruction(Base):
    """The single payout attempt record for a transfer."""

    __tablename__ = "payout_instruction"

    # Primary Key
    payout_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    transfer_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("transfers.transfer_id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )

    method: Mapped[PayoutMethod] = mapped_column(
        SQLEnum(PayoutMethod, name="payout_method", native_enum=False, length=16,
                values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    recipient_account_ref: Mapped[str] = mapped_column(Text, nullable=False)  # Fernet ciphertext
    amount_etb: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)

    status: Mapped[PayoutStatus] = mapped_column(
        SQLEnum(PayoutStatus, name="payout_status", native_enum=False, length=32),
        nullable=False,
        default=PayoutStatus.PAYOUT_PENDING,
        index=True
    )
    provider_reference: Mapped[str | None] = mapped_column(String(128), nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<PayoutInstruction(payout_id={self.payout_id}, status={self.status})>"


class PayoutStatusEvent(Base):
    """Append-only payout status history, independent of the mutable instruction row."""

    __tablename__ = "payout_status_event"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    payout_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("payout_instruction.payout_id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    transfer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    from_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    event_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<PayoutStatusEvent(payout_id={self.payout_id}, {self.from_status}->{self.to_status})>"
