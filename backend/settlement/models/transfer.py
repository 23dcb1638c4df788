"""Transfer aggregate, deposit route and transfer timeline models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    String, Numeric, Boolean, ForeignKey, TIMESTAMP, Integer, Index, JSON,
    Enum as SQLEnum, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement.database import Base


class TransferStatus(str, Enum):
    """Transfer lifecycle states."""
    AWAITING_FUNDING = "AWAITING_FUNDING"
    FUNDING_CONFIRMED = "FUNDING_CONFIRMED"
    PAYOUT_INITIATED = "PAYOUT_INITIATED"
    PAYOUT_COMPLETED = "PAYOUT_COMPLETED"
    PAYOUT_FAILED = "PAYOUT_FAILED"
    PAYOUT_REVIEW_REQUIRED = "PAYOUT_REVIEW_REQUIRED"
    EXPIRED = "EXPIRED"  # Set by the expiry sweep only


class DepositRouteStatus(str, Enum):
    """Deposit route states."""
    ACTIVE = "active"
    RETIRED = "retired"


class Transfer(Base):
    """One sender-to-receiver value movement with its frozen KYC snapshot."""

    __tablename__ = "transfers"

    # Primary Key
    transfer_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Price lock (1:1)
    quote_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("quotes.quote_id"),
        nullable=False,
        unique=True
    )

    # Parties
    sender_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    receiver_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # KYC snapshot captured at creation
    sender_kyc_status: Mapped[str] = mapped_column(String(16), nullable=False)
    receiver_kyc_status: Mapped[str] = mapped_column(String(16), nullable=False)
    receiver_national_id_verified: Mapped[bool] = mapped_column(Boolean, nullable=False)

    # Rail and amount
    chain: Mapped[str] = mapped_column(String(16), nullable=False)
    token: Mapped[str] = mapped_column(String(16), nullable=False)
    send_amount_usd: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)

    # Status
    status: Mapped[TransferStatus] = mapped_column(
        SQLEnum(TransferStatus, name="transfer_status", native_enum=False, length=32),
        nullable=False,
        default=TransferStatus.AWAITING_FUNDING,
        index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    # Relationships
    deposit_routes: Mapped[list["DepositRoute"]] = relationship(
        "DepositRoute",
        back_populates="transfer"
    )

    def __repr__(self) -> str:
        return f"<Transfer(transfer_id={self.transfer_id}, status={self.status})>"


class DepositRoute(Base):
    """On-chain address assigned to a transfer for receiving funds."""

    __tablename__ = "deposit_routes"

    route_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    transfer_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("transfers.transfer_id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    chain: Mapped[str] = mapped_column(String(16), nullable=False)
    token: Mapped[str] = mapped_column(String(16), nullable=False)
    deposit_address: Mapped[str] = mapped_column(String(128), nullable=False)
    deposit_memo: Mapped[str | None] = mapped_column(String(64), nullable=True)
    derivation_path: Mapped[str | None] = mapped_column(String(128), nullable=True)

    status: Mapped[DepositRouteStatus] = mapped_column(
        SQLEnum(DepositRouteStatus, name="deposit_route_status", native_enum=False, length=16,
                values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=DepositRouteStatus.ACTIVE
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )

    transfer: Mapped["Transfer"] = relationship("Transfer", back_populates="deposit_routes")

    # An address resolves to at most one active route, and a transfer has at most one active route
    __table_args__ = (
        Index(
            "uq_deposit_routes_active_address",
            "chain", "token", "deposit_address",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index(
            "uq_deposit_routes_active_transfer",
            "transfer_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<DepositRoute(route_id={self.route_id}, address={self.deposit_address}, status={self.status})>"


class TransferTransition(Base):
    """Append-only transfer status history surfaced to the sender as a timeline."""

    __tablename__ = "transfer_transition"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transfer_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("transfers.transfer_id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    from_state: Mapped[str | None] = mapped_column(String(32), nullable=True)
    to_state: Mapped[str] = mapped_column(String(32), nullable=False)
    transition_metadata: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        index=True
    )

    def __repr__(self) -> str:
        return f"<TransferTransition(transfer_id={self.transfer_id}, {self.from_state}->{self.to_state})>"
