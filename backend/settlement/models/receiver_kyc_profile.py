"""Receiver KYC read model."""

from datetime import datetime

from sqlalchemy import String, Boolean, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from settlement.database import Base


class ReceiverKycProfile(Base):
    """KYC state of a payout receiver, owned by the recipients/KYC service."""

    __tablename__ = "receiver_kyc_profile"

    receiver_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kyc_status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="pending"
    )  # approved|pending|rejected
    national_id_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<ReceiverKycProfile(receiver_id={self.receiver_id}, kyc_status={self.kyc_status})>"
