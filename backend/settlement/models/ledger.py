"""Double-entry ledger journal and entry models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import String, Text, Numeric, Integer, ForeignKey, TIMESTAMP, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from settlement.database import Base


class LedgerEntryType(str, Enum):
    """Side of a ledger entry."""
    DEBIT = "debit"
    CREDIT = "credit"


class LedgerJournal(Base):
    """Groups the balanced entries of one posting."""

    __tablename__ = "ledger_journal"

    journal_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    transfer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<LedgerJournal(journal_id={self.journal_id}, transfer_id={self.transfer_id})>"


class LedgerEntry(Base):
    """Single debit or credit line in USD."""

    __tablename__ = "ledger_entry"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    journal_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("ledger_journal.journal_id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    transfer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    account_code: Mapped[str] = mapped_column(String(64), nullable=False)
    entry_type: Mapped[LedgerEntryType] = mapped_column(
        SQLEnum(LedgerEntryType, name="ledger_entry_type", native_enum=False, length=8,
                values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )
    amount_usd: Mapped[Decimal] = mapped_column(Numeric(20, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry(transfer_id={self.transfer_id}, {self.entry_type} {self.amount_usd})>"
