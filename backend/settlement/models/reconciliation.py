"""Reconciliation run and issue models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import String, Integer, ForeignKey, TIMESTAMP, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from settlement.database import Base


class ReconciliationRunStatus(str, Enum):
    """Reconciliation run states."""
    RUNNING = "running"
    COMPLETED = "completed"


class ReconciliationIssueCode(str, Enum):
    """Cross-table inconsistencies detected by the reconciliation engine."""
    MISSING_FUNDING_EVENT = "MISSING_FUNDING_EVENT"
    LEDGER_IMBALANCE = "LEDGER_IMBALANCE"
    PAYOUT_STATUS_MISMATCH = "PAYOUT_STATUS_MISMATCH"
    MISSING_PAYOUT_RECORD = "MISSING_PAYOUT_RECORD"


class ReconciliationRun(Base):
    """One batch pass over the transfer tables. Immutable once completed."""

    __tablename__ = "reconciliation_run"

    run_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ReconciliationRunStatus.RUNNING.value,
        index=True
    )  # running|completed
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    triggered_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    total_transfers: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_issues: Mapped[int | None] = mapped_column(Integer, nullable=True)
    started_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False, default=datetime.utcnow)
    finished_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    def __repr__(self) -> str:
        return f"<ReconciliationRun(run_id={self.run_id}, status={self.status})>"


class ReconciliationIssue(Base):
    """Detected inconsistency for one transfer within a run."""

    __tablename__ = "reconciliation_issue"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("reconciliation_run.run_id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    transfer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    issue_code: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    detected_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        index=True
    )

    def __repr__(self) -> str:
        return f"<ReconciliationIssue(run_id={self.run_id}, transfer_id={self.transfer_id}, code={self.issue_code})>"
