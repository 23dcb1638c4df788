"""Reconciliation engine: cross-checks transfers against funding, payout and ledger rows.

Runs out of band. It reads the live tables without locks and only ever adds rows
(one run, its issues); transfer state is never touched here.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from settlement.config import settings
from settlement.core.errors import ReconciliationRunNotFoundError
from settlement.database import AsyncSessionLocal
from settlement.models.funding_event import OnchainFundingEvent
from settlement.models.ledger import LedgerEntry, LedgerEntryType
from settlement.models.payout import PayoutInstruction, PayoutStatus
from settlement.models.quote import Quote
from settlement.models.reconciliation import (
    ReconciliationIssue,
    ReconciliationIssueCode,
    ReconciliationRun,
    ReconciliationRunStatus,
)
from settlement.models.transfer import Transfer, TransferStatus
from settlement.schemas.reconciliation import ReconciliationRunResult
from settlement.services.reconciliation_report import ReportRow, build_reconciliation_csv

logger = logging.getLogger(__name__)

OPEN_TRANSFER_STATUSES = (
    TransferStatus.AWAITING_FUNDING,
    TransferStatus.FUNDING_CONFIRMED,
    TransferStatus.PAYOUT_INITIATED,
    TransferStatus.PAYOUT_REVIEW_REQUIRED,
)

MAX_PAGE_SIZE = 2000
CENTS = Decimal("0.01")


@dataclass
class TransferSnapshot:
    """One transfer joined with the supplemental rows the rules look at."""

    transfer_id: str
    quote_id: Optional[str]
    status: TransferStatus
    chain: Optional[str]
    token: Optional[str]
    expected_etb: Optional[Decimal] = None
    funded_amount_usd: Optional[Decimal] = None
    payout_status: Optional[PayoutStatus] = None
    debit_total: Decimal = Decimal("0")
    credit_total: Decimal = Decimal("0")

    @property
    def has_funding_event(self) -> bool:
        return self.funded_amount_usd is not None

    @property
    def ledger_balanced(self) -> bool:
        return self.debit_total.quantize(CENTS) == self.credit_total.quantize(CENTS)


@dataclass
class DetectedIssue:
    transfer_id: str
    issue_code: ReconciliationIssueCode
    details: Dict[str, Any] = field(default_factory=dict)


def evaluate_rules(snapshot: TransferSnapshot) -> List[DetectedIssue]:
    """Apply every consistency rule to one transfer."""
    issues: List[DetectedIssue] = []
    status = snapshot.status.value
    payout_status = snapshot.payout_status.value if snapshot.payout_status else None

    if snapshot.status != TransferStatus.AWAITING_FUNDING and not snapshot.has_funding_event:
        issues.append(DetectedIssue(
            snapshot.transfer_id,
            ReconciliationIssueCode.MISSING_FUNDING_EVENT,
            {"transfer_status": status},
        ))

    if not snapshot.ledger_balanced:
        issues.append(DetectedIssue(
            snapshot.transfer_id,
            ReconciliationIssueCode.LEDGER_IMBALANCE,
            {"debit_total": str(snapshot.debit_total), "credit_total": str(snapshot.credit_total)},
        ))

    if (
        snapshot.status == TransferStatus.PAYOUT_COMPLETED
        and snapshot.payout_status != PayoutStatus.PAYOUT_COMPLETED
    ):
        issues.append(DetectedIssue(
            snapshot.transfer_id,
            ReconciliationIssueCode.PAYOUT_STATUS_MISMATCH,
            {"transfer_status": status, "payout_status": payout_status},
        ))

    if snapshot.status == TransferStatus.PAYOUT_INITIATED and snapshot.payout_status is None:
        issues.append(DetectedIssue(
            snapshot.transfer_id,
            ReconciliationIssueCode.MISSING_PAYOUT_RECORD,
            {"transfer_status": status},
        ))

    return issues


class ReconciliationEngine:
    """Paginated batch scan producing a reconciliation run, its issues and a CSV report."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        lookback_days: Optional[int] = None,
        page_size: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.lookback_days = lookback_days or settings.RECONCILIATION_LOOKBACK_DAYS
        self.page_size = min(page_size or settings.RECONCILIATION_PAGE_SIZE, MAX_PAGE_SIZE)

    async def run_once(
        self,
        reason: Optional[str] = None,
        triggered_by: Optional[str] = None,
        output_path: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ReconciliationRunResult:
        """
        Scan target transfers page by page and record a completed run.

        Target transfers are every open transfer plus every transfer created within
        the lookback window. Issues of a page are inserted only after all rules for
        that page ran; a run that fails mid-scan stays ``running`` and the next
        invocation starts a fresh one.

        Args:
            reason: Why the run was triggered
            triggered_by: Operator or scheduler identity
            output_path: Optional file to also write the CSV report to
            now: Clock override (naive UTC)

        Returns:
            ReconciliationRunResult with run id, issue count and CSV text
        """
        now = now or datetime.utcnow()
        run_id = f"recon_{uuid.uuid4()}"
        cutoff = now - timedelta(days=self.lookback_days)

        async with self.session_factory() as session:
            session.add(ReconciliationRun(
                run_id=run_id,
                status=ReconciliationRunStatus.RUNNING.value,
                reason=reason,
                triggered_by=triggered_by,
                started_at=now,
            ))
            await session.commit()

        logger.info(f"Reconciliation run {run_id} started (lookback {self.lookback_days}d, page {self.page_size})")

        total_transfers = 0
        report_rows: List[ReportRow] = []
        offset = 0

        try:
            while True:
                snapshots = await self._load_page(cutoff, offset)
                total_transfers += len(snapshots)

                page_issues = [issue for snapshot in snapshots for issue in evaluate_rules(snapshot)]
                detected_at = datetime.utcnow()
                if page_issues:
                    await self._insert_issues(run_id, page_issues, detected_at)

                by_id = {snapshot.transfer_id: snapshot for snapshot in snapshots}
                for issue in page_issues:
                    snapshot = by_id[issue.transfer_id]
                    report_rows.append(ReportRow(
                        transfer_id=issue.transfer_id,
                        quote_id=snapshot.quote_id,
                        chain=snapshot.chain,
                        token=snapshot.token,
                        funded_amount_usd=snapshot.funded_amount_usd,
                        expected_etb=snapshot.expected_etb,
                        payout_status=snapshot.payout_status.value if snapshot.payout_status else None,
                        ledger_balanced=snapshot.ledger_balanced,
                        issue_code=issue.issue_code.value,
                        detected_at=detected_at,
                    ))

                if len(snapshots) < self.page_size:
                    break
                offset += self.page_size
        except Exception:
            logger.error(f"Reconciliation run {run_id} aborted after {total_transfers} transfers", exc_info=True)
            raise

        csv_text = build_reconciliation_csv(report_rows)
        if output_path:
            Path(output_path).write_text(csv_text, encoding="utf-8")
            logger.info(f"Reconciliation report for {run_id} written to {output_path}")

        async with self.session_factory() as session:
            await session.execute(
                update(ReconciliationRun)
                .where(ReconciliationRun.run_id == run_id)
                .values(
                    status=ReconciliationRunStatus.COMPLETED.value,
                    finished_at=datetime.utcnow(),
                    total_transfers=total_transfers,
                    total_issues=len(report_rows),
                )
            )
            await session.commit()

        logger.info(
            f"Reconciliation run {run_id} completed: {total_transfers} transfers, {len(report_rows)} issues"
        )
        return ReconciliationRunResult(run_id=run_id, issue_count=len(report_rows), csv=csv_text)

    async def _load_page(self, cutoff: datetime, offset: int) -> List[TransferSnapshot]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    Transfer.transfer_id,
                    Transfer.quote_id,
                    Transfer.status,
                    Transfer.chain,
                    Transfer.token,
                )
                .where(or_(
                    Transfer.status.in_(OPEN_TRANSFER_STATUSES),
                    Transfer.created_at >= cutoff,
                ))
                .order_by(Transfer.created_at.desc(), Transfer.transfer_id.desc())
                .limit(self.page_size)
                .offset(offset)
            )
            rows = result.all()

        snapshots = [
            TransferSnapshot(
                transfer_id=row.transfer_id,
                quote_id=row.quote_id,
                status=row.status,
                chain=row.chain,
                token=row.token,
            )
            for row in rows
        ]
        if snapshots:
            await self._attach_supplements(snapshots)
        return snapshots

    async def _attach_supplements(self, snapshots: Sequence[TransferSnapshot]) -> None:
        transfer_ids = [s.transfer_id for s in snapshots]
        quote_ids = [s.quote_id for s in snapshots if s.quote_id]

        expected, funded, payouts, ledger = await asyncio.gather(
            self._fetch_expected_etb(quote_ids),
            self._fetch_funded_amounts(transfer_ids),
            self._fetch_payout_statuses(transfer_ids),
            self._fetch_ledger_totals(transfer_ids),
        )

        for snapshot in snapshots:
            snapshot.expected_etb = expected.get(snapshot.quote_id)
            snapshot.funded_amount_usd = funded.get(snapshot.transfer_id)
            snapshot.payout_status = payouts.get(snapshot.transfer_id)
            debit, credit = ledger.get(snapshot.transfer_id, (Decimal("0"), Decimal("0")))
            snapshot.debit_total = debit
            snapshot.credit_total = credit

    async def _fetch_expected_etb(self, quote_ids: List[str]) -> Dict[str, Decimal]:
        if not quote_ids:
            return {}
        async with self.session_factory() as session:
            result = await session.execute(
                select(Quote.quote_id, Quote.recipient_amount_etb).where(Quote.quote_id.in_(quote_ids))
            )
            return {row.quote_id: Decimal(row.recipient_amount_etb) for row in result}

    async def _fetch_funded_amounts(self, transfer_ids: List[str]) -> Dict[str, Decimal]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(OnchainFundingEvent.transfer_id, OnchainFundingEvent.amount_usd)
                .where(OnchainFundingEvent.transfer_id.in_(transfer_ids))
            )
            return {row.transfer_id: Decimal(row.amount_usd) for row in result}

    async def _fetch_payout_statuses(self, transfer_ids: List[str]) -> Dict[str, PayoutStatus]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PayoutInstruction.transfer_id, PayoutInstruction.status)
                .where(PayoutInstruction.transfer_id.in_(transfer_ids))
            )
            return {row.transfer_id: row.status for row in result}

    async def _fetch_ledger_totals(self, transfer_ids: List[str]) -> Dict[str, tuple]:
        debit = func.coalesce(func.sum(case(
            (LedgerEntry.entry_type == LedgerEntryType.DEBIT, LedgerEntry.amount_usd), else_=0
        )), 0)
        credit = func.coalesce(func.sum(case(
            (LedgerEntry.entry_type == LedgerEntryType.CREDIT, LedgerEntry.amount_usd), else_=0
        )), 0)
        async with self.session_factory() as session:
            result = await session.execute(
                select(LedgerEntry.transfer_id, debit.label("debit_total"), credit.label("credit_total"))
                .where(LedgerEntry.transfer_id.in_(transfer_ids))
                .group_by(LedgerEntry.transfer_id)
            )
            return {
                row.transfer_id: (
                    Decimal(str(row.debit_total or 0)).quantize(CENTS),
                    Decimal(str(row.credit_total or 0)).quantize(CENTS),
                )
                for row in result
            }

    async def _insert_issues(self, run_id: str, issues: List[DetectedIssue], detected_at: datetime) -> None:
        async with self.session_factory() as session:
            session.add_all([
                ReconciliationIssue(
                    run_id=run_id,
                    transfer_id=issue.transfer_id,
                    issue_code=issue.issue_code.value,
                    details=issue.details,
                    detected_at=detected_at,
                )
                for issue in issues
            ])
            await session.commit()


async def get_run_detail(db: AsyncSession, run_id: str) -> tuple[ReconciliationRun, List[ReconciliationIssue]]:
    run = await db.get(ReconciliationRun, run_id)
    if run is None:
        raise ReconciliationRunNotFoundError(run_id)

    result = await db.execute(
        select(ReconciliationIssue)
        .where(ReconciliationIssue.run_id == run_id)
        .order_by(ReconciliationIssue.id)
    )
    return run, list(result.scalars().all())


async def list_issues(
    db: AsyncSession,
    since: Optional[datetime] = None,
    limit: int = 100,
) -> List[ReconciliationIssue]:
    """Most recent issues first, optionally only those detected at or after ``since``."""
    query = select(ReconciliationIssue)
    if since is not None:
        query = query.where(ReconciliationIssue.detected_at >= since)
    result = await db.execute(query.order_by(ReconciliationIssue.detected_at.desc()).limit(limit))
    return list(result.scalars().all())


# Global engine bound to the application session factory
reconciliation_engine = ReconciliationEngine()
