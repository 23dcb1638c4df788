"""Flat CSV report of reconciliation issues."""

import csv
import io
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

REPORT_COLUMNS = [
    "transfer_id",
    "quote_id",
    "chain",
    "token",
    "funded_amount_usd",
    "expected_etb",
    "payout_status",
    "ledger_balanced",
    "issue_code",
    "detected_at",
]


@dataclass
class ReportRow:
    transfer_id: str
    quote_id: Optional[str]
    chain: Optional[str]
    token: Optional[str]
    funded_amount_usd: Optional[Decimal]
    expected_etb: Optional[Decimal]
    payout_status: Optional[str]
    ledger_balanced: bool
    issue_code: str
    detected_at: datetime


def _money(value: Optional[Decimal]) -> str:
    if value is None:
        return ""
    return str(Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def build_reconciliation_csv(rows: Iterable[ReportRow]) -> str:
    """Render one line per issue under a fixed header. Amounts are printed with two decimals."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(REPORT_COLUMNS)
    for row in rows:
        writer.writerow([
            row.transfer_id,
            row.quote_id or "",
            row.chain or "",
            row.token or "",
            _money(row.funded_amount_usd),
            _money(row.expected_etb),
            row.payout_status or "",
            "true" if row.ledger_balanced else "false",
            row.issue_code,
            row.detected_at.isoformat(),
        ])
    return buffer.getvalue()
