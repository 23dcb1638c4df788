"""Tests for the reconciliation engine and report."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from settlement.core.security import create_access_token
from settlement.models.funding_event import OnchainFundingEvent
from settlement.models.ledger import LedgerEntry, LedgerEntryType, LedgerJournal
from settlement.models.payout import PayoutInstruction, PayoutMethod, PayoutStatus
from settlement.models.quote import Quote
from settlement.models.reconciliation import ReconciliationIssue, ReconciliationRun
from settlement.models.transfer import Transfer, TransferStatus
from settlement.services.reconciliation_report import REPORT_COLUMNS, ReportRow, build_reconciliation_csv
from settlement.services.reconciliation_service import (
    ReconciliationEngine,
    TransferSnapshot,
    evaluate_rules,
)


async def add_transfer(db, transfer_id: str, status: TransferStatus, created_at: datetime = None) -> Transfer:
    """Insert a transfer with its own quote, bypassing the creation checks."""
    created_at = created_at or datetime.utcnow()
    db.add(Quote(
        quote_id=f"q_{transfer_id}",
        chain="base",
        token="USDC",
        send_amount_usd=Decimal("100"),
        fee_usd=Decimal("2"),
        fx_rate_usd_to_etb=Decimal("57.5"),
        recipient_amount_etb=Decimal("5635.00"),
        expires_at=created_at + timedelta(minutes=5),
        created_at=created_at,
    ))
    transfer = Transfer(
        transfer_id=transfer_id,
        quote_id=f"q_{transfer_id}",
        sender_id="sender-1",
        receiver_id="receiver-1",
        sender_kyc_status="approved",
        receiver_kyc_status="approved",
        receiver_national_id_verified=True,
        chain="base",
        token="USDC",
        send_amount_usd=Decimal("100"),
        status=status,
        created_at=created_at,
        updated_at=created_at,
    )
    db.add(transfer)
    await db.commit()
    return transfer


async def add_funding(db, transfer_id: str, amount: Decimal = Decimal("100")) -> None:
    db.add(OnchainFundingEvent(
        event_id=f"evt_{transfer_id}",
        chain="base",
        token="USDC",
        tx_hash=f"0x{transfer_id}",
        log_index=0,
        transfer_id=transfer_id,
        deposit_address="0xabc",
        amount_usd=amount,
        confirmed_at=datetime.utcnow(),
    ))
    await db.commit()


async def add_payout(db, transfer_id: str, status: PayoutStatus) -> None:
    db.add(PayoutInstruction(
        payout_id=f"po_{transfer_id}",
        transfer_id=transfer_id,
        method=PayoutMethod.BANK,
        recipient_account_ref="ciphertext",
        amount_etb=Decimal("5635.00"),
        status=status,
        attempt_count=1,
    ))
    await db.commit()


async def add_ledger_entry(db, transfer_id: str, entry_type: LedgerEntryType, amount: Decimal) -> None:
    journal_id = f"jr_{transfer_id}_{entry_type.value}"
    db.add(LedgerJournal(journal_id=journal_id, transfer_id=transfer_id))
    await db.flush()
    db.add(LedgerEntry(
        journal_id=journal_id,
        transfer_id=transfer_id,
        account_code="customer_funds",
        entry_type=entry_type,
        amount_usd=amount,
    ))
    await db.commit()


def snapshot(status: TransferStatus, **overrides) -> TransferSnapshot:
    data = {
        "transfer_id": "tr_1",
        "quote_id": "q_1",
        "status": status,
        "chain": "base",
        "token": "USDC",
        "funded_amount_usd": Decimal("100"),
    }
    data.update(overrides)
    return TransferSnapshot(**data)


def codes(issues) -> list:
    return sorted(issue.issue_code.value for issue in issues)


def test_consistent_transfer_has_no_issues():
    assert evaluate_rules(snapshot(TransferStatus.PAYOUT_COMPLETED, payout_status=PayoutStatus.PAYOUT_COMPLETED)) == []
    assert evaluate_rules(snapshot(TransferStatus.AWAITING_FUNDING, funded_amount_usd=None)) == []


def test_missing_funding_event_rule():
    issues = evaluate_rules(snapshot(TransferStatus.FUNDING_CONFIRMED, funded_amount_usd=None))
    assert codes(issues) == ["MISSING_FUNDING_EVENT"]


def test_ledger_imbalance_rule():
    issues = evaluate_rules(snapshot(
        TransferStatus.FUNDING_CONFIRMED,
        debit_total=Decimal("100.00"),
        credit_total=Decimal("99.99"),
    ))
    assert codes(issues) == ["LEDGER_IMBALANCE"]
    assert issues[0].details == {"debit_total": "100.00", "credit_total": "99.99"}


def test_payout_status_mismatch_rule():
    issues = evaluate_rules(snapshot(TransferStatus.PAYOUT_COMPLETED, payout_status=PayoutStatus.PAYOUT_INITIATED))
    assert codes(issues) == ["PAYOUT_STATUS_MISMATCH"]

    issues = evaluate_rules(snapshot(TransferStatus.PAYOUT_COMPLETED, payout_status=None))
    assert codes(issues) == ["PAYOUT_STATUS_MISMATCH"]


def test_missing_payout_record_rule():
    issues = evaluate_rules(snapshot(TransferStatus.PAYOUT_INITIATED, payout_status=None))
    assert codes(issues) == ["MISSING_PAYOUT_RECORD"]


def test_one_transfer_can_raise_several_issues():
    issues = evaluate_rules(snapshot(
        TransferStatus.PAYOUT_INITIATED,
        funded_amount_usd=None,
        payout_status=None,
        debit_total=Decimal("1"),
    ))
    assert codes(issues) == ["LEDGER_IMBALANCE", "MISSING_FUNDING_EVENT", "MISSING_PAYOUT_RECORD"]


def test_csv_report_format():
    detected_at = datetime(2026, 10, 19, 3, 0, 0)
    csv_text = build_reconciliation_csv([
        ReportRow(
            transfer_id="tr_1",
            quote_id="q_1",
            chain="base",
            token="USDC",
            funded_amount_usd=Decimal("100"),
            expected_etb=Decimal("5635.005"),
            payout_status=None,
            ledger_balanced=False,
            issue_code="LEDGER_IMBALANCE",
            detected_at=detected_at,
        ),
    ])

    lines = csv_text.splitlines()
    assert lines[0] == ",".join(REPORT_COLUMNS)
    assert lines[1] == "tr_1,q_1,base,USDC,100.00,5635.01,,false,LEDGER_IMBALANCE,2026-10-19T03:00:00"


def test_empty_report_has_header_only():
    assert build_reconciliation_csv([]) == ",".join(REPORT_COLUMNS) + "\n"


@pytest.mark.asyncio
async def test_run_detects_issues_across_pages(db, tmp_path):
    # Consistent transfers
    await add_transfer(db, "tr_ok_1", TransferStatus.AWAITING_FUNDING)
    await add_transfer(db, "tr_ok_2", TransferStatus.FUNDING_CONFIRMED)
    await add_funding(db, "tr_ok_2")
    # Inconsistent transfers
    await add_transfer(db, "tr_no_funding", TransferStatus.FUNDING_CONFIRMED)
    await add_transfer(db, "tr_no_payout", TransferStatus.PAYOUT_INITIATED)
    await add_funding(db, "tr_no_payout")
    await add_transfer(db, "tr_mismatch", TransferStatus.PAYOUT_COMPLETED)
    await add_funding(db, "tr_mismatch")
    await add_payout(db, "tr_mismatch", PayoutStatus.PAYOUT_FAILED)
    await add_ledger_entry(db, "tr_mismatch", LedgerEntryType.DEBIT, Decimal("100"))

    output = tmp_path / "recon.csv"
    engine = ReconciliationEngine(page_size=2)
    result = await engine.run_once(reason="nightly", triggered_by="scheduler", output_path=str(output))

    assert result.issue_count == 4
    assert output.read_text() == result.csv
    found = {tuple(line.split(",")[i] for i in (0, 8)) for line in result.csv.splitlines()[1:]}
    assert found == {
        ("tr_no_funding", "MISSING_FUNDING_EVENT"),
        ("tr_no_payout", "MISSING_PAYOUT_RECORD"),
        ("tr_mismatch", "PAYOUT_STATUS_MISMATCH"),
        ("tr_mismatch", "LEDGER_IMBALANCE"),
    }

    run = await db.get(ReconciliationRun, result.run_id)
    assert run.status == "completed"
    assert run.total_transfers == 5
    assert run.total_issues == 4
    assert run.reason == "nightly"
    assert run.finished_at is not None

    stored = (await db.execute(
        select(ReconciliationIssue).where(ReconciliationIssue.run_id == result.run_id)
    )).scalars().all()
    assert len(stored) == 4


@pytest.mark.asyncio
async def test_lookback_window_skips_old_closed_transfers(db):
    old = datetime.utcnow() - timedelta(days=30)
    await add_transfer(db, "tr_old_closed", TransferStatus.PAYOUT_COMPLETED, created_at=old)
    await add_transfer(db, "tr_old_open", TransferStatus.FUNDING_CONFIRMED, created_at=old)

    result = await ReconciliationEngine(lookback_days=14).run_once(reason="test")

    transfer_ids = {line.split(",")[0] for line in result.csv.splitlines()[1:]}
    assert transfer_ids == {"tr_old_open"}


@pytest.mark.asyncio
async def test_runs_are_additive(db):
    await add_transfer(db, "tr_no_funding", TransferStatus.FUNDING_CONFIRMED)
    engine = ReconciliationEngine()

    first = await engine.run_once(reason="first")
    second = await engine.run_once(reason="second")

    assert first.run_id != second.run_id
    assert first.issue_count == second.issue_count == 1


@pytest.mark.asyncio
async def test_operator_endpoints(client: AsyncClient, db, admin_headers):
    """Test triggering a run and reading its issues over HTTP."""
    await add_transfer(db, "tr_no_funding", TransferStatus.FUNDING_CONFIRMED)

    response = await client.post("/api/reconciliation/runs", json={"reason": "manual check"}, headers=admin_headers)
    assert response.status_code == 200
    result = response.json()
    assert result["issue_count"] == 1
    assert result["csv"].startswith("transfer_id,")

    detail = await client.get(f"/api/reconciliation/runs/{result['run_id']}", headers=admin_headers)
    assert detail.status_code == 200
    assert detail.json()["run"]["triggered_by"] == "ops-alice"
    assert detail.json()["issues"][0]["issue_code"] == "MISSING_FUNDING_EVENT"

    issues = await client.get(
        "/api/reconciliation/issues",
        params={"since": "2000-01-01T00:00:00Z", "limit": 10},
        headers=admin_headers,
    )
    assert issues.status_code == 200
    assert [i["transfer_id"] for i in issues.json()] == ["tr_no_funding"]


@pytest.mark.asyncio
async def test_reconciliation_requires_operator(client: AsyncClient, service_headers):
    plain_admin = {"Authorization": f"Bearer {create_access_token('admin-bob', 'admin')}"}
    scoped_admin = {
        "Authorization": f"Bearer {create_access_token('admin-eve', 'admin', scopes=['reconciliation:run'])}"
    }

    assert (await client.post("/api/reconciliation/runs", json={"reason": "x"}, headers=service_headers)).status_code == 403
    assert (await client.post("/api/reconciliation/runs", json={"reason": "x"}, headers=plain_admin)).status_code == 403
    assert (await client.get("/api/reconciliation/issues", headers=scoped_admin)).status_code == 200


@pytest.mark.asyncio
async def test_unknown_run(client: AsyncClient, admin_headers):
    response = await client.get("/api/reconciliation/runs/recon_missing", headers=admin_headers)

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "RECONCILIATION_RUN_NOT_FOUND"
