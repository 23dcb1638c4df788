"""End-to-end settlement flow over the HTTP API."""

from decimal import Decimal

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_transfer_settles_and_reconciles_clean(
    client: AsyncClient,
    service_headers,
    admin_headers,
    customer_headers,
    sign_body,
):
    """Quote, transfer, funding, ledger, payout and callback leave nothing to reconcile."""
    quote = await client.post(
        "/api/quotes",
        json={"chain": "base", "token": "USDC", "send_amount_usd": "100", "fee_usd": "2", "fx_rate_usd_to_etb": "57.5"},
        headers={**service_headers, "Idempotency-Key": "flow-quote"},
    )
    assert quote.status_code == 201
    quote_id = quote.json()["quote_id"]

    created = await client.post(
        "/api/transfers",
        json={
            "quote_id": quote_id,
            "sender_id": "sender-7",
            "receiver_id": "receiver-7",
            "sender_kyc_status": "approved",
            "receiver_kyc_status": "approved",
            "receiver_national_id_verified": True,
        },
        headers={**customer_headers("sender-7"), "Idempotency-Key": "flow-transfer"},
    )
    assert created.status_code == 201
    transfer_id = created.json()["transfer"]["transfer_id"]
    route = created.json()["deposit_route"]

    raw_body, signature_headers = sign_body({
        "event_id": "evt_flow_1",
        "chain": route["chain"],
        "token": route["token"],
        "tx_hash": "0xf10w",
        "log_index": 3,
        "deposit_address": route["deposit_address"],
        "amount_usd": "100",
        "confirmed_at": "2026-10-19T12:00:00Z",
    })
    funded = await client.post(
        "/api/internal/funding-confirmed",
        content=raw_body,
        headers={**service_headers, **signature_headers},
    )
    assert funded.status_code == 202

    journal = await client.post(
        "/api/internal/ledger/journals",
        json={
            "transfer_id": transfer_id,
            "debit_account": "crypto_clearing",
            "credit_account": "customer_payable",
            "amount_usd": "98",
        },
        headers={**service_headers, "Idempotency-Key": "flow-journal"},
    )
    assert journal.status_code == 201

    payout = await client.post(
        "/api/payouts/initiate",
        json={
            "transfer_id": transfer_id,
            "method": "bank",
            "recipient_account_ref": "CBE-1000777",
            "amount_etb": "5635.00",
        },
        headers={**service_headers, "Idempotency-Key": "flow-payout"},
    )
    assert payout.status_code == 200
    assert payout.json()["status"] == "initiated"

    callback = await client.post(
        "/api/payouts/status-callback",
        json={
            "payout_id": payout.json()["payout_id"],
            "provider_reference": payout.json()["provider_reference"],
            "status": "completed",
        },
        headers=service_headers,
    )
    assert callback.status_code == 200
    assert callback.json()["status"] == "completed"

    detail = await client.get(f"/api/transfers/{transfer_id}", headers=customer_headers("sender-7"))
    assert detail.status_code == 200
    assert detail.json()["transfer"]["status"] == "PAYOUT_COMPLETED"
    assert [t["to_state"] for t in detail.json()["timeline"]] == [
        "AWAITING_FUNDING",
        "FUNDING_CONFIRMED",
        "PAYOUT_INITIATED",
        "PAYOUT_COMPLETED",
    ]
    assert Decimal(detail.json()["transfer"]["send_amount_usd"]) == Decimal("100")

    run = await client.post("/api/reconciliation/runs", json={"reason": "flow check"}, headers=admin_headers)
    assert run.status_code == 200
    assert run.json()["issue_count"] == 0
