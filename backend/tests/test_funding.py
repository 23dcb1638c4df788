"""Tests for funding confirmation handling."""

import time

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from settlement.core.events import TRANSFER_FUNDING_CONFIRMED
from settlement.models.funding_event import OnchainFundingEvent
from settlement.models.transfer import TransferStatus, TransferTransition
from settlement.services import funding_service


@pytest.mark.asyncio
async def test_first_confirmation_funds_transfer(db, transfer, funding_event, published_events):
    created, route = transfer

    result = await funding_service.process_funding_confirmed(db, funding_event(route))

    assert result.status == funding_service.CONFIRMED
    assert result.transfer_id == created.transfer_id
    await db.refresh(created)
    assert created.status == TransferStatus.FUNDING_CONFIRMED
    assert published_events[-1][0] == TRANSFER_FUNDING_CONFIRMED


@pytest.mark.asyncio
async def test_replayed_confirmation_is_duplicate(db, transfer, funding_event):
    _, route = transfer
    event = funding_event(route)

    await funding_service.process_funding_confirmed(db, event)
    result = await funding_service.process_funding_confirmed(db, event)

    assert result.status == funding_service.DUPLICATE
    assert await db.scalar(select(func.count()).select_from(OnchainFundingEvent)) == 1
    transitions = await db.scalar(
        select(func.count()).select_from(TransferTransition)
        .where(TransferTransition.to_state == TransferStatus.FUNDING_CONFIRMED.value)
    )
    assert transitions == 1


@pytest.mark.asyncio
async def test_second_deposit_for_funded_transfer_is_duplicate(db, transfer, funding_event):
    _, route = transfer

    await funding_service.process_funding_confirmed(db, funding_event(route))
    result = await funding_service.process_funding_confirmed(
        db, funding_event(route, event_id="evt_other", tx_hash="0xdef", log_index=3)
    )

    assert result.status == funding_service.DUPLICATE
    assert await db.scalar(select(func.count()).select_from(OnchainFundingEvent)) == 1


@pytest.mark.asyncio
async def test_unknown_address_is_route_not_found(db, transfer, funding_event):
    _, route = transfer

    result = await funding_service.process_funding_confirmed(
        db, funding_event(route, deposit_address="0x000000000000000000000000000000000000dEaD")
    )

    assert result.status == funding_service.ROUTE_NOT_FOUND
    assert result.transfer_id is None


@pytest.mark.asyncio
async def test_lowercase_address_matches_route(db, transfer, funding_event):
    _, route = transfer

    result = await funding_service.process_funding_confirmed(
        db, funding_event(route, deposit_address=route.deposit_address.lower())
    )

    assert result.status == funding_service.CONFIRMED


@pytest.mark.asyncio
async def test_expired_transfer_is_invalid_state(db, transfer, funding_event):
    created, route = transfer
    created.status = TransferStatus.EXPIRED
    await db.commit()

    result = await funding_service.process_funding_confirmed(db, funding_event(route))

    assert result.status == funding_service.INVALID_STATE
    assert await db.scalar(select(func.count()).select_from(OnchainFundingEvent)) == 0


def _event_body(route, **overrides) -> dict:
    body = {
        "event_id": "evt_api_1",
        "chain": route.chain,
        "token": route.token,
        "tx_hash": "0xfeed",
        "log_index": 1,
        "deposit_address": route.deposit_address,
        "amount_usd": "100.00",
        "confirmed_at": "2026-10-19T12:00:00Z",
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_funding_endpoint_accepts_signed_event(client: AsyncClient, transfer, service_headers, sign_body):
    """Test signed watcher callback: 202 first, 200 duplicate on replay."""
    _, route = transfer
    raw_body, signature_headers = sign_body(_event_body(route))
    headers = {**service_headers, **signature_headers}

    first = await client.post("/api/internal/funding-confirmed", content=raw_body, headers=headers)
    assert first.status_code == 202
    assert first.json()["result"]["status"] == "confirmed"
    assert first.json()["accepted_by"] == "svc-orchestrator"

    # Same event id replays the stored response
    replay = await client.post("/api/internal/funding-confirmed", content=raw_body, headers=headers)
    assert replay.status_code == 202
    assert replay.json() == first.json()

    # A new event id for the same on-chain log is a duplicate
    raw_body, signature_headers = sign_body(_event_body(route, event_id="evt_api_2"))
    duplicate = await client.post(
        "/api/internal/funding-confirmed",
        content=raw_body,
        headers={**service_headers, **signature_headers},
    )
    assert duplicate.status_code == 200
    assert duplicate.json()["result"]["status"] == "duplicate"


@pytest.mark.asyncio
async def test_funding_endpoint_rejects_bad_signature(client: AsyncClient, transfer, service_headers, sign_body):
    _, route = transfer
    raw_body, signature_headers = sign_body(_event_body(route), secret="wrong-secret")

    response = await client.post(
        "/api/internal/funding-confirmed",
        content=raw_body,
        headers={**service_headers, **signature_headers},
    )

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "INVALID_SIGNATURE"


@pytest.mark.asyncio
async def test_funding_endpoint_rejects_customer_token(client: AsyncClient, transfer, customer_headers, sign_body):
    _, route = transfer
    raw_body, signature_headers = sign_body(_event_body(route))

    response = await client.post(
        "/api/internal/funding-confirmed",
        content=raw_body,
        headers={**customer_headers("sender-1"), **signature_headers},
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_funding_endpoint_rejects_malformed_event(client: AsyncClient, transfer, service_headers, sign_body):
    _, route = transfer
    raw_body, signature_headers = sign_body(_event_body(route, log_index=-1))

    response = await client.post(
        "/api/internal/funding-confirmed",
        content=raw_body,
        headers={**service_headers, **signature_headers},
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_PAYLOAD"


@pytest.mark.asyncio
async def test_funding_endpoint_rejects_non_utf8_body(client: AsyncClient, transfer, service_headers):
    response = await client.post(
        "/api/internal/funding-confirmed",
        content=b'{"event_id":"\xff\xfe"}',
        headers={
            **service_headers,
            "x-callback-signature": "00",
            "x-callback-timestamp": str(int(time.time() * 1000)),
            "Content-Type": "application/json",
        },
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_PAYLOAD"
