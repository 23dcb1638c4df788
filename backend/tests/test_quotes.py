"""Tests for quote creation."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient

from settlement.core.errors import QuoteNotFoundError, QuoteValidationError
from settlement.services import quote_service
from settlement.services.quote_service import compute_recipient_amount_etb


def test_recipient_amount_rounds_half_up():
    assert compute_recipient_amount_etb(Decimal("100"), Decimal("2"), Decimal("57.5")) == Decimal("5635.00")
    assert compute_recipient_amount_etb(Decimal("10.005"), Decimal("0"), Decimal("1")) == Decimal("10.01")


@pytest.mark.asyncio
async def test_create_quote_sets_expiry(db):
    now = datetime(2026, 10, 19, 12, 0, 0)
    quote = await quote_service.create_quote(
        db,
        chain="solana",
        token="USDT",
        send_amount_usd=Decimal("50"),
        fee_usd=Decimal("1"),
        fx_rate_usd_to_etb=Decimal("56"),
        expires_in_seconds=60,
        now=now,
    )

    assert quote.quote_id.startswith("q_")
    assert quote.expires_at == now + timedelta(seconds=60)
    assert quote.recipient_amount_etb == Decimal("2744.00")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount,fee,expires_in", [
    (Decimal("2000.01"), Decimal("1"), None),
    (Decimal("10"), Decimal("11"), None),
    (Decimal("10"), Decimal("1"), 0),
])
async def test_create_quote_rejects_invalid_input(db, amount, fee, expires_in):
    with pytest.raises(QuoteValidationError):
        await quote_service.create_quote(
            db,
            chain="base",
            token="USDC",
            send_amount_usd=amount,
            fee_usd=fee,
            fx_rate_usd_to_etb=Decimal("57"),
            expires_in_seconds=expires_in,
        )


@pytest.mark.asyncio
async def test_get_unknown_quote(db):
    with pytest.raises(QuoteNotFoundError):
        await quote_service.get_quote(db, "q_missing")


@pytest.mark.asyncio
async def test_create_quote_endpoint(client: AsyncClient, service_headers):
    """Test quote creation over HTTP and replay with the same key."""
    body = {
        "chain": "base",
        "token": "USDC",
        "send_amount_usd": "100",
        "fee_usd": "2",
        "fx_rate_usd_to_etb": "57.5",
    }
    headers = {**service_headers, "Idempotency-Key": "quote-key-1"}

    response = await client.post("/api/quotes", json=body, headers=headers)
    assert response.status_code == 201
    data = response.json()
    assert Decimal(data["recipient_amount_etb"]) == Decimal("5635.00")

    replay = await client.post("/api/quotes", json=body, headers=headers)
    assert replay.status_code == 201
    assert replay.json()["quote_id"] == data["quote_id"]

    fetched = await client.get(f"/api/quotes/{data['quote_id']}", headers=service_headers)
    assert fetched.status_code == 200
    assert fetched.json()["quote_id"] == data["quote_id"]


@pytest.mark.asyncio
async def test_create_quote_requires_idempotency_key(client: AsyncClient, service_headers):
    response = await client.post(
        "/api/quotes",
        json={"chain": "base", "token": "USDC", "send_amount_usd": "10", "fee_usd": "1", "fx_rate_usd_to_etb": "57"},
        headers=service_headers,
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "MISSING_IDEMPOTENCY_KEY"


@pytest.mark.asyncio
async def test_create_quote_rejects_unknown_chain(client: AsyncClient, service_headers):
    response = await client.post(
        "/api/quotes",
        json={"chain": "tron", "token": "USDC", "send_amount_usd": "10", "fee_usd": "1", "fx_rate_usd_to_etb": "57"},
        headers={**service_headers, "Idempotency-Key": "quote-key-2"},
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_PAYLOAD"


@pytest.mark.asyncio
async def test_quote_endpoints_require_token(client: AsyncClient):
    response = await client.get("/api/quotes/q_anything")

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "UNAUTHORIZED"
