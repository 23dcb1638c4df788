"""Pytest configuration and fixtures for testing."""

import json
import os
import tempfile
import time
from decimal import Decimal
from pathlib import Path
from typing import AsyncGenerator, Callable

from cryptography.fernet import Fernet

# Settings are read at import time, so the test environment is set up first
TEST_DB_PATH = Path(tempfile.gettempdir()) / f"settlement_test_{os.getpid()}.db"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["ENVIRONMENT"] = "test"
os.environ["PAYOUT_ACCOUNT_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["AUTH_JWT_SECRET"] = "test-jwt-secret"
os.environ["WATCHER_CALLBACK_SECRET"] = "test-watcher-secret"
os.environ["PAYOUT_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["PAYOUT_WEBHOOK_SIGNATURE_ENABLED"] = "false"
os.environ["BANK_PAYOUT_API_URL"] = ""
os.environ["TELEBIRR_ENABLED"] = "false"
os.environ["PAYOUT_RETRY_BASE_DELAY_SECONDS"] = "0"
os.environ["IDEMPOTENCY_WAIT_SECONDS"] = "2"
os.environ["IDEMPOTENCY_POLL_INTERVAL_SECONDS"] = "0.01"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.main import app
from settlement.database import AsyncSessionLocal, Base, engine
from settlement.config import settings
from settlement.core.events import event_bus
from settlement.core.security import create_access_token, create_signed_payload_signature
from settlement.models.quote import Quote
from settlement.models.transfer import DepositRoute, Transfer
from settlement.schemas.funding import FundingConfirmedEvent
from settlement.schemas.transfer import TransferCreate
from settlement.services import funding_service, quote_service, transfer_service


@pytest.fixture(scope="function")
async def db() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database for each test.
    """
    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Create session
    async with AsyncSessionLocal() as session:
        yield session

    # Drop all tables after test
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create test client against the application and the per-test database.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def service_headers() -> dict:
    return bearer(create_access_token("svc-orchestrator", "service"))


@pytest.fixture
def admin_headers() -> dict:
    return bearer(create_access_token("ops-alice", "admin", role="ops_admin"))


@pytest.fixture
def customer_headers() -> Callable[[str], dict]:
    """Headers for a customer token with the given subject."""
    def build(subject: str = "sender-1") -> dict:
        return bearer(create_access_token(subject, "customer"))
    return build


@pytest.fixture
def sign_body() -> Callable[..., tuple[str, dict]]:
    """
    Serialize a payload and sign it the way callback senders do.

    Returns:
        Tuple of (raw_body, signature_headers)
    """
    def build(
        payload: dict,
        secret: str = settings.WATCHER_CALLBACK_SECRET,
        signature_header: str = "x-callback-signature",
        timestamp_header: str = "x-callback-timestamp",
    ) -> tuple[str, dict]:
        raw_body = json.dumps(payload)
        timestamp_ms = str(int(time.time() * 1000))
        signature = create_signed_payload_signature(raw_body, timestamp_ms, secret)
        return raw_body, {
            signature_header: signature,
            timestamp_header: timestamp_ms,
            "Content-Type": "application/json",
        }
    return build


@pytest.fixture
def published_events(monkeypatch) -> list:
    """Record milestone events instead of fanning them out."""
    events: list = []

    def record(event_type: str, data: dict) -> None:
        events.append((event_type, data))

    monkeypatch.setattr(event_bus, "publish", record)
    return events


@pytest.fixture
async def quote(db: AsyncSession) -> Quote:
    """
    A base/USDC quote: 100 USD, 2 USD fee, 57.5 ETB per USD (5635.00 ETB).
    """
    return await quote_service.create_quote(
        db,
        chain="base",
        token="USDC",
        send_amount_usd=Decimal("100"),
        fee_usd=Decimal("2"),
        fx_rate_usd_to_etb=Decimal("57.5"),
    )


@pytest.fixture
def transfer_request() -> Callable[..., TransferCreate]:
    def build(quote_id: str, **overrides) -> TransferCreate:
        data = {
            "quote_id": quote_id,
            "sender_id": "sender-1",
            "receiver_id": "receiver-1",
            "sender_kyc_status": "approved",
            "receiver_kyc_status": "approved",
            "receiver_national_id_verified": True,
        }
        data.update(overrides)
        return TransferCreate(**data)
    return build


@pytest.fixture
async def transfer(db: AsyncSession, quote: Quote, transfer_request) -> tuple[Transfer, DepositRoute]:
    """Transfer awaiting funding, with its deposit route."""
    return await transfer_service.create_transfer(db, transfer_request(quote.quote_id))


@pytest.fixture
def funding_event() -> Callable[..., FundingConfirmedEvent]:
    """Build a watcher confirmation for a deposit route."""
    def build(route: DepositRoute, **overrides) -> FundingConfirmedEvent:
        data = {
            "event_id": "evt_base_0xabc_0",
            "chain": route.chain,
            "token": route.token,
            "tx_hash": "0xabc",
            "log_index": 0,
            "deposit_address": route.deposit_address,
            "amount_usd": Decimal("100"),
            "confirmed_at": "2026-10-19T12:00:00Z",
        }
        data.update(overrides)
        return FundingConfirmedEvent(**data)
    return build


@pytest.fixture
async def funded_transfer(db: AsyncSession, transfer, funding_event) -> Transfer:
    """Transfer in FUNDING_CONFIRMED."""
    created, route = transfer
    result = await funding_service.process_funding_confirmed(db, funding_event(route))
    assert result.status == funding_service.CONFIRMED
    await db.refresh(created)
    return created
