"""Tests for bearer tokens and signed callback payloads."""

import time
from datetime import timedelta

import pytest

from settlement.config import settings
from settlement.core.errors import UnauthorizedError
from settlement.core.security import (
    create_access_token,
    create_signed_payload_signature,
    decode_access_token,
    extract_bearer_token,
    verify_signed_payload_signature,
)


def test_token_round_trip():
    token = create_access_token("ops-alice", "admin", scopes=["reconciliation:run"], role="ops_admin")

    claims = decode_access_token(token)

    assert claims.subject == "ops-alice"
    assert claims.token_type == "admin"
    assert claims.scopes == ["reconciliation:run"]
    assert claims.role == "ops_admin"


def test_token_signed_with_previous_secret_is_accepted(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_JWT_PREVIOUS_SECRET", "rotated-out-secret")
    token = create_access_token("svc-watcher", "service", secret="rotated-out-secret")

    assert decode_access_token(token).subject == "svc-watcher"


def test_token_with_unknown_secret_is_rejected():
    token = create_access_token("svc-watcher", "service", secret="someone-elses-secret")

    with pytest.raises(UnauthorizedError):
        decode_access_token(token)


def test_expired_token_is_rejected():
    token = create_access_token("svc-watcher", "service", expires_in=timedelta(seconds=-10))

    with pytest.raises(UnauthorizedError):
        decode_access_token(token)


@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer"])
def test_malformed_authorization_header(header):
    with pytest.raises(UnauthorizedError):
        extract_bearer_token(header)


def test_extract_bearer_token():
    assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"
    assert extract_bearer_token("bearer abc") == "abc"


def _now_ms() -> int:
    return int(time.time() * 1000)


def test_signature_round_trip():
    timestamp = str(_now_ms())
    signature = create_signed_payload_signature('{"a":1}', timestamp, "secret")

    assert verify_signed_payload_signature('{"a":1}', timestamp, signature, "secret", max_age_seconds=300)
    assert verify_signed_payload_signature('{"a":1}', timestamp, signature.upper(), "secret", max_age_seconds=300)


def test_signature_rejects_tampered_body():
    timestamp = str(_now_ms())
    signature = create_signed_payload_signature('{"a":1}', timestamp, "secret")

    assert not verify_signed_payload_signature('{"a":2}', timestamp, signature, "secret", max_age_seconds=300)


def test_signature_rejects_stale_timestamp():
    timestamp = str(_now_ms() - 301_000)
    signature = create_signed_payload_signature('{"a":1}', timestamp, "secret")

    assert not verify_signed_payload_signature('{"a":1}', timestamp, signature, "secret", max_age_seconds=300)


def test_signature_rejects_bad_input():
    assert not verify_signed_payload_signature("{}", "not-a-number", "00", "secret", max_age_seconds=300)
    assert not verify_signed_payload_signature("{}", str(_now_ms()), "00", "", max_age_seconds=300)
