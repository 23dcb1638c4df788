"""API dependencies for authentication, idempotency and service wiring."""

import logging
from typing import Optional, Type, TypeVar

from fastapi import Depends, Header, Request
from pydantic import BaseModel, ValidationError

from settlement.config import settings
from settlement.core.errors import (
    ForbiddenError,
    InvalidPayloadError,
    InvalidSignatureError,
    MissingIdempotencyKeyError,
)
from settlement.core.idempotency import IdempotencyGuard, idempotency_guard
from settlement.core.security import (
    AuthClaims,
    decode_access_token,
    extract_bearer_token,
    verify_signed_payload_signature,
)
from settlement.database import get_db
from settlement.services.payout_service import PayoutOrchestrator, payout_orchestrator
from settlement.services.reconciliation_service import ReconciliationEngine, reconciliation_engine

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

OPERATOR_ROLE = "ops_admin"
RECONCILIATION_SCOPE = "reconciliation:run"

__all__ = [
    "get_db",
    "get_request_id",
    "get_auth_claims",
    "require_service_token",
    "require_service_or_admin",
    "require_customer_or_service",
    "require_operator",
    "require_idempotency_key",
    "get_idempotency_guard",
    "get_payout_orchestrator",
    "get_reconciliation_engine",
    "verify_signed_body",
    "parse_signed_body",
]


def get_request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


async def get_auth_claims(
    authorization: Optional[str] = Header(None, description="Bearer token"),
) -> AuthClaims:
    """
    Dependency that verifies the bearer token and returns its claims.

    Raises:
        UnauthorizedError: Missing, malformed, expired or badly signed token
    """
    return decode_access_token(extract_bearer_token(authorization))


async def require_service_token(claims: AuthClaims = Depends(get_auth_claims)) -> AuthClaims:
    """Service-to-service callers only."""
    if claims.token_type != "service":
        raise ForbiddenError("A service token is required for this endpoint.")
    return claims


async def require_service_or_admin(claims: AuthClaims = Depends(get_auth_claims)) -> AuthClaims:
    if claims.token_type not in ("service", "admin"):
        raise ForbiddenError("A service or admin token is required for this endpoint.")
    return claims


async def require_customer_or_service(claims: AuthClaims = Depends(get_auth_claims)) -> AuthClaims:
    if claims.token_type not in ("customer", "service"):
        raise ForbiddenError("A customer or service token is required for this endpoint.")
    return claims


async def require_operator(claims: AuthClaims = Depends(get_auth_claims)) -> AuthClaims:
    """Admin token carrying the operator role or the reconciliation scope."""
    if claims.token_type != "admin":
        raise ForbiddenError("An admin token is required for this endpoint.")
    if claims.role != OPERATOR_ROLE and RECONCILIATION_SCOPE not in claims.scopes:
        raise ForbiddenError(
            f"Operator access requires role {OPERATOR_ROLE} or scope {RECONCILIATION_SCOPE}."
        )
    return claims


async def require_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
) -> str:
    """
    Dependency returning the client's Idempotency-Key header.

    Raises:
        MissingIdempotencyKeyError: Header absent or shorter than the configured minimum
    """
    key = (idempotency_key or "").strip()
    if len(key) < settings.IDEMPOTENCY_KEY_MIN_LENGTH:
        raise MissingIdempotencyKeyError(settings.IDEMPOTENCY_KEY_MIN_LENGTH)
    return key


def get_idempotency_guard() -> IdempotencyGuard:
    return idempotency_guard


def get_payout_orchestrator() -> PayoutOrchestrator:
    return payout_orchestrator


def get_reconciliation_engine() -> ReconciliationEngine:
    return reconciliation_engine


def verify_signed_body(
    request: Request,
    raw_body: bytes,
    *,
    secret: str,
    signature_header: str,
    timestamp_header: str,
    max_age_seconds: int,
) -> None:
    """
    Check an HMAC-signed callback body against its signature and timestamp headers.

    Raises:
        InvalidSignatureError: Missing headers, stale timestamp or signature mismatch
        InvalidPayloadError: Body is not UTF-8 text
    """
    signature = request.headers.get(signature_header)
    timestamp = request.headers.get(timestamp_header)
    if not signature or not timestamp:
        raise InvalidSignatureError(f"Missing {signature_header} or {timestamp_header} header.")

    try:
        payload = raw_body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidPayloadError("Callback body is not valid UTF-8.") from e

    valid = verify_signed_payload_signature(
        payload=payload,
        timestamp_ms=timestamp,
        signature_hex=signature,
        secret=secret,
        max_age_seconds=max_age_seconds,
    )
    if not valid:
        logger.warning(f"Rejected signed callback on {request.url.path} (request {get_request_id(request)})")
        raise InvalidSignatureError("Signature mismatch or timestamp expired.")


def parse_signed_body(model: Type[ModelT], raw_body: bytes, label: str) -> ModelT:
    """Validate a raw JSON body read for signature checking into ``model``."""
    try:
        return model.model_validate_json(raw_body)
    except ValidationError as e:
        errors = e.errors()
        first = errors[0]["msg"] if errors else "malformed body"
        raise InvalidPayloadError(
            f"Invalid {label}: {first}",
            details={"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in errors]},
        ) from e
