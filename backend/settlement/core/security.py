"""Security utilities: bearer token verification and signed callback payloads."""

import hashlib
import hmac
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt

from settlement.config import settings
from settlement.core.errors import UnauthorizedError

JWT_ALGORITHM = "HS256"


@dataclass
class AuthClaims:
    """Verified claims of a bearer token."""

    subject: str
    token_type: str  # customer|service|admin
    scopes: list[str] = field(default_factory=list)
    role: Optional[str] = None


def extract_bearer_token(authorization_header: Optional[str]) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization_header:
        raise UnauthorizedError("Missing Authorization header.")

    scheme, _, token = authorization_header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise UnauthorizedError("Invalid Authorization header format.")

    return token.strip()


def _jwt_secrets() -> list[str]:
    secrets = [settings.AUTH_JWT_SECRET, settings.AUTH_JWT_PREVIOUS_SECRET]
    return [s for i, s in enumerate(secrets) if s and s not in secrets[:i]]


def decode_access_token(token: str) -> AuthClaims:
    """
    Verify an HS256 token against the current and previous signing secrets.

    Args:
        token: Encoded JWT

    Returns:
        AuthClaims: Verified claims

    Raises:
        UnauthorizedError: If no configured secret verifies the token
    """
    secrets = _jwt_secrets()
    if not secrets:
        raise UnauthorizedError("No JWT secret configured.")

    last_error: Optional[JWTError] = None
    for secret in secrets:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[JWT_ALGORITHM],
                audience=settings.AUTH_JWT_AUDIENCE,
                issuer=settings.AUTH_JWT_ISSUER,
            )
        except JWTError as e:
            last_error = e
            continue

        subject = payload.get("sub")
        token_type = payload.get("token_type")
        if not subject or not token_type:
            raise UnauthorizedError("Token is missing subject or token type.")

        return AuthClaims(
            subject=subject,
            token_type=token_type,
            scopes=list(payload.get("scopes") or []),
            role=payload.get("role"),
        )

    raise UnauthorizedError(f"Token verification failed: {last_error}")


def create_access_token(
    subject: str,
    token_type: str,
    scopes: Optional[list[str]] = None,
    role: Optional[str] = None,
    expires_in: timedelta = timedelta(minutes=15),
    secret: Optional[str] = None,
) -> str:
    """Issue an HS256 token (service-to-service calls and operator tooling)."""
    now = datetime.utcnow()
    claims = {
        "sub": subject,
        "token_type": token_type,
        "scopes": scopes or [],
        "iss": settings.AUTH_JWT_ISSUER,
        "aud": settings.AUTH_JWT_AUDIENCE,
        "iat": now,
        "exp": now + expires_in,
    }
    if role:
        claims["role"] = role
    return jwt.encode(claims, secret or settings.AUTH_JWT_SECRET, algorithm=JWT_ALGORITHM)


def create_signed_payload_signature(payload: str, timestamp_ms: str, secret: str) -> str:
    """
    HMAC-SHA256 over ``"{timestamp_ms}.{payload}"``.

    Returns:
        str: Hex digest
    """
    message = f"{timestamp_ms}.{payload}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signed_payload_signature(
    payload: str,
    timestamp_ms: str,
    signature_hex: str,
    secret: str,
    max_age_seconds: int,
    now_ms: Optional[int] = None,
) -> bool:
    """
    Verify a signed callback body.

    Args:
        payload: Raw request body
        timestamp_ms: Sender timestamp header value (epoch milliseconds)
        signature_hex: Signature header value
        secret: Shared HMAC secret
        max_age_seconds: Maximum allowed clock distance between sender and us
        now_ms: Current time override for tests

    Returns:
        bool: True if fresh and the signature matches
    """
    if not secret:
        return False

    try:
        timestamp = int(timestamp_ms)
    except (TypeError, ValueError):
        return False

    now = now_ms if now_ms is not None else int(time.time() * 1000)
    if abs(now - timestamp) > max_age_seconds * 1000:
        return False

    expected = create_signed_payload_signature(payload, timestamp_ms, secret)
    return hmac.compare_digest(expected, signature_hex.strip().lower())
