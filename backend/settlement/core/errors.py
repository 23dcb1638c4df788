"""Domain error taxonomy mapped to HTTP responses by the application handlers."""

from fastapi import status


class SettlementError(Exception):
    """Base error carrying a stable error code and the HTTP status it maps to."""

    code: str = "SETTLEMENT_ERROR"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_detail(self, request_id: str | None = None) -> dict:
        detail = {"code": self.code, "message": self.message}
        if self.details is not None:
            detail["details"] = self.details
        if request_id:
            detail["request_id"] = request_id
        return detail


# Validation

class InvalidPayloadError(SettlementError):
    code = "INVALID_PAYLOAD"


class MissingIdempotencyKeyError(SettlementError):
    code = "MISSING_IDEMPOTENCY_KEY"

    def __init__(self, min_length: int):
        super().__init__(
            f"Idempotency-Key header is required (minimum {min_length} characters)."
        )


class TransferValidationError(SettlementError):
    code = "TRANSFER_VALIDATION_ERROR"


class QuoteValidationError(SettlementError):
    code = "QUOTE_VALIDATION_ERROR"


class QuoteNotFoundError(SettlementError):
    code = "QUOTE_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, quote_id: str):
        super().__init__(f"Quote {quote_id} was not found.")


class QuoteExpiredError(SettlementError):
    code = "QUOTE_EXPIRED"

    def __init__(self, quote_id: str, expires_at):
        super().__init__(f"Quote {quote_id} expired at {expires_at.isoformat()}.")


class LedgerValidationError(SettlementError):
    code = "LEDGER_VALIDATION_ERROR"


class FeatureDisabledError(SettlementError):
    code = "FEATURE_DISABLED"
    status_code = 422

    def __init__(self, feature: str):
        super().__init__(f"{feature} is disabled by feature flag.")


# Not found

class TransferNotFoundError(SettlementError):
    code = "TRANSFER_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, transfer_id: str):
        super().__init__(f"Transfer {transfer_id} was not found.")


class PayoutNotFoundError(SettlementError):
    code = "PAYOUT_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, payout_id: str):
        super().__init__(f"No payout instruction found for {payout_id}.")


class JournalNotFoundError(SettlementError):
    code = "JOURNAL_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, journal_id: str):
        super().__init__(f"Ledger journal {journal_id} was not found.")


class ReconciliationRunNotFoundError(SettlementError):
    code = "RECONCILIATION_RUN_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, run_id: str):
        super().__init__(f"Reconciliation run {run_id} was not found.")


# Conflicts

class IdempotencyConflictError(SettlementError):
    code = "IDEMPOTENCY_CONFLICT"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, key: str):
        super().__init__(f"Idempotency key {key} was reused with a different request payload.")


class IdempotencyInProgressError(SettlementError):
    code = "IDEMPOTENCY_IN_PROGRESS"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, key: str):
        super().__init__(f"Request for idempotency key {key} is still processing. Retry shortly.")


class TransferStateInvalidError(SettlementError):
    code = "TRANSFER_STATE_INVALID"
    status_code = status.HTTP_409_CONFLICT


class PayoutStateInvalidError(SettlementError):
    code = "PAYOUT_STATE_INVALID"
    status_code = status.HTTP_409_CONFLICT


# Authentication

class UnauthorizedError(SettlementError):
    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED


class InvalidSignatureError(SettlementError):
    code = "INVALID_SIGNATURE"
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(SettlementError):
    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
