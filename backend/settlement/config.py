"""Application configuration management using Pydantic Settings."""

from typing import List
from decimal import Decimal
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # API
    API_V1_PREFIX: str = "/api"

    # CORS
    CORS_ORIGINS: List[str] = ['http://localhost:3000']

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Idempotency
    IDEMPOTENCY_TTL_SECONDS: int = 24 * 3600
    IDEMPOTENCY_WAIT_SECONDS: float = 5.0  # How long a duplicate waits for the owning request
    IDEMPOTENCY_POLL_INTERVAL_SECONDS: float = 0.05
    IDEMPOTENCY_KEY_MIN_LENGTH: int = 8

    # Quotes & Transfers
    MAX_TRANSFER_USD: Decimal = Decimal("2000")
    QUOTE_EXPIRATION_SECONDS: int = 300
    DEPOSIT_MASTER_SEED: str = "dev-master-seed"

    # Payout orchestration
    PAYOUT_MAX_ATTEMPTS: int = 5
    PAYOUT_RETRY_BASE_DELAY_SECONDS: float = 0.2
    PAYOUT_RETRY_MAX_DELAY_SECONDS: float = 30.0
    PAYOUT_RETRY_JITTER_FACTOR: float = 0.5
    PAYOUT_ADAPTER_TIMEOUT_SECONDS: float = 10.0
    BANK_PAYOUT_API_URL: str = ""  # Empty = sandbox transport
    BANK_PAYOUT_API_KEY: str = ""
    TELEBIRR_ENABLED: bool = False
    PAYOUT_ACCOUNT_ENCRYPTION_KEY: str = ""  # Fernet key for recipient account refs
    PAYOUT_ACCOUNT_PREVIOUS_KEYS: str = ""  # Comma-separated keys still accepted for decryption

    # Provider webhooks
    PAYOUT_WEBHOOK_SIGNATURE_ENABLED: bool = False
    PAYOUT_WEBHOOK_SECRET: str = ""
    PAYOUT_WEBHOOK_MAX_AGE_SECONDS: int = 300
    PAYOUT_WEBHOOK_SIGNATURE_HEADER: str = "x-webhook-signature"
    PAYOUT_WEBHOOK_TIMESTAMP_HEADER: str = "x-webhook-timestamp"

    # On-chain watcher callbacks
    WATCHER_CALLBACK_SECRET: str = "dev-callback-secret-change-me"
    WATCHER_CALLBACK_MAX_AGE_SECONDS: int = 300

    # Service authentication (HS256 bearer tokens)
    AUTH_JWT_SECRET: str = "dev-jwt-secret-change-me"
    AUTH_JWT_PREVIOUS_SECRET: str = ""
    AUTH_JWT_ISSUER: str = "cryptopay-internal"
    AUTH_JWT_AUDIENCE: str = "cryptopay-services"

    # Reconciliation
    RECONCILIATION_LOOKBACK_DAYS: int = 14
    RECONCILIATION_PAGE_SIZE: int = 500

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v) -> List[str]:
        """Parse CORS_ORIGINS from JSON string to list."""
        if isinstance(v, str):
            return json.loads(v)
        return v

    @field_validator("MAX_TRANSFER_USD", mode="before")
    @classmethod
    def parse_decimal(cls, v) -> Decimal:
        """Parse string to Decimal for precise arithmetic."""
        if isinstance(v, str):
            return Decimal(v)
        return v


# Global settings instance
settings = Settings()
