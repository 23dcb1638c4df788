"""Shared schema helpers."""

from datetime import datetime, timezone


def naive_utc(value: datetime) -> datetime:
    """Timestamps are stored as naive UTC; convert aware inputs before they reach the database."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
