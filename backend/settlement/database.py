"""Async engine and sessions for the settlement store.

PostgreSQL (asyncpg) in deployments, SQLite (aiosqlite) for tests and local runs.
Services that must commit independently of a request (idempotency guard,
reconciliation) open their own sessions from ``AsyncSessionLocal``.
"""

from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from settlement.config import settings


def _engine_options() -> dict:
    options = {
        "echo": settings.ENVIRONMENT == "development",
        "pool_pre_ping": True,
    }
    # SQLite (tests, local runs) does not take queue pool sizing
    if not settings.DATABASE_URL.startswith("sqlite"):
        options.update(pool_size=5, max_overflow=10)
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options())

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Declarative base shared by transfer, payout, ledger and reconciliation tables."""


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session. Services commit their own units of work; anything
    left pending when the handler returns is committed, and rolled back on error.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
