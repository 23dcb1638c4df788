"""At-most-once execution of mutating requests keyed by a client idempotency key.

The first caller to insert the ``scope:key`` row owns execution. Any other caller
with the same payload waits for the owner's stored response and replays it; a
caller with a different payload is rejected. The storage-level primary key is the
only mutex, so this holds across process instances.
"""

import asyncio
import hashlib
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, NamedTuple, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from settlement.config import settings
from settlement.core.errors import IdempotencyConflictError, IdempotencyInProgressError
from settlement.database import AsyncSessionLocal
from settlement.models.idempotency_record import IdempotencyRecord, IN_FLIGHT_STATUS

logger = logging.getLogger(__name__)


class IdempotentResponse(NamedTuple):
    """Response produced by guarded work and replayed to duplicates."""

    status_code: int
    body: Any


def compute_request_hash(payload: Any) -> str:
    """SHA-256 over the canonical JSON form (sorted keys) of the request payload."""
    canonical = json.dumps(
        jsonable_encoder(payload),
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class IdempotencyGuard:
    """Insert-as-mutex idempotency guard backed by the ``idempotency_record`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        ttl_seconds: Optional[int] = None,
        wait_seconds: Optional[float] = None,
        poll_interval_seconds: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else settings.IDEMPOTENCY_TTL_SECONDS)
        self.wait_seconds = wait_seconds if wait_seconds is not None else settings.IDEMPOTENCY_WAIT_SECONDS
        self.poll_interval = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else settings.IDEMPOTENCY_POLL_INTERVAL_SECONDS
        )

    async def execute(
        self,
        scope: str,
        key: str,
        request_payload: Any,
        work: Callable[[], Awaitable[IdempotentResponse]],
        timeout: Optional[float] = None,
    ) -> IdempotentResponse:
        """
        Run ``work`` at most once for ``scope:key``.

        Args:
            scope: Namespace of the entry point (e.g. "transfer:create")
            key: Client-supplied idempotency key
            request_payload: Payload whose hash is bound to the key
            work: Coroutine function producing the response; runs only for the owner
            timeout: Seconds a duplicate waits for the owner (defaults to the configured wait)

        Returns:
            The owner's response, or the stored response for a duplicate

        Raises:
            IdempotencyConflictError: Key already bound to a different payload
            IdempotencyInProgressError: Owner did not finish within the wait budget
        """
        storage_key = f"{scope}:{key}"
        request_hash = compute_request_hash(request_payload)
        expires_at = datetime.utcnow() + self.ttl

        if await self._reserve(storage_key, request_hash, expires_at):
            try:
                response = await work()
            except (Exception, asyncio.CancelledError):
                await self._release(storage_key, request_hash)
                raise

            response = IdempotentResponse(response.status_code, jsonable_encoder(response.body))
            await self._store(storage_key, request_hash, response, expires_at)
            return response

        return await self._await_owner(storage_key, request_hash, timeout)

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete every record past its expiry, including placeholders left behind by
        an owner that died mid-execution. Returns the number removed.
        """
        now = now or datetime.utcnow()
        async with self.session_factory() as session:
            result = await session.execute(
                delete(IdempotencyRecord).where(IdempotencyRecord.expires_at < now)
            )
            await session.commit()
        logger.info(f"Purged {result.rowcount} expired idempotency records")
        return result.rowcount

    async def _reserve(self, storage_key: str, request_hash: str, expires_at: datetime) -> bool:
        async with self.session_factory() as session:
            session.add(IdempotencyRecord(
                key=storage_key,
                request_hash=request_hash,
                response_status=IN_FLIGHT_STATUS,
                response_body={},
                expires_at=expires_at,
            ))
            try:
                await session.commit()
                return True
            except IntegrityError:
                await session.rollback()
                return False

    async def _store(
        self,
        storage_key: str,
        request_hash: str,
        response: IdempotentResponse,
        expires_at: datetime,
    ) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(IdempotencyRecord)
                .where(
                    IdempotencyRecord.key == storage_key,
                    IdempotencyRecord.request_hash == request_hash,
                )
                .values(
                    response_status=response.status_code,
                    response_body=response.body,
                    expires_at=expires_at,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    async def _release(self, storage_key: str, request_hash: str) -> None:
        async with self.session_factory() as session:
            await session.execute(
                delete(IdempotencyRecord)
                .where(
                    IdempotencyRecord.key == storage_key,
                    IdempotencyRecord.request_hash == request_hash,
                    IdempotencyRecord.response_status == IN_FLIGHT_STATUS,
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        logger.info(f"Released idempotency placeholder {storage_key} after failed execution")

    async def _load(self, storage_key: str) -> Optional[IdempotencyRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(IdempotencyRecord).where(IdempotencyRecord.key == storage_key)
            )
            return result.scalar_one_or_none()

    async def _await_owner(
        self,
        storage_key: str,
        request_hash: str,
        timeout: Optional[float],
    ) -> IdempotentResponse:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + (timeout if timeout is not None else self.wait_seconds)

        while True:
            record = await self._load(storage_key)

            if record is None:
                # Owner failed and released the key; the client has to retry
                raise IdempotencyInProgressError(storage_key)

            if record.request_hash != request_hash:
                logger.warning(f"Idempotency key {storage_key} reused with a different payload")
                raise IdempotencyConflictError(storage_key)

            if not record.in_flight:
                logger.info(f"Replaying stored response for idempotency key {storage_key}")
                return IdempotentResponse(record.response_status, record.response_body)

            if loop.time() >= deadline:
                raise IdempotencyInProgressError(storage_key)

            await asyncio.sleep(self.poll_interval)


# Global guard bound to the application session factory
idempotency_guard = IdempotencyGuard()
