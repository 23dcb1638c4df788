"""Idempotency record model."""

from datetime import datetime

from sqlalchemy import String, Integer, TIMESTAMP, JSON
from sqlalchemy.orm import Mapped, mapped_column

from settlement.database import Base


# response_status value while the owning request is still executing
IN_FLIGHT_STATUS = -1


class IdempotencyRecord(Base):
    """Stored response for a `scope:key` pair.

    The primary key is the mutex: the first insert for a key owns execution and the
    request hash it stored is bound to the key for good.
    """

    __tablename__ = "idempotency_record"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    response_status: Mapped[int] = mapped_column(Integer, nullable=False, default=IN_FLIGHT_STATUS)
    response_body: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )

    @property
    def in_flight(self) -> bool:
        return self.response_status == IN_FLIGHT_STATUS

    def __repr__(self) -> str:
        return f"<IdempotencyRecord(key={self.key}, response_status={self.response_status})>"
