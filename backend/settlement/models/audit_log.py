"""Audit log database model."""

from datetime import datetime

from sqlalchemy import String, Integer, Text, TIMESTAMP, Index
from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from settlement.database import Base


class AuditLog(Base):
    """Audit trail of state-changing actions on transfers and payouts."""

    __tablename__ = "audit_log"

    # Primary Key
    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    # Actor
    actor_type: Mapped[str] = mapped_column(String(32), nullable=False)  # system|service|admin|customer
    actor_id: Mapped[str] = mapped_column(String(128), nullable=False)

    # Event Details
    action: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True
    )
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Event Data
    audit_metadata: Mapped[dict] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict
    )

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        index=True
    )

    # Additional indexes for performance
    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
    )

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action={self.action}, entity_id={self.entity_id})>"
