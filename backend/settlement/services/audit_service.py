"""Audit trail writer for state-changing actions."""

from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from settlement.models.audit_log import AuditLog


def append_audit(
    db: AsyncSession,
    *,
    actor_type: str,
    actor_id: str,
    action: str,
    entity_type: str,
    entity_id: str,
    reason: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """
    Stage an audit row in the caller's transaction.

    Nothing is flushed or committed here so the entry lands atomically with the
    state change it describes.
    """
    entry = AuditLog(
        actor_type=actor_type,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
        audit_metadata=metadata or {},
    )
    db.add(entry)
    return entry
