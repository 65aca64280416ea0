"""Lightweight helper for recording container audit entries.

Usage:
    log_container_event(
        db, container.id, actor,
        action=AuditAction.STATUS_CHANGE,
        description="Status changed from LOADED to IN_TRANSIT",
        old_value="LOADED", new_value="IN_TRANSIT",
    )

The row is added to the current session and committed with the
enclosing transaction — no extra flush is performed.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_log import AuditAction, ContainerAuditLog


def log_container_event(
    db: AsyncSession,
    container_id: str,
    actor: str,
    *,
    action: AuditAction,
    description: str | None = None,
    old_value: str | None = None,
    new_value: str | None = None,
    details: dict | None = None,
) -> ContainerAuditLog:
    """Append an audit entry for `container_id` to the current DB session."""
    entry = ContainerAuditLog(
        container_id=container_id,
        action=action.value,
        description=description,
        old_value=old_value,
        new_value=new_value,
        details=details,
        performed_by=actor,
    )
    db.add(entry)
    return entry
