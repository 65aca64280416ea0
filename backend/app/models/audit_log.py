"""ContainerAuditLog — immutable trail of operator actions on a container.

Records who changed what and when: status transitions (old → new), ETA
changes, shipment assignment, expenses and tracking updates.  Rows are added
to the caller's session and commit with the change they describe.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class AuditAction(str, enum.Enum):
    CREATED = "CREATED"
    STATUS_CHANGE = "STATUS_CHANGE"
    ETA_UPDATED = "ETA_UPDATED"
    SHIPMENTS_ASSIGNED = "SHIPMENTS_ASSIGNED"
    SHIPMENT_REMOVED = "SHIPMENT_REMOVED"
    SHIPMENTS_RELEASED = "SHIPMENTS_RELEASED"
    EXPENSE_ADDED = "EXPENSE_ADDED"
    EXPENSE_REMOVED = "EXPENSE_REMOVED"
    INVOICE_ADDED = "INVOICE_ADDED"
    INVOICES_GENERATED = "INVOICES_GENERATED"
    TRACKING_EVENT = "TRACKING_EVENT"
    DOCUMENT_ADDED = "DOCUMENT_ADDED"


class ContainerAuditLog(Base):
    __tablename__ = "container_audit_logs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    container_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("containers.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    # ── What ───────────────────────────────────────────────────
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    old_value: Mapped[str | None] = mapped_column(String(255))
    new_value: Mapped[str | None] = mapped_column(String(255))
    details: Mapped[dict | None] = mapped_column(JSON)

    # ── Who / when ─────────────────────────────────────────────
    performed_by: Mapped[str] = mapped_column(String(36), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
