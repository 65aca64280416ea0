"""Container — a shipping container holding several vehicles.

Lifecycle:  CREATED → WAITING_FOR_LOADING → LOADED → IN_TRANSIT →
            ARRIVED_PORT → CUSTOMS_CLEARANCE → RELEASED → CLOSED

Operators may set any status at any time; the rules that do apply live in
app/services/container_lifecycle.py.  Child collections are read-only views
here: rows are created by their own services and removed explicitly when a
container is deleted.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class ContainerStatus(str, enum.Enum):
    CREATED = "CREATED"
    WAITING_FOR_LOADING = "WAITING_FOR_LOADING"
    LOADED = "LOADED"
    IN_TRANSIT = "IN_TRANSIT"
    ARRIVED_PORT = "ARRIVED_PORT"
    CUSTOMS_CLEARANCE = "CUSTOMS_CLEARANCE"
    RELEASED = "RELEASED"
    CLOSED = "CLOSED"


class Container(Base):
    __tablename__ = "containers"
    __table_args__ = (
        CheckConstraint("current_count <= max_capacity", name="ck_containers_capacity"),
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_containers_progress"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # Carrier format: 4 letters + 7 digits, e.g. MSCU1234567
    container_number: Mapped[str] = mapped_column(
        String(11), unique=True, nullable=False, index=True
    )

    # ── Status ───────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(30), default=ContainerStatus.CREATED.value, index=True
    )
    progress: Mapped[int] = mapped_column(Integer, default=0)

    # ── Capacity ─────────────────────────────────────────────
    max_capacity: Mapped[int] = mapped_column(Integer, default=4)
    current_count: Mapped[int] = mapped_column(Integer, default=0)

    # ── Shipping metadata (opaque to billing) ────────────────
    tracking_number: Mapped[str | None] = mapped_column(String(100))
    vessel_name: Mapped[str | None] = mapped_column(String(255))
    voyage_number: Mapped[str | None] = mapped_column(String(100))
    shipping_line: Mapped[str | None] = mapped_column(String(255))
    booking_number: Mapped[str | None] = mapped_column(String(100))
    loading_port: Mapped[str | None] = mapped_column(String(255))
    destination_port: Mapped[str | None] = mapped_column(String(255))
    transshipment_ports: Mapped[list | None] = mapped_column(JSON)
    current_location: Mapped[str | None] = mapped_column(String(255))
    loading_date: Mapped[datetime | None] = mapped_column(DateTime)
    departure_date: Mapped[datetime | None] = mapped_column(DateTime)
    estimated_arrival: Mapped[datetime | None] = mapped_column(DateTime)
    actual_arrival: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Metadata ─────────────────────────────────────────────
    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships (read side) ────────────────────────────
    shipments = relationship(
        "Shipment", viewonly=True, lazy="selectin",
        order_by="[Shipment.created_at, Shipment.id]",
    )
    expenses = relationship(
        "ContainerExpense", viewonly=True, lazy="selectin",
        order_by="ContainerExpense.date.desc()",
    )
    invoices = relationship(
        "ContainerInvoice", viewonly=True, lazy="selectin",
        order_by="ContainerInvoice.date.desc()",
    )
    user_invoices = relationship(
        "UserInvoice", viewonly=True, lazy="selectin",
        order_by="UserInvoice.invoice_number",
    )
    documents = relationship(
        "ContainerDocument", viewonly=True, lazy="selectin",
        order_by="ContainerDocument.uploaded_at.desc()",
    )
    tracking_events = relationship(
        "TrackingEvent", viewonly=True, lazy="selectin",
        order_by="TrackingEvent.event_date.desc()",
    )
    audit_logs = relationship(
        "ContainerAuditLog", viewonly=True, lazy="selectin",
        order_by="ContainerAuditLog.timestamp.desc()",
    )
