"""Shipment — a single vehicle owned by a customer.

ON_HAND shipments sit in the yard (container_id is null); assigning one to a
container makes it IN_TRANSIT; closing the container releases it as
DELIVERED.  `amount_paid` accumulates what the payment allocator has applied
so a partially paid vehicle keeps its outstanding due.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class ShipmentStatus(str, enum.Enum):
    ON_HAND = "ON_HAND"
    IN_TRANSIT = "IN_TRANSIT"
    DELIVERED = "DELIVERED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PaymentMode(str, enum.Enum):
    CASH = "CASH"
    DUE = "DUE"


class Shipment(Base):
    __tablename__ = "shipments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )

    # ── Vehicle ──────────────────────────────────────────────
    vehicle_year: Mapped[int | None] = mapped_column(Integer)
    vehicle_make: Mapped[str | None] = mapped_column(String(100))
    vehicle_model: Mapped[str | None] = mapped_column(String(100))
    vehicle_vin: Mapped[str | None] = mapped_column(String(17), index=True)

    # ── Money ────────────────────────────────────────────────
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    insurance_value: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))

    # ── Placement ────────────────────────────────────────────
    container_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("containers.id"), index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), default=ShipmentStatus.ON_HAND.value, index=True
    )

    # ── Payment ──────────────────────────────────────────────
    payment_status: Mapped[str] = mapped_column(
        String(20), default=PaymentStatus.PENDING.value, index=True
    )
    # null until the customer picks one
    payment_mode: Mapped[str | None] = mapped_column(String(10))

    # ── Metadata ─────────────────────────────────────────────
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    user = relationship("User", lazy="selectin")

    @property
    def vehicle_label(self) -> str:
        parts = [str(self.vehicle_year or ""), self.vehicle_make or "", self.vehicle_model or ""]
        label = " ".join(p for p in parts if p)
        return label or "Vehicle"
