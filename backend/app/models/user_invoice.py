"""UserInvoice — customer-facing bill for the vehicles one customer has in
one container, plus its itemized lines.

Lifecycle:  DRAFT → PENDING → SENT → PAID | OVERDUE | CANCELLED

Invariants (kept by app/services/invoicing.py):
    subtotal = Σ line_items.amount
    total    = subtotal − discount + tax
    at most one non-cancelled invoice per (container_id, user_id)
"""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class InvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


class LineItemType(str, enum.Enum):
    VEHICLE_PRICE = "VEHICLE_PRICE"
    INSURANCE = "INSURANCE"
    EXPENSE_SHARE = "EXPENSE_SHARE"
    OTHER = "OTHER"


class UserInvoice(Base):
    __tablename__ = "user_invoices"
    __table_args__ = (
        # One live invoice per customer per container; cancelled ones don't count.
        Index(
            "uq_user_invoices_container_user_active",
            "container_id", "user_id",
            unique=True,
            postgresql_where=text("status <> 'CANCELLED'"),
            sqlite_where=text("status <> 'CANCELLED'"),
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    invoice_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True
    )

    # ── Parties ──────────────────────────────────────────────
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    container_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("containers.id", ondelete="SET NULL"), index=True
    )

    # ── Status & dates ───────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20), default=InvoiceStatus.DRAFT.value, index=True
    )
    issue_date: Mapped[date] = mapped_column(Date, default=date.today)
    due_date: Mapped[date | None] = mapped_column(Date)
    paid_date: Mapped[date | None] = mapped_column(Date)

    # ── Amounts ──────────────────────────────────────────────
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    tax: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # ── Payment ──────────────────────────────────────────────
    payment_method: Mapped[str | None] = mapped_column(String(50))
    payment_reference: Mapped[str | None] = mapped_column(String(100))

    # ── Metadata ─────────────────────────────────────────────
    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    line_items = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceLineItem.position",
    )
    user = relationship("User", lazy="selectin")


class InvoiceLineItem(Base):
    __tablename__ = "invoice_line_items"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    invoice_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_invoices.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    shipment_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("shipments.id"), index=True
    )
    # display order within the invoice
    position: Mapped[int] = mapped_column(Integer, default=0)

    description: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    invoice = relationship("UserInvoice", back_populates="line_items")
