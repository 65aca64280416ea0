"""LedgerEntry — append-only debit/credit record for one customer.

DEBIT increases what the customer owes, CREDIT decreases it.  `balance`
is the running balance after this entry; `sequence` is the per-customer
insertion order and, together with user_id, is unique, so two writers can
never both append entry N+1.

Rows are never updated or deleted.  Corrections are new entries; a
reversal points at the entry it offsets through `reverses_entry_id`.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class EntryType(str, enum.Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "sequence", name="uq_ledger_entries_user_sequence"),
        CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=False, index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Posting ──────────────────────────────────────────────
    transaction_date: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # ── Links ────────────────────────────────────────────────
    shipment_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("shipments.id"), index=True
    )
    invoice_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("user_invoices.id"), index=True
    )
    reverses_entry_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("ledger_entries.id"), unique=True
    )

    # ── Metadata ─────────────────────────────────────────────
    created_by: Mapped[str | None] = mapped_column(String(36))
    notes: Mapped[str | None] = mapped_column(Text)
    # {"shipmentIds": [...], "paymentMethod": "wire", ...}
    details: Mapped[dict | None] = mapped_column(JSON)

    user = relationship("User", lazy="selectin")
