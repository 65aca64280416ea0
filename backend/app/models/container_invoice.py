"""ContainerInvoice — container-level revenue record.

Distinct from the per-customer UserInvoice: these rows record what the
container earned (carrier rebates, consolidated billing, cash collections)
and feed the container P&L: totals.invoices − totals.expenses = net profit.

Lifecycle:  PENDING → PAID | CANCELLED
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class ContainerInvoice(Base):
    __tablename__ = "container_invoices"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    container_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("containers.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # ── Amounts ──────────────────────────────────────────────
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    vendor: Mapped[str | None] = mapped_column(String(255))

    # ── Dates ────────────────────────────────────────────────
    date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    due_date: Mapped[datetime | None] = mapped_column(DateTime)

    # PENDING | PAID | CANCELLED
    status: Mapped[str] = mapped_column(String(20), default="PENDING")

    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
