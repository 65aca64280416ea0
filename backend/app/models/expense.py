"""ContainerExpense — a shared cost incurred by a container.

Freight, port, customs, storage and handling charges.  The invoice
generator splits the container total evenly across the vehicles loaded in
it.  Amounts are assumed to be in the container's base currency.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class ContainerExpense(Base):
    __tablename__ = "container_expenses"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    container_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("containers.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )

    # Shipping | Customs | Storage | Handling | ...
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    date: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    vendor: Mapped[str | None] = mapped_column(String(255))
    invoice_number: Mapped[str | None] = mapped_column(String(100))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
