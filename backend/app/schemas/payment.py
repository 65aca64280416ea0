"""Pydantic schemas for recording customer payments."""

from decimal import Decimal

from pydantic import Field, field_validator

from app.models.shipment import PaymentStatus
from app.schemas.common import CamelModel
from app.schemas.ledger import LedgerEntryOut
from app.schemas.validators import validate_money


class PaymentCreate(CamelModel):
    """Payload for POST /api/ledger/payment.

    Amount rules (must be positive) are enforced by the allocator so that
    the caller gets INVALID_AMOUNT rather than a generic shape error.
    """
    user_id: str
    shipment_ids: list[str] = []
    amount: Decimal
    payment_method: str | None = Field(None, max_length=50)
    notes: str | None = None

    @field_validator("amount")
    @classmethod
    def amount_in_cents(cls, v: Decimal) -> Decimal:
        return validate_money(v)


class ShipmentAllocationOut(CamelModel):
    shipment_id: str
    payment_status: PaymentStatus
    amount_applied: Decimal
    remaining_due: Decimal


class PaymentOut(CamelModel):
    entry: LedgerEntryOut
    shipments: list[ShipmentAllocationOut]
    unapplied_amount: Decimal
    balance: Decimal
