"""Pydantic schemas for customer invoices and invoice generation."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import Field, field_validator

from app.models.user_invoice import InvoiceStatus, LineItemType
from app.schemas.common import CamelModel
from app.schemas.validators import validate_money, validate_percent


# ── Generation ────────────────────────────────────────────────

class InvoiceGenerateRequest(CamelModel):
    """Payload for POST /api/invoices/generate."""
    container_id: str
    send_email: bool = False
    due_date: date | None = None
    discount_percent: Decimal = Decimal("0")
    tax_percent: Decimal = Decimal("0")

    @field_validator("discount_percent")
    @classmethod
    def discount_range(cls, v: Decimal) -> Decimal:
        return validate_percent(v, Decimal("100"))

    @field_validator("tax_percent")
    @classmethod
    def tax_non_negative(cls, v: Decimal) -> Decimal:
        return validate_percent(v)


class LineItemOut(CamelModel):
    id: str
    shipment_id: str | None = None
    position: int
    description: str
    type: LineItemType
    quantity: int
    unit_price: Decimal
    amount: Decimal


class UserInvoiceSummary(CamelModel):
    id: str
    invoice_number: str
    user_id: str
    container_id: str | None = None
    status: InvoiceStatus
    issue_date: date
    due_date: date | None = None
    total: Decimal


class UserInvoiceOut(UserInvoiceSummary):
    paid_date: date | None = None
    currency: str
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    payment_method: str | None = None
    payment_reference: str | None = None
    notes: str | None = None
    created_by: str | None = None
    created_at: datetime
    line_items: list[LineItemOut] = []


class GenerationSummary(CamelModel):
    new_invoices: int
    skipped_existing: int
    failed: int


class GenerationFailure(CamelModel):
    user_id: str
    error: str
    message: str


class InvoiceGenerateResponse(CamelModel):
    summary: GenerationSummary
    invoices: list[UserInvoiceOut]
    skipped: list[UserInvoiceSummary] = []
    failures: list[GenerationFailure] = []


# ── Maintenance ───────────────────────────────────────────────

class InvoiceUpdate(CamelModel):
    """Payload for PATCH /api/invoices/{id}; only sent fields change."""
    status: InvoiceStatus | None = None
    due_date: date | None = None
    paid_date: date | None = None
    payment_method: str | None = Field(None, max_length=50)
    payment_reference: str | None = Field(None, max_length=100)
    notes: str | None = None
    discount: Decimal | None = None
    tax: Decimal | None = None

    @field_validator("discount", "tax")
    @classmethod
    def amount_in_cents(cls, v: Decimal | None) -> Decimal | None:
        return validate_money(v)
