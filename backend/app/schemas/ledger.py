"""Pydantic schemas for ledger entries, manual postings and reversals."""

from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_validator

from app.models.ledger_entry import EntryType
from app.schemas.common import CamelModel, PaginatedResponse
from app.schemas.validators import validate_money


class LedgerEntryOut(CamelModel):
    id: str
    user_id: str
    sequence: int
    transaction_date: datetime
    description: str
    type: EntryType
    amount: Decimal
    balance: Decimal
    shipment_id: str | None = None
    invoice_id: str | None = None
    reverses_entry_id: str | None = None
    created_by: str | None = None
    notes: str | None = None
    details: dict | None = None


class LedgerSummary(CamelModel):
    total_debit: Decimal
    total_credit: Decimal
    current_balance: Decimal


class LedgerPage(PaginatedResponse[LedgerEntryOut]):
    summary: LedgerSummary


class ManualEntryCreate(CamelModel):
    """Payload for POST /api/ledger (operator adjustment)."""
    user_id: str
    type: EntryType
    amount: Decimal
    description: str = Field(..., min_length=1, max_length=500)
    shipment_id: str | None = None
    notes: str | None = None

    @field_validator("amount")
    @classmethod
    def amount_in_cents(cls, v: Decimal) -> Decimal:
        return validate_money(v)


class ReverseEntryRequest(CamelModel):
    reason: str | None = Field(None, max_length=500)


class BalanceMismatchOut(CamelModel):
    entry_id: str
    sequence: int
    expected: Decimal
    stored: Decimal


class LedgerVerification(CamelModel):
    user_id: str
    entries: int
    consistent: bool
    current_balance: Decimal
    mismatches: list[BalanceMismatchOut] = []
