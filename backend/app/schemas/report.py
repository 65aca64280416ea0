"""Pydantic schemas for the due-aging and financial reports."""

from datetime import date, datetime
from decimal import Decimal

from app.schemas.common import CamelModel


class AgingShipment(CamelModel):
    id: str
    user_id: str
    vehicle: str
    amount_due: Decimal
    age_in_days: int
    created_at: datetime


class AgingBucketOut(CamelModel):
    key: str
    label: str
    count: int
    total: Decimal
    shipments: list[AgingShipment]


class DueAgingReport(CamelModel):
    generated_at: datetime
    total_shipments: int
    total_amount_due: Decimal
    buckets: list[AgingBucketOut]


# ── Financial report ─────────────────────────────────────────

class ReportPeriod(CamelModel):
    start_date: date | None = None
    end_date: date | None = None


class LedgerSummary(CamelModel):
    total_debit: Decimal
    total_credit: Decimal
    net_balance: Decimal
    debit_count: int
    credit_count: int


class PaymentStatusTotal(CamelModel):
    payment_status: str
    count: int
    total_amount: Decimal


class UserBalance(CamelModel):
    user_id: str
    user_name: str
    current_balance: Decimal


class ShipmentStats(CamelModel):
    total: int
    paid: int
    due: int


class UserFinancials(CamelModel):
    user_id: str
    user_name: str
    email: str
    total_debit: Decimal
    total_credit: Decimal
    current_balance: Decimal
    shipment_stats: ShipmentStats


class FinancialReport(CamelModel):
    """`summary` fills the first three sections, `user-wise` fills `users`."""
    type: str
    generated_at: datetime
    period: ReportPeriod
    ledger_summary: LedgerSummary | None = None
    shipment_summary: list[PaymentStatusTotal] | None = None
    user_balances: list[UserBalance] | None = None
    users: list[UserFinancials] | None = None
