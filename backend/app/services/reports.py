"""Reports over shipments and the ledger.

due_aging         what customers still owe, bucketed by shipment age
financial_report  ledger debit/credit totals, per period and per customer

Aging buckets (days since the shipment was created):
  current   0-30
  aging30   31-60
  aging60   61-90
  aging90   90+
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import ResourceNotFoundError, ValidationFailedError
from app.models.ledger_entry import EntryType, LedgerEntry
from app.models.shipment import PaymentStatus, Shipment
from app.models.user import User
from app.services import ledger
from app.services.payments import outstanding_due
from app.utils.money import ZERO, to_money

logger = logging.getLogger("freightledger.reports")

BUCKETS = [
    ("current", "0-30 Days", 30),
    ("aging30", "31-60 Days", 60),
    ("aging60", "61-90 Days", 90),
    ("aging90", "90+ Days", None),
]


@dataclass
class AgingBucket:
    key: str
    label: str
    total: Decimal = ZERO
    shipments: list[dict] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.shipments)


def bucket_for(age_in_days: int) -> str:
    for key, _label, upper in BUCKETS:
        if upper is None or age_in_days <= upper:
            return key
    return BUCKETS[-1][0]


async def due_aging(
    db: AsyncSession,
    *,
    user_id: str | None = None,
    now: datetime | None = None,
) -> dict:
    now = now or datetime.utcnow()
    stmt = select(Shipment).where(
        Shipment.payment_status.in_([PaymentStatus.PENDING.value, PaymentStatus.FAILED.value])
    )
    if user_id:
        stmt = stmt.where(Shipment.user_id == user_id)
    result = await db.execute(stmt.order_by(Shipment.created_at, Shipment.id))

    buckets = {key: AgingBucket(key=key, label=label) for key, label, _ in BUCKETS}
    for shipment in result.scalars().all():
        due = outstanding_due(shipment)
        if due <= 0:
            continue
        age = max(0, (now - shipment.created_at).days)
        bucket = buckets[bucket_for(age)]
        bucket.total = to_money(bucket.total + due)
        bucket.shipments.append({
            "id": shipment.id,
            "user_id": shipment.user_id,
            "vehicle": shipment.vehicle_label,
            "amount_due": due,
            "age_in_days": age,
            "created_at": shipment.created_at,
        })

    grand_total = to_money(sum((b.total for b in buckets.values()), ZERO))
    return {
        "generated_at": now,
        "total_shipments": sum(b.count for b in buckets.values()),
        "total_amount_due": grand_total,
        "buckets": [
            {"key": b.key, "label": b.label, "count": b.count, "total": b.total, "shipments": b.shipments}
            for b in buckets.values()
        ],
    }


# ── Financial report ─────────────────────────────────────────

REPORT_TYPES = ("summary", "user-wise")


def _period(start_date: date | None, end_date: date | None):
    """[start, end) datetimes covering whole days; None leaves a side open."""
    start = datetime.combine(start_date, time.min) if start_date else None
    end = datetime.combine(end_date + timedelta(days=1), time.min) if end_date else None
    return start, end


def _within(stmt, column, start: datetime | None, end: datetime | None):
    if start:
        stmt = stmt.where(column >= start)
    if end:
        stmt = stmt.where(column < end)
    return stmt


def _ledger_totals_columns():
    is_debit = LedgerEntry.type == EntryType.DEBIT.value
    is_credit = LedgerEntry.type == EntryType.CREDIT.value
    return (
        func.coalesce(func.sum(case((is_debit, LedgerEntry.amount), else_=0)), 0).label("total_debit"),
        func.coalesce(func.sum(case((is_credit, LedgerEntry.amount), else_=0)), 0).label("total_credit"),
        func.count(case((is_debit, LedgerEntry.id))).label("debit_count"),
        func.count(case((is_credit, LedgerEntry.id))).label("credit_count"),
    )


async def _customers(db: AsyncSession, user_id: str | None) -> list[User]:
    if user_id:
        user = await db.get(User, user_id)
        if not user:
            raise ResourceNotFoundError("User", user_id)
        return [user]
    has_entries = select(LedgerEntry.user_id).distinct()
    result = await db.execute(select(User).where(User.id.in_(has_entries)).order_by(User.email))
    return list(result.scalars().all())


async def _summary(db: AsyncSession, user_id: str | None, start, end) -> dict:
    ledger_stmt = select(*_ledger_totals_columns())
    shipment_stmt = (
        select(
            Shipment.payment_status,
            func.count(Shipment.id).label("shipment_count"),
            func.coalesce(func.sum(Shipment.price), 0).label("total_amount"),
        )
        .group_by(Shipment.payment_status)
        .order_by(Shipment.payment_status)
    )
    if user_id:
        ledger_stmt = ledger_stmt.where(LedgerEntry.user_id == user_id)
        shipment_stmt = shipment_stmt.where(Shipment.user_id == user_id)
    ledger_stmt = _within(ledger_stmt, LedgerEntry.transaction_date, start, end)
    shipment_stmt = _within(shipment_stmt, Shipment.created_at, start, end)

    totals = (await db.execute(ledger_stmt)).one()
    total_debit, total_credit = to_money(totals.total_debit), to_money(totals.total_credit)

    balances = []
    for user in await _customers(db, user_id):
        balances.append({
            "user_id": user.id,
            "user_name": user.name or user.email,
            "current_balance": await ledger.current_balance(db, user.id),
        })

    return {
        "ledger_summary": {
            "total_debit": total_debit,
            "total_credit": total_credit,
            "net_balance": to_money(total_debit - total_credit),
            "debit_count": totals.debit_count,
            "credit_count": totals.credit_count,
        },
        "shipment_summary": [
            {
                "payment_status": row.payment_status,
                "count": row.shipment_count,
                "total_amount": to_money(row.total_amount),
            }
            for row in (await db.execute(shipment_stmt)).all()
        ],
        "user_balances": balances,
    }


async def _user_wise(db: AsyncSession, user_id: str | None, start, end) -> dict:
    ledger_stmt = _within(
        select(LedgerEntry.user_id, *_ledger_totals_columns()).group_by(LedgerEntry.user_id),
        LedgerEntry.transaction_date, start, end,
    )
    ledger_rows = {row.user_id: row for row in (await db.execute(ledger_stmt)).all()}

    unpaid = Shipment.payment_status.in_([PaymentStatus.PENDING.value, PaymentStatus.FAILED.value])
    shipment_stmt = _within(
        select(
            Shipment.user_id,
            func.count(Shipment.id).label("total"),
            func.count(case((Shipment.payment_status == PaymentStatus.COMPLETED.value, Shipment.id))).label("paid"),
            func.count(case((unpaid, Shipment.id))).label("due"),
        ).group_by(Shipment.user_id),
        Shipment.created_at, start, end,
    )
    shipment_rows = {row.user_id: row for row in (await db.execute(shipment_stmt)).all()}

    users = []
    for user in await _customers(db, user_id):
        entries = ledger_rows.get(user.id)
        stats = shipment_rows.get(user.id)
        users.append({
            "user_id": user.id,
            "user_name": user.name or user.email,
            "email": user.email,
            "total_debit": to_money(entries.total_debit if entries else 0),
            "total_credit": to_money(entries.total_credit if entries else 0),
            "current_balance": await ledger.current_balance(db, user.id),
            "shipment_stats": {
                "total": stats.total if stats else 0,
                "paid": stats.paid if stats else 0,
                "due": stats.due if stats else 0,
            },
        })
    return {"users": users}


async def financial_report(
    db: AsyncSession,
    report_type: str = "summary",
    *,
    user_id: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    """Ledger and shipment totals for the period.

    `summary` gives overall debit/credit totals, shipments grouped by payment
    status and every customer's current balance; `user-wise` breaks the
    totals down per customer.  Period filters apply to ledger
    transaction_date and shipment created_at; current balances are always
    all-time.
    """
    if report_type not in REPORT_TYPES:
        raise ValidationFailedError(
            f"Unknown report type '{report_type}'; expected one of {', '.join(REPORT_TYPES)}",
            error_code="INVALID_REPORT_TYPE",
        )
    if start_date and end_date and start_date > end_date:
        raise ValidationFailedError("startDate must not be after endDate", error_code="INVALID_DATE_RANGE")

    start, end = _period(start_date, end_date)
    if report_type == "summary":
        body = await _summary(db, user_id, start, end)
    else:
        body = await _user_wise(db, user_id, start, end)

    logger.info(
        "Financial report %s generated", report_type,
        extra={"user_id": user_id, "start_date": start_date, "end_date": end_date},
    )
    return {
        "type": report_type,
        "generated_at": datetime.utcnow(),
        "period": {"start_date": start_date, "end_date": end_date},
        **body,
    }
