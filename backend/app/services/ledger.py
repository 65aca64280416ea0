"""Ledger poster — the single writer of per-customer running balances.

Every posting goes through `post_entry()`, which

  1. takes the customer's row lock (SELECT ... FOR UPDATE on users),
  2. reads the latest entry by sequence,
  3. appends entry N+1 with balance = previous ± amount.

The (user_id, sequence) unique constraint turns any writer that slipped
past the lock into a LEDGER_CONFLICT instead of a forked balance.  Entries
are never edited; `reverse_entry()` posts the offsetting entry instead.

`replay_balances()` is the pure check behind GET /api/ledger/verify and
`python -m app.cli verify-ledgers`.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import (
    ConflictError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from app.models.ledger_entry import EntryType, LedgerEntry
from app.models.shipment import Shipment
from app.models.user_invoice import UserInvoice
from app.utils.locks import lock_customer
from app.utils.money import ZERO, to_money

logger = logging.getLogger("freightledger.ledger")


# ── Balance arithmetic ───────────────────────────────────────

def apply_entry(balance: Decimal, entry_type: str, amount: Decimal) -> Decimal:
    """Running balance after one entry (DEBIT raises what is owed)."""
    if entry_type == EntryType.DEBIT.value:
        return to_money(balance + amount)
    return to_money(balance - amount)


@dataclass
class BalanceMismatch:
    entry_id: str
    sequence: int
    expected: Decimal
    stored: Decimal


def replay_balances(entries) -> list[BalanceMismatch]:
    """Replay `entries` (oldest first) and report rows whose stored balance
    differs from the recomputed one."""
    mismatches: list[BalanceMismatch] = []
    running = ZERO
    for entry in entries:
        running = apply_entry(running, entry.type, to_money(entry.amount))
        stored = to_money(entry.balance)
        if stored != running:
            mismatches.append(BalanceMismatch(
                entry_id=entry.id,
                sequence=entry.sequence,
                expected=running,
                stored=stored,
            ))
    return mismatches


# ── Reads ────────────────────────────────────────────────────

async def latest_entry(db: AsyncSession, user_id: str) -> LedgerEntry | None:
    result = await db.execute(
        select(LedgerEntry)
        .where(LedgerEntry.user_id == user_id)
        .order_by(LedgerEntry.sequence.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def current_balance(db: AsyncSession, user_id: str) -> Decimal:
    """Balance of the most recent entry, or 0 when the customer has none."""
    entry = await latest_entry(db, user_id)
    return to_money(entry.balance) if entry else ZERO


async def get_entry(db: AsyncSession, entry_id: str) -> LedgerEntry:
    result = await db.execute(select(LedgerEntry).where(LedgerEntry.id == entry_id))
    entry = result.scalar_one_or_none()
    if not entry:
        raise ResourceNotFoundError("Ledger entry", entry_id, error_code="ENTRY_NOT_FOUND")
    return entry


# ── Posting ──────────────────────────────────────────────────

async def post_entry(
    db: AsyncSession,
    user_id: str,
    *,
    entry_type: EntryType,
    amount,
    description: str,
    actor: str,
    shipment_id: str | None = None,
    invoice_id: str | None = None,
    reverses_entry_id: str | None = None,
    notes: str | None = None,
    details: dict | None = None,
) -> LedgerEntry:
    """Append one entry to the customer's ledger under the customer lock."""
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationFailedError(
            f"Ledger amount must be positive, got {amount}",
            error_code="INVALID_AMOUNT",
        )

    await lock_customer(db, user_id)

    previous = await latest_entry(db, user_id)
    previous_balance = to_money(previous.balance) if previous else ZERO
    now = datetime.utcnow()
    # Keep date order identical to insertion order even if the clock steps back.
    if previous and previous.transaction_date and previous.transaction_date > now:
        now = previous.transaction_date

    entry = LedgerEntry(
        user_id=user_id,
        sequence=(previous.sequence + 1) if previous else 1,
        transaction_date=now,
        description=description,
        type=entry_type.value,
        amount=amount,
        balance=apply_entry(previous_balance, entry_type.value, amount),
        shipment_id=shipment_id,
        invoice_id=invoice_id,
        reverses_entry_id=reverses_entry_id,
        created_by=actor,
        notes=notes,
        details=details,
    )
    db.add(entry)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ConflictError(
            f"Concurrent ledger write detected for user {user_id}; retry the operation",
            error_code="LEDGER_CONFLICT",
        ) from exc

    logger.info(
        "Posted %s %s for user %s (balance %s)",
        entry.type, entry.amount, user_id, entry.balance,
        extra={"user_id": user_id, "entry_id": entry.id, "sequence": entry.sequence},
    )
    return entry


async def post_invoice(db: AsyncSession, invoice: UserInvoice, actor: str) -> LedgerEntry | None:
    """DEBIT the customer for a newly created invoice."""
    total = to_money(invoice.total)
    if total <= 0:
        return None
    return await post_entry(
        db,
        invoice.user_id,
        entry_type=EntryType.DEBIT,
        amount=total,
        description=f"Invoice {invoice.invoice_number}",
        actor=actor,
        invoice_id=invoice.id,
        details={"containerId": invoice.container_id, "kind": "invoice"},
    )


async def post_invoice_adjustment(
    db: AsyncSession,
    invoice: UserInvoice,
    delta: Decimal,
    actor: str,
    *,
    description: str | None = None,
) -> LedgerEntry | None:
    """Post the offsetting entry for a change of `delta` in an invoice total."""
    delta = to_money(delta)
    if delta == 0:
        return None
    return await post_entry(
        db,
        invoice.user_id,
        entry_type=EntryType.DEBIT if delta > 0 else EntryType.CREDIT,
        amount=abs(delta),
        description=description or f"Adjustment to {invoice.invoice_number}",
        actor=actor,
        invoice_id=invoice.id,
        details={"kind": "invoice_adjustment"},
    )


async def post_payment(
    db: AsyncSession,
    user_id: str,
    amount,
    actor: str,
    *,
    description: str,
    shipment_ids: list[str],
    payment_method: str | None = None,
    notes: str | None = None,
) -> LedgerEntry:
    """CREDIT the customer for money received."""
    return await post_entry(
        db,
        user_id,
        entry_type=EntryType.CREDIT,
        amount=amount,
        description=description,
        actor=actor,
        notes=notes,
        details={
            "kind": "payment",
            "shipmentIds": shipment_ids,
            "paymentMethod": payment_method,
        },
    )


async def post_manual_entry(
    db: AsyncSession,
    user_id: str,
    *,
    entry_type: EntryType,
    amount,
    description: str,
    actor: str,
    shipment_id: str | None = None,
    notes: str | None = None,
) -> LedgerEntry:
    """Operator adjustment, optionally tied to one of the customer's shipments."""
    if shipment_id:
        result = await db.execute(
            select(Shipment.user_id).where(Shipment.id == shipment_id)
        )
        owner = result.scalar_one_or_none()
        if owner != user_id:
            raise ValidationFailedError(
                f"Shipment {shipment_id} does not belong to user {user_id}",
                error_code="INVALID_SHIPMENT_SELECTION",
            )
    return await post_entry(
        db,
        user_id,
        entry_type=entry_type,
        amount=amount,
        description=description,
        actor=actor,
        shipment_id=shipment_id,
        notes=notes,
        details={"kind": "manual"},
    )


async def reverse_entry(
    db: AsyncSession,
    entry_id: str,
    actor: str,
    reason: str | None = None,
) -> LedgerEntry:
    """Offset a posted entry with an entry of the opposite type."""
    original = await get_entry(db, entry_id)

    if original.reverses_entry_id:
        raise ConflictError(
            f"Entry {entry_id} is itself a reversal and cannot be reversed",
            error_code="CANNOT_REVERSE_REVERSAL",
        )

    await lock_customer(db, original.user_id)
    existing = await db.execute(
        select(LedgerEntry.id).where(LedgerEntry.reverses_entry_id == original.id)
    )
    if existing.scalar_one_or_none():
        raise ConflictError(
            f"Entry {entry_id} has already been reversed",
            error_code="ENTRY_ALREADY_REVERSED",
        )

    opposite = EntryType.CREDIT if original.type == EntryType.DEBIT.value else EntryType.DEBIT
    return await post_entry(
        db,
        original.user_id,
        entry_type=opposite,
        amount=original.amount,
        description=f"Reversal of: {original.description}",
        actor=actor,
        shipment_id=original.shipment_id,
        invoice_id=original.invoice_id,
        reverses_entry_id=original.id,
        notes=reason,
        details={"kind": "reversal"},
    )


# ── Listing & verification ───────────────────────────────────

@dataclass
class LedgerFilters:
    user_id: str
    entry_type: EntryType | None = None
    shipment_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    search: str | None = None


def _filtered(stmt, filters: LedgerFilters):
    stmt = stmt.where(LedgerEntry.user_id == filters.user_id)
    if filters.entry_type:
        stmt = stmt.where(LedgerEntry.type == filters.entry_type.value)
    if filters.shipment_id:
        stmt = stmt.where(LedgerEntry.shipment_id == filters.shipment_id)
    if filters.start_date:
        stmt = stmt.where(LedgerEntry.transaction_date >= filters.start_date)
    if filters.end_date:
        stmt = stmt.where(LedgerEntry.transaction_date <= filters.end_date)
    if filters.search:
        pattern = f"%{filters.search}%"
        stmt = stmt.where(or_(
            LedgerEntry.description.ilike(pattern),
            LedgerEntry.notes.ilike(pattern),
        ))
    return stmt


async def list_entries(
    db: AsyncSession,
    filters: LedgerFilters,
    *,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[LedgerEntry], int, dict]:
    """Newest-first page of entries plus debit/credit totals and balance."""
    count_result = await db.execute(
        _filtered(select(func.count(LedgerEntry.id)), filters)
    )
    total = count_result.scalar() or 0

    items_result = await db.execute(
        _filtered(select(LedgerEntry), filters)
        .order_by(LedgerEntry.sequence.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    entries = list(items_result.scalars().all())

    sums_result = await db.execute(
        _filtered(
            select(
                func.coalesce(func.sum(case(
                    (LedgerEntry.type == EntryType.DEBIT.value, LedgerEntry.amount),
                    else_=0,
                )), 0).label("debit"),
                func.coalesce(func.sum(case(
                    (LedgerEntry.type == EntryType.CREDIT.value, LedgerEntry.amount),
                    else_=0,
                )), 0).label("credit"),
            ),
            filters,
        )
    )
    sums = sums_result.one()

    summary = {
        "total_debit": to_money(sums.debit),
        "total_credit": to_money(sums.credit),
        "current_balance": await current_balance(db, filters.user_id),
    }
    return entries, total, summary


async def verify_customer_ledger(db: AsyncSession, user_id: str) -> tuple[int, list[BalanceMismatch]]:
    """Replay a customer's full ledger; returns (entry count, mismatches)."""
    result = await db.execute(
        select(LedgerEntry)
        .where(LedgerEntry.user_id == user_id)
        .order_by(LedgerEntry.transaction_date.asc(), LedgerEntry.sequence.asc())
    )
    entries = list(result.scalars().all())
    mismatches = replay_balances(entries)
    if mismatches:
        logger.error(
            "Ledger for user %s has %d balance mismatch(es)", user_id, len(mismatches),
            extra={"user_id": user_id, "first_sequence": mismatches[0].sequence},
        )
    return len(entries), mismatches
