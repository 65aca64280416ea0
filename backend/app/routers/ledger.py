"""Customer ledger router.

Endpoints:
    GET   /api/ledger                       Entries for one customer (filters + summary)
    POST  /api/ledger                       Manual debit/credit adjustment
    POST  /api/ledger/payment               Record a payment across shipments
    POST  /api/ledger/{entry_id}/reverse    Post the offsetting entry
    GET   /api/ledger/verify                Replay a customer's running balance
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_actor, get_request_timeout
from app.database import get_db, run_bounded
from app.models.ledger_entry import EntryType
from app.schemas.ledger import (
    BalanceMismatchOut,
    LedgerEntryOut,
    LedgerPage,
    LedgerSummary,
    LedgerVerification,
    ManualEntryCreate,
    ReverseEntryRequest,
)
from app.schemas.payment import PaymentCreate, PaymentOut, ShipmentAllocationOut
from app.schemas.validators import naive_utc
from app.services import ledger, payments
from app.utils.locks import lock_customer

router = APIRouter()


# ── GET /api/ledger ──────────────────────────────────────────

@router.get("", response_model=LedgerPage)
async def list_ledger(
    user_id: str = Query(..., alias="userId"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    entry_type: EntryType | None = Query(None, alias="type"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    shipment_id: str | None = Query(None, alias="shipmentId"),
    search: str | None = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
    timeout: float = Depends(get_request_timeout),
):
    """Newest entries first; the summary covers every entry matching the filters."""
    filters = ledger.LedgerFilters(
        user_id=user_id,
        entry_type=entry_type,
        shipment_id=shipment_id,
        start_date=naive_utc(start_date),
        end_date=naive_utc(end_date),
        search=search,
    )
    entries, total, summary = await run_bounded(
        ledger.list_entries(db, filters, page=page, limit=limit),
        timeout, "list_ledger",
    )
    return LedgerPage(
        items=[LedgerEntryOut.model_validate(e) for e in entries],
        total=total,
        page=page,
        limit=limit,
        summary=LedgerSummary(**summary),
    )


# ── POST /api/ledger ─────────────────────────────────────────

@router.post("", response_model=LedgerEntryOut, status_code=201)
async def create_manual_entry(
    body: ManualEntryCreate,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    return await run_bounded(
        ledger.post_manual_entry(
            db, body.user_id,
            entry_type=body.type,
            amount=body.amount,
            description=body.description,
            actor=actor,
            shipment_id=body.shipment_id,
            notes=body.notes,
        ),
        timeout, "create_manual_entry",
    )


# ── POST /api/ledger/payment ─────────────────────────────────

@router.post("/payment", response_model=PaymentOut, status_code=201)
async def record_payment(
    body: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    """Apply a payment oldest shipment first; any excess stays as credit."""
    result = await run_bounded(
        payments.record_payment(
            db,
            user_id=body.user_id,
            shipment_ids=body.shipment_ids,
            amount=body.amount,
            actor=actor,
            payment_method=body.payment_method,
            notes=body.notes,
        ),
        timeout, "record_payment",
    )
    return PaymentOut(
        entry=LedgerEntryOut.model_validate(result.entry),
        shipments=[
            ShipmentAllocationOut(
                shipment_id=a.shipment_id,
                payment_status=a.payment_status,
                amount_applied=a.amount_applied,
                remaining_due=a.remaining_due,
            )
            for a in result.allocations
        ],
        unapplied_amount=result.unapplied_amount,
        balance=result.balance,
    )


# ── GET /api/ledger/verify ───────────────────────────────────

@router.get("/verify", response_model=LedgerVerification)
async def verify_ledger(
    user_id: str = Query(..., alias="userId"),
    db: AsyncSession = Depends(get_db),
    timeout: float = Depends(get_request_timeout),
):
    async def work():
        await lock_customer(db, user_id)
        count, mismatches = await ledger.verify_customer_ledger(db, user_id)
        return LedgerVerification(
            user_id=user_id,
            entries=count,
            consistent=not mismatches,
            current_balance=await ledger.current_balance(db, user_id),
            mismatches=[
                BalanceMismatchOut(
                    entry_id=m.entry_id,
                    sequence=m.sequence,
                    expected=m.expected,
                    stored=m.stored,
                )
                for m in mismatches
            ],
        )

    return await run_bounded(work(), timeout, "verify_ledger")


# ── POST /api/ledger/{entry_id}/reverse ──────────────────────

@router.post("/{entry_id}/reverse", response_model=LedgerEntryOut, status_code=201)
async def reverse_entry(
    entry_id: str,
    body: ReverseEntryRequest | None = None,
    db: AsyncSession = Depends(get_db),
    actor: str = Depends(get_actor),
    timeout: float = Depends(get_request_timeout),
):
    reason = body.reason if body else None
    return await run_bounded(
        ledger.reverse_entry(db, entry_id, actor, reason),
        timeout, "reverse_entry",
    )
