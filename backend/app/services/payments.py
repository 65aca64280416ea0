"""Payment allocator — applies money received across a customer's shipments.

    total_due = Σ (price − amount_paid) over the selected shipments

The payment is spread oldest shipment first.  A fully covered shipment is
COMPLETED; a partly covered one stays PENDING with its amount_paid raised.
Anything beyond total_due is left on the ledger as a credit balance.  The
ledger always receives one CREDIT for the full amount received.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import ValidationFailedError
from app.models.ledger_entry import LedgerEntry
from app.models.shipment import PaymentStatus, Shipment
from app.services import ledger
from app.utils.locks import lock_customer
from app.utils.money import ZERO, to_money

logger = logging.getLogger("freightledger.payments")


@dataclass
class ShipmentAllocation:
    shipment_id: str
    payment_status: str
    amount_applied: Decimal
    remaining_due: Decimal


@dataclass
class PaymentResult:
    entry: LedgerEntry
    allocations: list[ShipmentAllocation] = field(default_factory=list)
    unapplied_amount: Decimal = ZERO

    @property
    def balance(self) -> Decimal:
        return to_money(self.entry.balance)


def outstanding_due(shipment: Shipment) -> Decimal:
    due = to_money(shipment.price) - to_money(shipment.amount_paid)
    return due if due > 0 else ZERO


def allocate(amount: Decimal, dues: list[Decimal]) -> tuple[list[Decimal], Decimal]:
    """Split `amount` over `dues` in order; returns (applied per due, leftover)."""
    remaining = to_money(amount)
    applied = []
    for due in dues:
        portion = min(remaining, due)
        applied.append(portion)
        remaining -= portion
    return applied, to_money(remaining)


def _invalid_selection(message: str, **details) -> ValidationFailedError:
    return ValidationFailedError(message, error_code="INVALID_SHIPMENT_SELECTION", details=details or None)


async def record_payment(
    db: AsyncSession,
    *,
    user_id: str,
    shipment_ids: list[str],
    amount,
    actor: str,
    payment_method: str | None = None,
    notes: str | None = None,
) -> PaymentResult:
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationFailedError(
            f"Payment amount must be greater than zero, got {amount}",
            error_code="INVALID_AMOUNT",
        )

    await lock_customer(db, user_id)

    wanted = list(dict.fromkeys(shipment_ids or []))
    if not wanted:
        raise _invalid_selection("Select at least one shipment to pay for")

    result = await db.execute(
        select(Shipment)
        .where(Shipment.id.in_(wanted))
        .order_by(Shipment.created_at, Shipment.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    shipments = list(result.scalars().all())

    missing = sorted(set(wanted) - {s.id for s in shipments})
    if missing:
        raise _invalid_selection("Some shipments do not exist", missing=missing)
    foreign = [s.id for s in shipments if s.user_id != user_id]
    if foreign:
        raise _invalid_selection("Some shipments belong to another customer", shipmentIds=foreign)
    settled = [s.id for s in shipments if s.payment_status == PaymentStatus.COMPLETED.value]
    if settled:
        raise _invalid_selection("Some shipments are already paid", shipmentIds=settled)

    dues = [outstanding_due(s) for s in shipments]
    applied, unapplied = allocate(amount, dues)

    allocations = []
    for shipment, due, portion in zip(shipments, dues, applied):
        if portion > 0:
            shipment.amount_paid = to_money(to_money(shipment.amount_paid) + portion)
        remaining = to_money(due - portion)
        shipment.payment_status = (
            PaymentStatus.COMPLETED.value if remaining == 0 else PaymentStatus.PENDING.value
        )
        allocations.append(ShipmentAllocation(
            shipment_id=shipment.id,
            payment_status=shipment.payment_status,
            amount_applied=portion,
            remaining_due=remaining,
        ))

    method_label = f" via {payment_method}" if payment_method else ""
    entry = await ledger.post_payment(
        db,
        user_id,
        amount,
        actor,
        description=f"Payment received{method_label} for {len(shipments)} shipment(s)",
        shipment_ids=[s.id for s in shipments],
        payment_method=payment_method,
        notes=notes,
    )

    logger.info(
        "Payment of %s from user %s applied to %d shipment(s), %s unapplied",
        amount, user_id, len(shipments), unapplied,
        extra={"user_id": user_id, "entry_id": entry.id},
    )
    return PaymentResult(entry=entry, allocations=allocations, unapplied_amount=unapplied)
