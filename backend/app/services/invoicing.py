"""Invoice generator — one UserInvoice per customer per container.

Flow for POST /api/invoices/generate:

  1. Lock the container row (serializes concurrent generation).
  2. Load its shipments ordered by (created_at, id) and group by customer.
  3. Split the container's expense total evenly over all its vehicles,
     cent-exact, leftover cents to the first vehicles.
  4. Lock the customers' rows in user_id order.
  5. For each customer without a live invoice for this container, create
     the invoice, its line items and the ledger DEBIT inside one savepoint,
     drawing a new invoice number if another container took the first one.

A customer whose write fails is rolled back alone and reported under
`failed`; a duplicate raced in by another writer is reported as skipped.
Running the generator twice therefore never double-bills anyone.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.middleware.exceptions import (
    ConflictError,
    FreightLedgerException,
    ResourceNotFoundError,
    ValidationFailedError,
)
from app.models.audit_log import AuditAction
from app.models.shipment import Shipment
from app.models.user_invoice import (
    InvoiceLineItem,
    InvoiceStatus,
    LineItemType,
    UserInvoice,
)
from app.services import costs, ledger
from app.utils.activity import log_container_event
from app.utils.locks import get_invoice_locks, lock_container, lock_customer
from app.utils.money import ZERO, line_amount, money_sum, percent_of, split_evenly, to_money
from app.utils.numbering import generate_code

logger = logging.getLogger("freightledger.invoicing")

# Attempts per customer when the drawn invoice number is already taken
NUMBER_ATTEMPTS = 3

InvoiceNotifier = Callable[[UserInvoice], Awaitable[None]]


async def log_invoice_notification(invoice: UserInvoice) -> None:
    """Default notifier: e-mail delivery is handled outside this service."""
    logger.info(
        "Invoice %s queued for e-mail to user %s", invoice.invoice_number, invoice.user_id,
        extra={"invoice_id": invoice.id, "user_id": invoice.user_id},
    )


@dataclass
class GenerationOptions:
    send_email: bool = False
    due_date: date | None = None
    discount_percent: Decimal = ZERO
    tax_percent: Decimal = ZERO


@dataclass
class GenerationResult:
    created: list[UserInvoice] = field(default_factory=list)
    skipped: list[UserInvoice] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    @property
    def summary(self) -> dict:
        return {
            "new_invoices": len(self.created),
            "skipped_existing": len(self.skipped),
            "failed": len(self.failed),
        }


# ── Pure computation ─────────────────────────────────────────

def build_line_items(
    shipments: list[Shipment],
    expense_shares: dict[str, Decimal],
    vehicle_count: int,
) -> list[InvoiceLineItem]:
    """Itemize one customer's vehicles.

    Per vehicle: price, insurance when insured, and its expense share when
    the container has expenses at all.
    """
    lines: list[InvoiceLineItem] = []

    def add(shipment: Shipment, kind: LineItemType, description: str, unit_price) -> None:
        lines.append(InvoiceLineItem(
            shipment_id=shipment.id,
            position=len(lines),
            description=description,
            type=kind.value,
            quantity=1,
            unit_price=to_money(unit_price),
            amount=line_amount(1, unit_price),
        ))

    for shipment in shipments:
        label = shipment.vehicle_label
        add(shipment, LineItemType.VEHICLE_PRICE, f"{label} - Vehicle Price", shipment.price)
        if to_money(shipment.insurance_value) > 0:
            add(shipment, LineItemType.INSURANCE, f"{label} - Insurance", shipment.insurance_value)
        if shipment.id in expense_shares:
            add(
                shipment,
                LineItemType.EXPENSE_SHARE,
                f"{label} - Shared container expenses (1/{vehicle_count} share)",
                expense_shares[shipment.id],
            )
    return lines


def compute_totals(
    lines: list[InvoiceLineItem],
    discount_percent=ZERO,
    tax_percent=ZERO,
) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    """Return (subtotal, discount, tax, total); tax applies after discount."""
    subtotal = money_sum(line.amount for line in lines)
    discount = percent_of(subtotal, discount_percent)
    tax = percent_of(subtotal - discount, tax_percent)
    total = to_money(subtotal - discount + tax)
    return subtotal, discount, tax, total


def group_by_customer(shipments: list[Shipment]) -> dict[str, list[Shipment]]:
    """Group shipments by user_id, customers in order of first appearance."""
    groups: dict[str, list[Shipment]] = {}
    for shipment in shipments:
        groups.setdefault(shipment.user_id, []).append(shipment)
    return groups


# ── Generation ───────────────────────────────────────────────

async def _live_invoice(db: AsyncSession, container_id: str, user_id: str) -> UserInvoice | None:
    result = await db.execute(
        select(UserInvoice).where(
            UserInvoice.container_id == container_id,
            UserInvoice.user_id == user_id,
            UserInvoice.status != InvoiceStatus.CANCELLED.value,
        )
    )
    return result.scalars().first()


async def _create_customer_invoice(
    db: AsyncSession,
    container_id: str,
    user_id: str,
    shipments: list[Shipment],
    shares: dict[str, Decimal],
    vehicle_count: int,
    options: GenerationOptions,
    actor: str,
) -> UserInvoice:
    issue_date = date.today()
    lines = build_line_items(shipments, shares, vehicle_count)
    subtotal, discount, tax, total = compute_totals(
        lines, options.discount_percent, options.tax_percent,
    )

    invoice = UserInvoice(
        invoice_number=await generate_code(db, "user_invoice", issue_date),
        user_id=user_id,
        container_id=container_id,
        status=InvoiceStatus.DRAFT.value,
        issue_date=issue_date,
        due_date=options.due_date or issue_date + timedelta(days=settings.invoice_due_days),
        currency=settings.default_currency,
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        total=total,
        created_by=actor,
        line_items=lines,
    )
    db.add(invoice)
    await db.flush()

    await ledger.post_invoice(db, invoice, actor)
    return invoice


async def generate_invoices(
    db: AsyncSession,
    container_id: str,
    *,
    actor: str,
    options: GenerationOptions | None = None,
    notifier: InvoiceNotifier | None = None,
) -> GenerationResult:
    """Create the missing per-customer invoices for a container."""
    options = options or GenerationOptions()
    container = await lock_container(db, container_id)

    shipments = list((await db.execute(
        select(Shipment)
        .where(Shipment.container_id == container.id)
        .order_by(Shipment.created_at, Shipment.id)
    )).scalars().all())
    if not shipments:
        raise ValidationFailedError(
            f"Container {container.container_number} has no shipments to invoice",
            error_code="NO_SHIPMENTS_IN_CONTAINER",
        )

    expense_total = await costs.total_expenses(db, container.id)
    shares: dict[str, Decimal] = {}
    if expense_total > 0:
        shares = dict(zip(
            (s.id for s in shipments),
            split_evenly(expense_total, len(shipments)),
        ))

    groups = group_by_customer(shipments)
    # Lock every customer up front, always in user_id order
    for user_id in sorted(groups):
        await lock_customer(db, user_id)

    result = GenerationResult()
    for user_id, customer_shipments in groups.items():
        existing = await _live_invoice(db, container.id, user_id)
        if existing:
            result.skipped.append(existing)
            continue

        for attempt in range(1, NUMBER_ATTEMPTS + 1):
            try:
                async with db.begin_nested():
                    invoice = await _create_customer_invoice(
                        db, container.id, user_id, customer_shipments,
                        shares, len(shipments), options, actor,
                    )
            except IntegrityError as exc:
                existing = await _live_invoice(db, container.id, user_id)
                if existing:
                    logger.info(
                        "Invoice for user %s on container %s was created concurrently",
                        user_id, container.id,
                    )
                    result.skipped.append(existing)
                elif attempt < NUMBER_ATTEMPTS:
                    # Another container took the same invoice number; draw a fresh one
                    logger.warning(
                        "Invoice number collision for user %s on container %s (attempt %d/%d)",
                        user_id, container.id, attempt, NUMBER_ATTEMPTS,
                        extra={"container_id": container.id, "user_id": user_id},
                    )
                    continue
                else:
                    logger.error(
                        "Invoice generation failed for user %s on container %s: %s",
                        user_id, container.id, exc,
                        extra={"container_id": container.id, "user_id": user_id},
                        exc_info=True,
                    )
                    result.failed.append({"user_id": user_id, "error": "INTEGRITY_ERROR", "message": str(exc.orig)})
            except (FreightLedgerException, SQLAlchemyError) as exc:
                code = getattr(exc, "error_code", type(exc).__name__)
                logger.error(
                    "Invoice generation failed for user %s on container %s: %s",
                    user_id, container.id, exc,
                    extra={"container_id": container.id, "user_id": user_id, "error_code": code},
                    exc_info=True,
                )
                result.failed.append({"user_id": user_id, "error": code, "message": str(exc)})
            else:
                result.created.append(invoice)
            break

    if result.created:
        log_container_event(
            db, container.id, actor,
            action=AuditAction.INVOICES_GENERATED,
            description=f"Generated {len(result.created)} invoice(s)",
            details={
                "invoiceNumbers": [inv.invoice_number for inv in result.created],
                "skipped": len(result.skipped),
                "failed": len(result.failed),
            },
        )

    logger.info(
        "Invoice generation for %s: %d new, %d skipped, %d failed",
        container.container_number,
        len(result.created), len(result.skipped), len(result.failed),
        extra={"container_id": container.id},
    )

    if options.send_email and notifier:
        for invoice in result.created:
            await notifier(invoice)

    return result


# ── Maintenance ──────────────────────────────────────────────

async def get_invoice(db: AsyncSession, invoice_id: str, *, for_update: bool = False) -> UserInvoice:
    stmt = select(UserInvoice).where(UserInvoice.id == invoice_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt.execution_options(populate_existing=True))
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise ResourceNotFoundError("Invoice", invoice_id)
    return invoice


async def list_invoices(
    db: AsyncSession,
    *,
    user_id: str | None = None,
    container_id: str | None = None,
    status: InvoiceStatus | None = None,
) -> list[UserInvoice]:
    stmt = select(UserInvoice)
    if user_id:
        stmt = stmt.where(UserInvoice.user_id == user_id)
    if container_id:
        stmt = stmt.where(UserInvoice.container_id == container_id)
    if status:
        stmt = stmt.where(UserInvoice.status == status.value)
    result = await db.execute(stmt.order_by(UserInvoice.created_at.desc(), UserInvoice.invoice_number.desc()))
    return list(result.scalars().all())


async def update_invoice(db: AsyncSession, invoice_id: str, changes: dict, actor: str) -> UserInvoice:
    """Apply an operator edit, keeping the ledger in step with the total.

    `changes` holds only the fields the caller sent.  A change in total is
    posted as an adjustment entry; cancelling credits the remaining total.
    """
    invoice = await get_invoice(db, invoice_id, for_update=True)

    lock = get_invoice_locks(invoice).check_update(set(changes))
    if lock:
        raise ConflictError(
            f"{lock.reason}. {lock.unlock_hint}",
            error_code="INVOICE_LOCKED",
            details={"field": lock.field, "blockerRef": lock.blocker_ref},
        )

    await lock_customer(db, invoice.user_id)

    if "discount" in changes or "tax" in changes:
        for name in ("discount", "tax"):
            if name in changes and changes[name] is None:
                raise ValidationFailedError(
                    f"{name.capitalize()} cannot be null; send 0 to clear it",
                    error_code="INVALID_AMOUNT",
                    details={"field": name},
                )
        discount =to_money(changes.get("discount", invoice.discount))
        tax = to_money(changes.get("tax", invoice.tax))
        if discount < 0 or tax < 0:
            raise ValidationFailedError("Discount and tax cannot be negative", error_code="INVALID_AMOUNT")
        new_total = to_money(to_money(invoice.subtotal) - discount + tax)
        if new_total < 0:
            raise ValidationFailedError(
                f"Discount exceeds invoice subtotal {invoice.subtotal}",
                error_code="INVALID_AMOUNT",
            )
        delta = new_total - to_money(invoice.total)
        invoice.discount, invoice.tax, invoice.total = discount, tax, new_total
        await ledger.post_invoice_adjustment(db, invoice, delta, actor)

    for name in ("due_date", "payment_method", "payment_reference", "notes", "paid_date"):
        if name in changes:
            setattr(invoice, name, changes[name])

    new_status = changes.get("status")
    if new_status:
        new_status = InvoiceStatus(new_status).value
    if new_status and new_status != invoice.status:
        old_status = invoice.status
        invoice.status = new_status
        if new_status == InvoiceStatus.CANCELLED.value:
            await ledger.post_invoice_adjustment(
                db, invoice, -to_money(invoice.total), actor,
                description=f"Cancellation of {invoice.invoice_number}",
            )
        elif new_status == InvoiceStatus.PAID.value and not invoice.paid_date:
            invoice.paid_date = date.today()
        logger.info(
            "Invoice %s status %s → %s", invoice.invoice_number, old_status, new_status,
            extra={"invoice_id": invoice.id, "actor": actor},
        )

    await db.flush()
    return await get_invoice(db, invoice.id)
