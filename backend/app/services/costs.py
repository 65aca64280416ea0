"""Container cost aggregation and the records that feed it.

Totals are computed on demand from the expense and container-invoice rows;
nothing is cached, so they are always consistent with what is stored.

    totals.expenses   = Σ expense.amount
    totals.invoices   = Σ container_invoice.amount
    totals.net_profit = invoices − expenses
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.middleware.exceptions import ResourceNotFoundError, ValidationFailedError
from app.models.audit_log import AuditAction
from app.models.container_invoice import ContainerInvoice
from app.models.expense import ContainerExpense
from app.utils.activity import log_container_event
from app.utils.locks import lock_container
from app.utils.money import to_money
from app.utils.numbering import generate_code

logger = logging.getLogger("freightledger.costs")


@dataclass
class ContainerTotals:
    expenses: Decimal
    invoices: Decimal

    @property
    def net_profit(self) -> Decimal:
        return to_money(self.invoices - self.expenses)


async def total_expenses(db: AsyncSession, container_id: str) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(ContainerExpense.amount), 0))
        .where(ContainerExpense.container_id == container_id)
    )
    return to_money(result.scalar())


async def total_invoiced(db: AsyncSession, container_id: str) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(ContainerInvoice.amount), 0))
        .where(ContainerInvoice.container_id == container_id)
    )
    return to_money(result.scalar())


async def container_totals(db: AsyncSession, container_id: str) -> ContainerTotals:
    return ContainerTotals(
        expenses=await total_expenses(db, container_id),
        invoices=await total_invoiced(db, container_id),
    )


def _positive_amount(value) -> Decimal:
    amount = to_money(value)
    if amount <= 0:
        raise ValidationFailedError(
            f"Amount must be greater than zero, got {amount}",
            error_code="INVALID_AMOUNT",
        )
    return amount


# ── Expenses ─────────────────────────────────────────────────

async def add_expense(db: AsyncSession, container_id: str, data: dict, actor: str) -> ContainerExpense:
    container = await lock_container(db, container_id)
    amount = _positive_amount(data.get("amount"))

    expense = ContainerExpense(
        container_id=container.id,
        type=data["type"],
        amount=amount,
        currency=data.get("currency") or settings.default_currency,
        date=data.get("date") or datetime.utcnow(),
        vendor=data.get("vendor"),
        invoice_number=data.get("invoice_number"),
        notes=data.get("notes"),
    )
    db.add(expense)
    await db.flush()

    log_container_event(
        db, container.id, actor,
        action=AuditAction.EXPENSE_ADDED,
        description=f"{expense.type} expense of {amount} {expense.currency} added",
        new_value=str(amount),
        details={"expenseId": expense.id, "vendor": expense.vendor},
    )
    return expense


async def remove_expense(db: AsyncSession, container_id: str, expense_id: str, actor: str) -> None:
    container = await lock_container(db, container_id)
    result = await db.execute(
        select(ContainerExpense).where(
            ContainerExpense.id == expense_id,
            ContainerExpense.container_id == container.id,
        )
    )
    expense = result.scalar_one_or_none()
    if not expense:
        raise ResourceNotFoundError("Expense", expense_id)

    log_container_event(
        db, container.id, actor,
        action=AuditAction.EXPENSE_REMOVED,
        description=f"{expense.type} expense of {expense.amount} {expense.currency} removed",
        old_value=str(to_money(expense.amount)),
        details={"expenseId": expense.id},
    )
    await db.delete(expense)
    await db.flush()


async def list_expenses(db: AsyncSession, container_id: str) -> list[ContainerExpense]:
    result = await db.execute(
        select(ContainerExpense)
        .where(ContainerExpense.container_id == container_id)
        .order_by(ContainerExpense.date.desc())
    )
    return list(result.scalars().all())


# ── Container invoices (revenue) ─────────────────────────────

async def add_container_invoice(db: AsyncSession, container_id: str, data: dict, actor: str) -> ContainerInvoice:
    container = await lock_container(db, container_id)
    amount = _positive_amount(data.get("amount"))

    invoice = ContainerInvoice(
        container_id=container.id,
        invoice_number=data.get("invoice_number") or await generate_code(db, "container_invoice"),
        amount=amount,
        currency=data.get("currency") or settings.default_currency,
        vendor=data.get("vendor"),
        date=data.get("date") or datetime.utcnow(),
        due_date=data.get("due_date"),
        status=data.get("status") or "PENDING",
        notes=data.get("notes"),
    )
    db.add(invoice)
    await db.flush()

    log_container_event(
        db, container.id, actor,
        action=AuditAction.INVOICE_ADDED,
        description=f"Container invoice {invoice.invoice_number} for {amount} {invoice.currency} added",
        new_value=invoice.invoice_number,
        details={"containerInvoiceId": invoice.id},
    )
    logger.info(
        "Container invoice %s added to %s", invoice.invoice_number, container.container_number,
        extra={"container_id": container.id},
    )
    return invoice


async def list_container_invoices(db: AsyncSession, container_id: str) -> list[ContainerInvoice]:
    result = await db.execute(
        select(ContainerInvoice)
        .where(ContainerInvoice.container_id == container_id)
        .order_by(ContainerInvoice.date.desc())
    )
    return list(result.scalars().all())
