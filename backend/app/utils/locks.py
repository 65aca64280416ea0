"""Locking helpers for the billing engine.

Two kinds of lock live here:

Row locks — serialize writers on the same customer ledger or container:
    lock_customer(db, user_id)        SELECT ... FOR UPDATE on users
    lock_container(db, container_id)  SELECT ... FOR UPDATE on containers

Field locks — describe which invoice fields can no longer be edited and
why, without raising.  The caller decides whether to block the request
based on which fields are being updated.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import ResourceNotFoundError
from app.models.container import Container
from app.models.user import User
from app.models.user_invoice import InvoiceStatus, UserInvoice


# ── Row locks ──────────────────────────────────────────────────


async def lock_customer(db: AsyncSession, user_id: str) -> User:
    """Take the per-customer ledger lock and return the customer."""
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if not user:
        raise ResourceNotFoundError("User", user_id)
    return user


async def lock_container(db: AsyncSession, container_id: str) -> Container:
    """Take the per-container lock and return a freshly loaded container."""
    result = await db.execute(
        select(Container)
        .where(Container.id == container_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    container = result.scalar_one_or_none()
    if not container:
        raise ResourceNotFoundError("Container", container_id)
    return container

# ── Field locks ────────────────────────────────────────────────

# Invoice fields an operator may PATCH
INVOICE_AMOUNT_FIELDS = ("discount", "tax")
INVOICE_EDITABLE_FIELDS = (
    "status", "due_date", "paid_date", "payment_method",
    "payment_reference", "notes", *INVOICE_AMOUNT_FIELDS,
)


@dataclass
class FieldLock:
    field: str
    reason: str
    blocker_ref: str    # invoice number that holds the lock
    unlock_hint: str


@dataclass
class LockInfo:
    """Fields of one invoice that can no longer be edited."""
    locked_fields: dict[str, FieldLock] = field(default_factory=dict)

    def lock(self, names, *, reason: str, blocker_ref: str, unlock_hint: str) -> None:
        for name in names:
            self.locked_fields[name] = FieldLock(name, f"Cannot edit {name}: {reason}", blocker_ref, unlock_hint)

    def check_update(self, updating_fields: set[str]) -> FieldLock | None:
        """First locked field among `updating_fields` (alphabetical), or None."""
        blocked = sorted(updating_fields.intersection(self.locked_fields))
        return self.locked_fields[blocked[0]] if blocked else None


def get_invoice_locks(invoice: UserInvoice) -> LockInfo:
    """PAID freezes the amounts; CANCELLED freezes everything."""
    info = LockInfo()
    number = invoice.invoice_number
    if invoice.status == InvoiceStatus.CANCELLED.value:
        info.lock(
            INVOICE_EDITABLE_FIELDS,
            reason=f"invoice {number} is cancelled",
            blocker_ref=number,
            unlock_hint="Generate a new invoice for this container instead.",
        )
    elif invoice.status == InvoiceStatus.PAID.value:
        info.lock(
            INVOICE_AMOUNT_FIELDS,
            reason=f"invoice {number} is already paid",
            blocker_ref=number,
            unlock_hint="Post a manual ledger adjustment instead.",
        )
    return info
