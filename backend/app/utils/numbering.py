"""Shared number generation utility.

Format tokens:
  {year}       → YYYY of the issue date
  {date}       → YYYYMMDD of the issue date
  {seq:N}      → zero-padded sequence number, N digits, counted per prefix

Default formats:
  user_invoice:       INV-{year}-{seq:4}      (settings.invoice_number_format)
  container_invoice:  CINV-{date}-{seq:3}

The sequence continues from the highest existing code with the same prefix,
so cancelled invoices keep their numbers and are never reused.  Uniqueness
is ultimately guaranteed by the unique index on the code column.
"""

import re
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.container_invoice import ContainerInvoice
from app.models.user_invoice import UserInvoice

DEFAULT_FORMATS = {
    "user_invoice": settings.invoice_number_format,
    "container_invoice": "CINV-{date}-{seq:3}",
}

# Map entity types to the model column holding the code
ENTITY_COLUMN_MAP = {
    "user_invoice": UserInvoice.invoice_number,
    "container_invoice": ContainerInvoice.invoice_number,
}

_SEQ_RE = re.compile(r"\{seq:(\d+)\}")


def _fill_dates(fmt: str, today: date) -> str:
    return fmt.replace("{year}", today.strftime("%Y")).replace("{date}", today.strftime("%Y%m%d"))


def _split_format(fmt: str, today: date) -> tuple[str, int, str]:
    """Split a format into (prefix, sequence width, suffix)."""
    filled = _fill_dates(fmt, today)
    match = _SEQ_RE.search(filled)
    if not match:
        return filled, 3, ""
    return filled[:match.start()], int(match.group(1)), filled[match.end():]


async def _last_sequence(
    db: AsyncSession, entity: str, prefix: str, width: int, suffix: str,
) -> int:
    """Highest sequence already issued for this prefix (0 when none)."""
    column = ENTITY_COLUMN_MAP[entity]
    result = await db.execute(
        select(func.max(column)).where(
            column.like(f"{prefix}%{suffix}"),
            func.length(column) == len(prefix) + width + len(suffix),
        )
    )
    last = result.scalar()
    if not last:
        return 0
    digits = last[len(prefix):len(prefix) + width]
    return int(digits) if digits.isdigit() else 0


async def generate_code(
    db: AsyncSession,
    entity: str,
    today: date | None = None,
) -> str:
    """Generate the next sequential code for `entity`.

    Args:
        db: Database session
        entity: One of "user_invoice", "container_invoice"
        today: Issue date used for {year}/{date} (defaults to today)

    Returns:
        Generated code string, e.g. "INV-2026-0007"
    """
    prefix, width, suffix = _split_format(DEFAULT_FORMATS[entity], today or date.today())
    seq_num = await _last_sequence(db, entity, prefix, width, suffix) + 1
    return f"{prefix}{seq_num:0{width}d}{suffix}"
