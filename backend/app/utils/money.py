"""Fixed-point money helpers.

All monetary values in the engine are `Decimal` quantized to cents.  Floats
are only accepted at the edges and are converted through `str()` so that
0.1 stays 0.10 rather than 0.1000000000000000055.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Coerce `value` to a cent-precision Decimal (None → 0.00)."""
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    if not isinstance(value, Decimal):
        value = Decimal(value)
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_cents(value) -> int:
    return int(to_money(value) * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def line_amount(quantity, unit_price) -> Decimal:
    """amount = quantity × unit_price, rounded to money precision."""
    return to_money(Decimal(quantity) * to_money(unit_price))


def percent_of(amount, pct) -> Decimal:
    return to_money(to_money(amount) * Decimal(str(pct)) / Decimal(100))


def split_evenly(total, parts: int) -> list[Decimal]:
    """Split `total` into `parts` shares that add back up to `total` exactly.

    Works in integer cents; the leftover cents go one each to the first
    shares, so 101.01 over two vehicles is [50.51, 50.50].
    """
    if parts < 1:
        raise ValueError("parts must be >= 1")
    cents = to_cents(total)
    base, remainder = divmod(abs(cents), parts)
    sign = -1 if cents < 0 else 1
    return [
        from_cents(sign * (base + (1 if i < remainder else 0)))
        for i in range(parts)
    ]


def money_sum(values) -> Decimal:
    return to_money(sum((to_money(v) for v in values), ZERO))
