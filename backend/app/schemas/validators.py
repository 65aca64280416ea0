"""Reusable Pydantic validators for billing input.

- Timestamps are stored as naive UTC; aware values are converted.
- Money fields must be finite and carry at most two decimal places.
"""

from datetime import datetime, timezone
from decimal import Decimal


def naive_utc(value: datetime | None) -> datetime | None:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def validate_money(value: Decimal | None) -> Decimal | None:
    """Reject NaN/infinity and sub-cent precision.

    Raises:
        ValueError: If the amount cannot be represented in cents
    """
    if value is None:
        return value
    if not value.is_finite():
        raise ValueError("Amount must be a finite number")
    if value != value.quantize(Decimal("0.01")):
        raise ValueError("Amount cannot have more than 2 decimal places")
    return value


def validate_percent(value: Decimal, upper: Decimal | None = None) -> Decimal:
    if not value.is_finite() or value < 0:
        raise ValueError("Percentage must be zero or positive")
    if upper is not None and value > upper:
        raise ValueError(f"Percentage cannot exceed {upper}")
    return value
