"""FastAPI dependencies for caller identity and per-request limits.

Authentication happens upstream; the gateway forwards the authenticated
operator id in ``X-User-Id``.  The engine only records it as the actor on
audit rows, invoices and ledger entries.

Dependencies:
  get_actor            → operator id for audit trails ("system" when absent)
  get_request_timeout  → seconds allowed for the unit of work
"""

import math

from fastapi import Header

from app.config import settings
from app.middleware.exceptions import ValidationFailedError

SYSTEM_ACTOR = "system"


async def get_actor(x_user_id: str | None = Header(None)) -> str:
    actor = (x_user_id or "").strip()
    return actor[:36] or SYSTEM_ACTOR


async def get_request_timeout(x_request_timeout: str | None = Header(None)) -> float:
    """Caller-supplied timeout, capped at the configured maximum."""
    if x_request_timeout is None:
        return settings.storage_timeout_seconds
    try:
        timeout = float(x_request_timeout)
    except ValueError:
        raise ValidationFailedError(
            f"X-Request-Timeout must be a number of seconds, got '{x_request_timeout}'",
            error_code="INVALID_TIMEOUT",
        )
    if not math.isfinite(timeout) or timeout <= 0:
        raise ValidationFailedError("X-Request-Timeout must be a positive, finite number", error_code="INVALID_TIMEOUT")
    return min(timeout, settings.storage_timeout_seconds)
