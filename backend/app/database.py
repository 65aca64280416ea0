"""Database engine, session factory, and declarative base.

Every service function receives the session explicitly; nothing in the
engine reaches for a global client.  `get_db()` is the FastAPI dependency
that opens one transaction per request, commits on success and rolls back
on any error so a failed request never leaves partial ledger state behind.

`run_bounded()` wraps a unit of work with the caller-supplied timeout.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

logger = logging.getLogger("freightledger.database")

T = TypeVar("T")

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=20,
    max_overflow=10,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """Declarative base for all billing and ledger tables."""
    pass


async def get_db() -> AsyncSession:
    """Yield a session wrapped in a single request transaction."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def run_bounded(work: Awaitable[T], timeout: float | None, operation: str) -> T:
    """Await `work`, failing closed with STORAGE_TIMEOUT once `timeout` elapses.

    The timed-out coroutine is cancelled; the enclosing `get_db()` then rolls
    the request transaction back, so nothing it wrote becomes visible.
    """
    from app.middleware.exceptions import StorageFailureError  # deferred to avoid circular

    if timeout is None or timeout <= 0:
        timeout = settings.storage_timeout_seconds
    try:
        return await asyncio.wait_for(work, timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(
            "Operation %s exceeded %.1fs and was aborted", operation, timeout,
            extra={"operation": operation, "timeout": timeout},
        )
        raise StorageFailureError(
            f"{operation} did not complete within {timeout:g}s",
            error_code="STORAGE_TIMEOUT",
        )
