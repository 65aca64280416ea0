"""Pytest configuration and fixtures for FreightLedger tests.

Each test gets its own in-memory SQLite database (aiosqlite) with the
schema created from the ORM metadata, and an httpx client bound to the
FastAPI app with `get_db` overridden to use the same session.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.main import app
from app.models import (
    Container,
    ContainerExpense,
    ContainerStatus,
    PaymentStatus,
    Shipment,
    ShipmentStatus,
    User,
)

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0)


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINT works under pysqlite.
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Session shared by the test body and the app under test."""
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database dependency."""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-User-Id": "operator-1"},
    ) as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Data Factories ──────────────────────────────────────────
# Factories commit and return plain ids so tests never touch ORM state
# that a failed request may have expired.

@pytest.fixture
def make_user(db_session: AsyncSession):
    async def _make(email: str = "customer@example.com", name: str = "Customer") -> str:
        user = User(email=email, name=name, is_active=True)
        db_session.add(user)
        await db_session.commit()
        return user.id

    return _make


@pytest.fixture
def make_container(db_session: AsyncSession):
    async def _make(
        number: str = "MSCU1234567",
        status: ContainerStatus = ContainerStatus.CREATED,
        max_capacity: int = 4,
    ) -> str:
        container = Container(
            container_number=number,
            status=status.value,
            max_capacity=max_capacity,
            current_count=0,
            progress=0,
        )
        db_session.add(container)
        await db_session.commit()
        return container.id

    return _make


@pytest.fixture
def make_shipment(db_session: AsyncSession):
    """Create a shipment; `container_id` loads it (and bumps current_count)."""
    counter = {"n": 0}

    async def _make(
        user_id: str,
        price: str = "1000.00",
        *,
        insurance: str = "0.00",
        container_id: str | None = None,
        created_at: datetime | None = None,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        make: str = "Toyota",
        model: str = "Corolla",
    ) -> str:
        counter["n"] += 1
        shipment = Shipment(
            user_id=user_id,
            vehicle_year=2020,
            vehicle_make=make,
            vehicle_model=model,
            price=Decimal(price),
            insurance_value=Decimal(insurance),
            amount_paid=Decimal("0.00"),
            container_id=container_id,
            status=(ShipmentStatus.IN_TRANSIT if container_id else ShipmentStatus.ON_HAND).value,
            payment_status=payment_status.value,
            created_at=created_at or BASE_TIME + timedelta(minutes=counter["n"]),
        )
        db_session.add(shipment)
        if container_id:
            container = await db_session.get(Container, container_id)
            container.current_count += 1
        await db_session.commit()
        return shipment.id

    return _make


@pytest.fixture
def make_expense(db_session: AsyncSession):
    async def _make(container_id: str, amount: str, type_: str = "Shipping") -> str:
        expense = ContainerExpense(
            container_id=container_id,
            type=type_,
            amount=Decimal(amount),
            currency="USD",
        )
        db_session.add(expense)
        await db_session.commit()
        return expense.id

    return _make


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: API endpoint tests")
    config.addinivalue_line("markers", "slow: Slow tests")
