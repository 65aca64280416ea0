"""Cross-cutting API behaviour: health, request timeouts, error shape, shipments."""

import asyncio
from decimal import Decimal

import pytest

from app.auth.deps import get_request_timeout
from app.config import settings
from app.database import run_bounded
from app.middleware.exceptions import StorageFailureError, ValidationFailedError
from app.models import PaymentStatus
from app.routers import health


@pytest.mark.api
@pytest.mark.asyncio
class TestHealth:

    async def test_liveness(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    async def test_readiness_with_database(self, client, monkeypatch, test_engine):
        monkeypatch.setattr(health, "engine", test_engine)
        resp = await client.get("/health/ready")
        assert resp.status_code == 200
        assert resp.json()["checks"]["database"] == "ok"


@pytest.mark.asyncio
class TestRequestTimeout:
    """Bounded units of work and the X-Request-Timeout header."""

    async def test_slow_work_fails_closed(self):
        with pytest.raises(StorageFailureError) as exc:
            await run_bounded(asyncio.sleep(1), 0.01, "sleepy")
        assert exc.value.error_code == "STORAGE_TIMEOUT"
        assert exc.value.status_code == 503

    async def test_fast_work_returns_result(self):
        async def work():
            return 42

        assert await run_bounded(work(), 1.0, "quick") == 42

    async def test_header_is_capped(self):
        assert await get_request_timeout("2.5") == 2.5
        assert await get_request_timeout("9999") == settings.storage_timeout_seconds
        assert await get_request_timeout(None) == settings.storage_timeout_seconds

    @pytest.mark.parametrize("raw", ["abc", "0", "-3", "nan", "inf", "-inf"])
    async def test_bad_header_values(self, raw):
        with pytest.raises(ValidationFailedError) as exc:
            await get_request_timeout(raw)
        assert exc.value.error_code == "INVALID_TIMEOUT"

    @pytest.mark.api
    async def test_bad_header_over_http(self, client):
        resp = await client.get("/api/containers", headers={"X-Request-Timeout": "soon"})
        assert resp.status_code == 400
        assert resp.json() == {
            "error": {
                "code": "INVALID_TIMEOUT",
                "message": "X-Request-Timeout must be a number of seconds, got 'soon'",
            }
        }

    @pytest.mark.api
    async def test_non_finite_header_over_http(self, client):
        resp = await client.get("/api/containers", headers={"X-Request-Timeout": "nan"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_TIMEOUT"


@pytest.mark.api
@pytest.mark.asyncio
class TestShipments:
    """POST/GET /api/shipments."""

    async def test_register_vehicle(self, client, make_user):
        user = await make_user()

        resp = await client.post("/api/shipments", json={
            "userId": user, "vehicleYear": 2017, "vehicleMake": "Nissan",
            "vehicleModel": "Altima", "vehicleVin": " 1n4al3ap7hc123456 ",
            "price": "4500.00", "insuranceValue": "120.00",
        })

        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["status"] == "ON_HAND"
        assert data["paymentStatus"] == "PENDING"
        assert data["vehicleVin"] == "1N4AL3AP7HC123456"
        assert Decimal(data["amountPaid"]) == Decimal("0")

    async def test_overlong_vin_is_a_shape_error(self, client, make_user):
        user = await make_user()
        resp = await client.post("/api/shipments", json={
            "userId": user, "vehicleVin": " 1N4AL3AP7HC1234567 ", "price": "100.00",
        })
        assert resp.status_code == 400
        assert resp.json()["error"]["details"]["errors"][0]["field"] == "vehicleVin"

    async def test_registering_posts_no_ledger_entry(self, client, make_user):
        user = await make_user()
        await client.post("/api/shipments", json={"userId": user, "price": "100.00"})

        ledger = (await client.get("/api/ledger", params={"userId": user})).json()
        assert ledger["total"] == 0
        assert Decimal(ledger["summary"]["currentBalance"]) == Decimal("0")

    async def test_unknown_customer(self, client):
        resp = await client.post("/api/shipments", json={"userId": "ghost", "price": "100.00"})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "USER_NOT_FOUND"

    async def test_negative_price_is_a_shape_error(self, client, make_user):
        user = await make_user()
        resp = await client.post("/api/shipments", json={"userId": user, "price": "-1.00"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_list_filters(self, client, make_user, make_shipment):
        u1 = await make_user("u1@example.com")
        u2 = await make_user("u2@example.com")
        await make_shipment(u1)
        await make_shipment(u2)
        await make_shipment(u2, payment_status=PaymentStatus.COMPLETED)

        mine = (await client.get("/api/shipments", params={"userId": u2})).json()
        assert mine["total"] == 2

        unpaid = (await client.get(
            "/api/shipments", params={"userId": u2, "paymentStatus": "PENDING"},
        )).json()
        assert unpaid["total"] == 1

    async def test_unknown_route_uses_error_shape(self, client):
        resp = await client.get("/api/nowhere")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "HTTP_404"
