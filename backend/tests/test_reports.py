"""Due-aging and financial report tests."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from app.models import PaymentStatus
from app.services import reports

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0)


@pytest.mark.unit
@pytest.mark.parametrize("age,bucket", [
    (0, "current"), (30, "current"),
    (31, "aging30"), (60, "aging30"),
    (61, "aging60"), (90, "aging60"),
    (91, "aging90"), (400, "aging90"),
])
def test_bucket_boundaries(age, bucket):
    assert reports.bucket_for(age) == bucket


@pytest.mark.integration
@pytest.mark.asyncio
class TestDueAging:

    async def test_outstanding_dues_by_age(self, db_session, make_user, make_shipment):
        user = await make_user()
        for days, price in [(5, "100.00"), (45, "200.00"), (75, "300.00"), (120, "400.00")]:
            await make_shipment(user, price, created_at=BASE_TIME - timedelta(days=days))
        await make_shipment(
            user, "999.00", created_at=BASE_TIME - timedelta(days=5),
            payment_status=PaymentStatus.COMPLETED,
        )

        report = await reports.due_aging(db_session, now=BASE_TIME)

        totals = {b["key"]: (b["count"], b["total"]) for b in report["buckets"]}
        assert totals == {
            "current": (1, Decimal("100.00")),
            "aging30": (1, Decimal("200.00")),
            "aging60": (1, Decimal("300.00")),
            "aging90": (1, Decimal("400.00")),
        }
        assert report["total_shipments"] == 4
        assert report["total_amount_due"] == Decimal("1000.00")
        assert report["buckets"][3]["shipments"][0]["age_in_days"] == 120

    async def test_partial_payments_reduce_the_due(self, client, make_user, make_shipment):
        user = await make_user()
        shipment = await make_shipment(user, "500.00", created_at=datetime.utcnow() - timedelta(days=2))
        await client.post("/api/ledger/payment", json={
            "userId": user, "shipmentIds": [shipment], "amount": "120.00",
        })

        resp = await client.get("/api/reports/due-aging", params={"userId": user})

        assert resp.status_code == 200
        data = resp.json()
        current = data["buckets"][0]
        assert current["key"] == "current"
        assert current["count"] == 1
        assert Decimal(current["shipments"][0]["amountDue"]) == Decimal("380")
        assert Decimal(data["totalAmountDue"]) == Decimal("380")

    async def test_filter_by_customer(self, client, make_user, make_shipment):
        u1 = await make_user("u1@example.com")
        u2 = await make_user("u2@example.com")
        await make_shipment(u1, "100.00", created_at=datetime.utcnow())
        await make_shipment(u2, "900.00", created_at=datetime.utcnow())

        data = (await client.get("/api/reports/due-aging", params={"userId": u2})).json()

        assert data["totalShipments"] == 1
        assert Decimal(data["totalAmountDue"]) == Decimal("900")


@pytest.fixture
def billed_customers(client, make_user, make_container, make_shipment):
    """Ann owes 700 of a 1000 invoice; Bob paid his 200 in full."""
    async def _setup():
        ann = await make_user("ann@example.com", "Ann")
        bob = await make_user("bob@example.com", "Bob")
        container = await make_container()
        ann_car = await make_shipment(ann, "1000.00", container_id=container)
        bob_car = await make_shipment(bob, "200.00", container_id=container)
        resp = await client.post("/api/invoices/generate", json={"containerId": container})
        assert resp.status_code == 200, resp.text
        for user, car, amount in [(ann, ann_car, "300.00"), (bob, bob_car, "200.00")]:
            resp = await client.post("/api/ledger/payment", json={
                "userId": user, "shipmentIds": [car], "amount": amount,
            })
            assert resp.status_code == 201, resp.text
        return ann, bob

    return _setup


@pytest.mark.api
@pytest.mark.asyncio
class TestFinancialReport:
    """GET /api/reports/financial."""

    async def test_summary(self, client, billed_customers):
        ann, bob = await billed_customers()

        resp = await client.get("/api/reports/financial", params={"type": "summary"})

        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["type"] == "summary"
        ledger = data["ledgerSummary"]
        assert Decimal(ledger["totalDebit"]) == Decimal("1200")
        assert Decimal(ledger["totalCredit"]) == Decimal("500")
        assert Decimal(ledger["netBalance"]) == Decimal("700")
        assert (ledger["debitCount"], ledger["creditCount"]) == (2, 2)

        by_status = {s["paymentStatus"]: (s["count"], Decimal(s["totalAmount"])) for s in data["shipmentSummary"]}
        assert by_status == {"COMPLETED": (1, Decimal("200")), "PENDING": (1, Decimal("1000"))}

        balances = {b["userId"]: (b["userName"], Decimal(b["currentBalance"])) for b in data["userBalances"]}
        assert balances == {ann: ("Ann", Decimal("700")), bob: ("Bob", Decimal("0"))}
        assert "users" not in data

    async def test_summary_is_the_default_type(self, client, billed_customers):
        await billed_customers()
        data = (await client.get("/api/reports/financial")).json()
        assert data["type"] == "summary"

    async def test_user_wise(self, client, billed_customers):
        ann, bob = await billed_customers()

        resp = await client.get("/api/reports/financial", params={"type": "user-wise"})

        assert resp.status_code == 200, resp.text
        users = resp.json()["users"]
        assert [u["userId"] for u in users] == [ann, bob]
        first = users[0]
        assert first["email"] == "ann@example.com"
        assert Decimal(first["totalDebit"]) == Decimal("1000")
        assert Decimal(first["totalCredit"]) == Decimal("300")
        assert Decimal(first["currentBalance"]) == Decimal("700")
        assert first["shipmentStats"] == {"total": 1, "paid": 0, "due": 1}
        assert users[1]["shipmentStats"] == {"total": 1, "paid": 1, "due": 0}
        assert Decimal(users[1]["currentBalance"]) == Decimal("0")

    async def test_filter_by_customer(self, client, billed_customers):
        ann, _ = await billed_customers()

        data = (await client.get("/api/reports/financial", params={"type": "user-wise", "userId": ann})).json()
        summary = (await client.get("/api/reports/financial", params={"userId": ann})).json()

        assert [u["userId"] for u in data["users"]] == [ann]
        assert Decimal(summary["ledgerSummary"]["totalDebit"]) == Decimal("1000")
        assert [b["userId"] for b in summary["userBalances"]] == [ann]

    async def test_period_filters_totals_but_not_balances(self, client, billed_customers):
        ann, _ = await billed_customers()
        tomorrow = (datetime.utcnow() + timedelta(days=1)).date().isoformat()

        data = (await client.get(
            "/api/reports/financial", params={"startDate": tomorrow, "endDate": tomorrow},
        )).json()

        assert data["period"] == {"startDate": tomorrow, "endDate": tomorrow}
        assert Decimal(data["ledgerSummary"]["totalDebit"]) == Decimal("0")
        assert data["ledgerSummary"]["debitCount"] == 0
        assert data["shipmentSummary"] == []
        balances = {b["userId"]: Decimal(b["currentBalance"]) for b in data["userBalances"]}
        assert balances[ann] == Decimal("700")

    async def test_unknown_type_is_rejected(self, client):
        resp = await client.get("/api/reports/financial", params={"type": "monthly"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_REPORT_TYPE"

    async def test_reversed_period_is_rejected(self, client):
        resp = await client.get(
            "/api/reports/financial",
            params={"startDate": date(2026, 3, 1).isoformat(), "endDate": date(2026, 2, 1).isoformat()},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_DATE_RANGE"

    async def test_unknown_customer(self, client):
        resp = await client.get("/api/reports/financial", params={"userId": "missing"})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "USER_NOT_FOUND"
