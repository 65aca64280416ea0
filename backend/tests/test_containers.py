"""Container lifecycle tests: numbering, progress, status side effects, costs."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import ContainerExpense, Shipment, ShipmentStatus
from app.services.container_lifecycle import normalize_container_number, normalize_progress
from app.middleware.exceptions import ValidationFailedError


async def _create(client, number: str = "MSCU1234567", **extra) -> dict:
    resp = await client.post("/api/containers", json={"containerNumber": number, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _register(client, user_id: str, price: str = "1000.00") -> str:
    resp = await client.post("/api/shipments", json={
        "userId": user_id, "vehicleYear": 2018, "vehicleMake": "Ford",
        "vehicleModel": "Focus", "price": price,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()["id"]


def _actions(detail: dict, action: str) -> list[dict]:
    return [a for a in detail["auditLogs"] if a["action"] == action]


@pytest.mark.unit
class TestNormalization:

    @pytest.mark.parametrize("raw", ["MSCU1234567", "mscu1234567", "MSCU 123 4567", "mscu-1234567"])
    def test_container_number_forms(self, raw):
        assert normalize_container_number(raw) == "MSCU1234567"

    @pytest.mark.parametrize("raw", ["MSC1234567", "MSCU123456", "1234MSCU567", ""])
    def test_container_number_rejects(self, raw):
        with pytest.raises(ValidationFailedError) as exc:
            normalize_container_number(raw)
        assert exc.value.error_code == "INVALID_CONTAINER_NUMBER"

    @pytest.mark.parametrize("value,current,expected", [
        (150, 10, 100),
        (-5, 10, 0),
        ("42", 10, 42),
        (55.6, 10, 56),
        ("abc", 10, 10),
        (None, 10, 10),
        (float("nan"), 10, 10),
        ("abc", None, 0),
    ])
    def test_progress(self, value, current, expected):
        assert normalize_progress(value, current) == expected


@pytest.mark.api
@pytest.mark.asyncio
class TestCreateContainer:
    """POST /api/containers."""

    async def test_number_is_normalized(self, client):
        data = await _create(client, "mscu 123-4567")

        assert data["containerNumber"] == "MSCU1234567"
        assert data["status"] == "CREATED"
        assert data["progress"] == 0
        assert data["maxCapacity"] == 4
        assert data["currentCount"] == 0
        assert data["createdBy"] == "operator-1"
        created = _actions(data, "CREATED")
        assert len(created) == 1
        assert created[0]["performedBy"] == "operator-1"

    async def test_invalid_number(self, client):
        resp = await client.post("/api/containers", json={"containerNumber": "ABCD12345XY"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_CONTAINER_NUMBER"

    async def test_duplicate_number(self, client):
        await _create(client, "MSCU1234567")
        resp = await client.post("/api/containers", json={"containerNumber": "mscu-1234567"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "DUPLICATE_CONTAINER_NUMBER"

    async def test_progress_is_clamped_on_create(self, client):
        data = await _create(client, progress=150)
        assert data["progress"] == 100

    async def test_metadata_is_stored(self, client):
        data = await _create(
            client, vesselName="MSC Aurora", loadingPort="Baltimore",
            destinationPort="Lagos", transshipmentPorts=["Algeciras"],
        )
        assert data["vesselName"] == "MSC Aurora"
        assert data["transshipmentPorts"] == ["Algeciras"]


@pytest.mark.api
@pytest.mark.asyncio
class TestUpdateContainer:
    """PATCH /api/containers/{id}."""

    async def test_progress_garbage_keeps_last_value(self, client):
        container = await _create(client, progress=30)

        resp = await client.patch(f"/api/containers/{container['id']}", json={"progress": "abc"})
        assert resp.json()["progress"] == 30

        resp = await client.patch(f"/api/containers/{container['id']}", json={"progress": -5})
        assert resp.json()["progress"] == 0

    async def test_status_change_is_audited(self, client):
        container = await _create(client)

        resp = await client.patch(
            f"/api/containers/{container['id']}",
            json={"status": "WAITING_FOR_LOADING"},
            headers={"X-User-Id": "dispatcher-7"},
        )

        assert resp.status_code == 200
        changes = _actions(resp.json(), "STATUS_CHANGE")
        assert len(changes) == 1
        assert changes[0]["oldValue"] == "CREATED"
        assert changes[0]["newValue"] == "WAITING_FOR_LOADING"
        assert changes[0]["performedBy"] == "dispatcher-7"

    async def test_same_status_is_not_audited(self, client):
        container = await _create(client)
        await client.patch(f"/api/containers/{container['id']}", json={"status": "LOADED"})

        resp = await client.patch(f"/api/containers/{container['id']}", json={"status": "LOADED"})

        assert len(_actions(resp.json(), "STATUS_CHANGE")) == 1

    async def test_eta_change_is_audited(self, client):
        container = await _create(client)

        resp = await client.patch(
            f"/api/containers/{container['id']}",
            json={"estimatedArrival": "2026-03-01T10:00:00+02:00"},
        )

        data = resp.json()
        assert data["estimatedArrival"] == "2026-03-01T08:00:00"
        eta = _actions(data, "ETA_UPDATED")
        assert len(eta) == 1
        assert eta[0]["oldValue"] is None
        assert eta[0]["newValue"] == "2026-03-01T08:00:00"

    async def test_capacity_cannot_drop_below_load(
        self, client, make_user, make_container, make_shipment,
    ):
        user = await make_user()
        container = await make_container()
        await make_shipment(user, container_id=container)
        await make_shipment(user, container_id=container)

        resp = await client.patch(f"/api/containers/{container}", json={"maxCapacity": 1})

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "CONTAINER_CAPACITY_EXCEEDED"

    async def test_released_generates_invoices(
        self, client, make_user, make_container, make_shipment, make_expense,
    ):
        user = await make_user()
        container = await make_container()
        await make_shipment(user, "1000.00", container_id=container)
        await make_expense(container, "200.00")

        resp = await client.patch(f"/api/containers/{container}", json={"status": "RELEASED"})

        assert resp.status_code == 200, resp.text
        invoices = resp.json()["userInvoices"]
        assert len(invoices) == 1
        assert Decimal(invoices[0]["total"]) == Decimal("1200")
        assert _actions(resp.json(), "INVOICES_GENERATED")
        ledger = (await client.get("/api/ledger", params={"userId": user})).json()
        assert Decimal(ledger["summary"]["currentBalance"]) == Decimal("1200")

    async def test_closed_releases_shipments_without_reinvoicing(
        self, client, db_session: AsyncSession, make_user, make_container, make_shipment,
    ):
        user = await make_user()
        container = await make_container()
        shipment = await make_shipment(user, "1000.00", container_id=container)
        await client.patch(f"/api/containers/{container}", json={"status": "RELEASED"})

        resp = await client.patch(f"/api/containers/{container}", json={"status": "CLOSED"})

        data = resp.json()
        assert data["status"] == "CLOSED"
        assert data["shipments"] == []
        assert data["currentCount"] == 0
        assert len(data["userInvoices"]) == 1
        assert _actions(data, "SHIPMENTS_RELEASED")

        row = (await db_session.execute(select(Shipment).where(Shipment.id == shipment))).scalar_one()
        assert row.status == ShipmentStatus.DELIVERED.value
        assert row.container_id is None
        ledger = (await client.get("/api/ledger", params={"userId": user})).json()
        assert ledger["total"] == 1

    async def test_unknown_container(self, client):
        resp = await client.patch("/api/containers/missing", json={"progress": 10})
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "CONTAINER_NOT_FOUND"


@pytest.mark.api
@pytest.mark.asyncio
class TestContainerShipments:
    """Assigning and removing shipments."""

    async def test_assign_moves_shipments_in_transit(self, client, make_user):
        user = await make_user()
        container = await _create(client)
        ids = [await _register(client, user), await _register(client, user)]

        resp = await client.post(f"/api/containers/{container['id']}/shipments", json={"shipmentIds": ids})

        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["currentCount"] == 2
        assert {s["id"] for s in data["shipments"]} == set(ids)
        assert {s["status"] for s in data["shipments"]} == {"IN_TRANSIT"}

    async def test_capacity_is_enforced(self, client, make_user):
        user = await make_user()
        container = await _create(client, maxCapacity=2)
        ids = [await _register(client, user) for _ in range(3)]

        resp = await client.post(f"/api/containers/{container['id']}/shipments", json={"shipmentIds": ids})

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "CONTAINER_CAPACITY_EXCEEDED"
        detail = (await client.get(f"/api/containers/{container['id']}")).json()
        assert detail["currentCount"] == 0

    async def test_closed_container_rejects_shipments(self, client, make_user):
        user = await make_user()
        container = await _create(client)
        await client.patch(f"/api/containers/{container['id']}", json={"status": "CLOSED"})
        shipment = await _register(client, user)

        resp = await client.post(
            f"/api/containers/{container['id']}/shipments", json={"shipmentIds": [shipment]},
        )

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "CONTAINER_CLOSED"

    async def test_loaded_shipment_is_not_available(self, client, make_user):
        user = await make_user()
        first = await _create(client, "MSCU1111111")
        second = await _create(client, "MSCU2222222")
        shipment = await _register(client, user)
        await client.post(f"/api/containers/{first['id']}/shipments", json={"shipmentIds": [shipment]})

        resp = await client.post(
            f"/api/containers/{second['id']}/shipments", json={"shipmentIds": [shipment]},
        )

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "SHIPMENT_NOT_AVAILABLE"

    async def test_remove_returns_shipment_on_hand(self, client, make_user):
        user = await make_user()
        container = await _create(client)
        shipment = await _register(client, user)
        await client.post(f"/api/containers/{container['id']}/shipments", json={"shipmentIds": [shipment]})

        resp = await client.delete(f"/api/containers/{container['id']}/shipments/{shipment}")

        assert resp.status_code == 200
        assert resp.json()["currentCount"] == 0
        listed = (await client.get("/api/shipments", params={"userId": user})).json()
        assert listed["items"][0]["status"] == "ON_HAND"
        assert listed["items"][0]["containerId"] is None


@pytest.mark.api
@pytest.mark.asyncio
class TestDeleteContainer:
    """DELETE /api/containers/{id}."""

    async def test_container_with_shipments_is_kept(self, client, make_user):
        user = await make_user()
        container = await _create(client)
        shipment = await _register(client, user)
        await client.post(f"/api/containers/{container['id']}/shipments", json={"shipmentIds": [shipment]})

        resp = await client.delete(f"/api/containers/{container['id']}")

        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "CONTAINER_HAS_SHIPMENTS"
        assert (await client.get(f"/api/containers/{container['id']}")).status_code == 200

    async def test_delete_after_removing_shipments(self, client, db_session: AsyncSession, make_user):
        user = await make_user()
        container = await _create(client)
        shipment = await _register(client, user)
        await client.post(f"/api/containers/{container['id']}/shipments", json={"shipmentIds": [shipment]})
        await client.post(f"/api/containers/{container['id']}/expenses", json={"type": "Port", "amount": "80.00"})
        await client.delete(f"/api/containers/{container['id']}/shipments/{shipment}")

        resp = await client.delete(f"/api/containers/{container['id']}")

        assert resp.status_code == 200
        assert resp.json() == {"id": container["id"], "containerNumber": container["containerNumber"], "deleted": True}
        expenses = (await db_session.execute(
            select(func.count(ContainerExpense.id)).where(ContainerExpense.container_id == container["id"])
        )).scalar()
        assert expenses == 0
        missing = await client.get(f"/api/containers/{container['id']}")
        assert missing.status_code == 404


@pytest.mark.api
@pytest.mark.asyncio
class TestContainerCosts:
    """Expenses, container invoices and derived totals."""

    async def test_totals_and_net_profit(self, client):
        container = await _create(client)
        cid = container["id"]

        await client.post(f"/api/containers/{cid}/expenses", json={"type": "Shipping", "amount": "1200.00"})
        await client.post(f"/api/containers/{cid}/expenses", json={"type": "Customs", "amount": "300.00"})
        resp = await client.post(f"/api/containers/{cid}/invoices", json={"amount": "2000.00"})
        assert resp.status_code == 201
        assert resp.json()["invoiceNumber"].startswith("CINV-")
        assert resp.json()["status"] == "PENDING"

        totals = (await client.get(f"/api/containers/{cid}")).json()["totals"]
        assert Decimal(totals["expenses"]) == Decimal("1500")
        assert Decimal(totals["invoices"]) == Decimal("2000")
        assert Decimal(totals["netProfit"]) == Decimal("500")

    async def test_removing_expense_updates_totals(self, client):
        cid = (await _create(client))["id"]
        expense = (await client.post(
            f"/api/containers/{cid}/expenses", json={"type": "Shipping", "amount": "100.00"},
        )).json()

        resp = await client.delete(f"/api/containers/{cid}/expenses/{expense['id']}")

        assert resp.status_code == 204
        detail = (await client.get(f"/api/containers/{cid}")).json()
        assert Decimal(detail["totals"]["expenses"]) == Decimal("0")
        assert _actions(detail, "EXPENSE_REMOVED")
        assert (await client.get(f"/api/containers/{cid}/expenses")).json() == []

    async def test_expense_amount_must_be_positive(self, client):
        cid = (await _create(client))["id"]
        resp = await client.post(f"/api/containers/{cid}/expenses", json={"type": "Shipping", "amount": "0"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "INVALID_AMOUNT"

    async def test_unknown_expense(self, client):
        cid = (await _create(client))["id"]
        resp = await client.delete(f"/api/containers/{cid}/expenses/missing")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "EXPENSE_NOT_FOUND"


@pytest.mark.api
@pytest.mark.asyncio
class TestTrackingAndDocuments:

    async def test_tracking_event_moves_container(self, client):
        cid = (await _create(client))["id"]

        resp = await client.post(f"/api/containers/{cid}/tracking", json={
            "status": "Departed", "location": "Rotterdam",
            "containerStatus": "IN_TRANSIT", "progress": 40,
        })

        assert resp.status_code == 201, resp.text
        assert resp.json()["source"] == "MANUAL"
        detail = (await client.get(f"/api/containers/{cid}")).json()
        assert detail["status"] == "IN_TRANSIT"
        assert detail["progress"] == 40
        assert detail["currentLocation"] == "Rotterdam"
        assert len(detail["trackingEvents"]) == 1
        assert _actions(detail, "STATUS_CHANGE")[0]["newValue"] == "IN_TRANSIT"

    async def test_document_metadata(self, client):
        cid = (await _create(client))["id"]

        resp = await client.post(f"/api/containers/{cid}/documents", json={
            "documentType": "BILL_OF_LADING", "name": "BL-7781.pdf",
            "fileUrl": "https://files.example.com/bl-7781.pdf", "fileSize": 20480,
        })

        assert resp.status_code == 201
        assert resp.json()["uploadedBy"] == "operator-1"
        detail = (await client.get(f"/api/containers/{cid}")).json()
        assert [d["name"] for d in detail["documents"]] == ["BL-7781.pdf"]


@pytest.mark.api
@pytest.mark.asyncio
class TestListContainers:
    """GET /api/containers."""

    async def test_filters(self, client):
        await _create(client, "MSCU1111111")
        second = await _create(client, "MAEU2222222")
        await client.patch(f"/api/containers/{second['id']}", json={"status": "IN_TRANSIT"})

        in_transit = (await client.get("/api/containers", params={"status": "IN_TRANSIT"})).json()
        assert [c["containerNumber"] for c in in_transit["items"]] == ["MAEU2222222"]

        found = (await client.get("/api/containers", params={"search": "MSCU"})).json()
        assert found["total"] == 1
        assert found["items"][0]["containerNumber"] == "MSCU1111111"

    async def test_unknown_container(self, client):
        resp = await client.get("/api/containers/missing")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "CONTAINER_NOT_FOUND"
