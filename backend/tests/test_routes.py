"""HTTP surface tests via the Flask test client."""

from decimal import Decimal

import pytest

from costledger.extensions import db
from costledger.models import OutboxMessage, Product

ACTOR = {"X-Actor-Id": "user-7"}


def _create(client, **payload):
    resp = client.post("/api/products", json=payload, headers=ACTOR)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["product"]


@pytest.fixture
def tibs(client):
    return _create(client, name="Tibs", type="combination", cost_price="8.00",
                   selling_price="12.00", current_quantity=25)


def test_health(client):
    resp = client.get("/api/health")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["details"]["pending_outbox_messages"] == 0


def test_write_requires_actor(client):
    resp = client.post("/api/products", json={"name": "Tea", "type": "sellable", "selling_price": "3"})

    assert resp.status_code == 401
    assert resp.get_json()["error"]["kind"] == "Unauthenticated"


def test_product_roundtrip_serializes_decimals_as_strings(client, tibs):
    resp = client.get(f"/api/products/{tibs['id']}")

    assert resp.status_code == 200
    product = resp.get_json()["product"]
    assert product["current_quantity"] == "25"
    assert product["selling_price"] == "12.00"
    assert product["cost_allocation"]["inventory_percentage"] == "100"

    listing = client.get("/api/products?type=combination").get_json()
    assert listing["count"] == 1


def test_unknown_product_is_404(client, db_session):
    resp = client.get("/api/products/404")

    assert resp.status_code == 404
    assert resp.get_json()["error"]["kind"] == "ProductNotFound"


def test_sale_flow(client, tibs):
    resp = client.post(
        "/api/sales",
        json={"items": [{"product_id": tibs["id"], "quantity": 5}], "payment_method": "Telebirr"},
        headers=ACTOR,
    )

    assert resp.status_code == 201
    sale = resp.get_json()["sale"]
    assert sale["total_amount"] == "60.00"
    assert sale["actor_id"] == "user-7"
    assert sale["items"][0]["unit_price"] == "12.00"

    assert client.get(f"/api/sales/{sale['id']}").get_json()["sale"]["id"] == sale["id"]
    assert client.get("/api/sales").get_json()["pagination"]["total"] == 1
    assert client.get("/api/sales/999").status_code == 404

    ledger = client.get(f"/api/inventory/ledger?product_id={tibs['id']}&kind=sale").get_json()
    assert ledger["count"] == 1
    assert ledger["items"][0]["previous_quantity"] == "25"
    assert ledger["items"][0]["new_quantity"] == "20"


def test_insufficient_stock_is_409_with_details(client, tibs):
    resp = client.post(
        "/api/sales",
        json={"items": [{"product_id": tibs["id"], "quantity": 100}], "payment_method": "Cash"},
        headers=ACTOR,
    )

    assert resp.status_code == 409
    error = resp.get_json()["error"]
    assert error["kind"] == "InsufficientStock"
    assert error["details"] == {"product_id": tibs["id"], "available": "25", "requested": "100"}
    assert "Available: 25, Requested: 100" in error["message"]


def test_sale_validation_errors_are_400(client, tibs):
    resp = client.post("/api/sales", json={"items": [], "payment_method": "Cash"}, headers=ACTOR)
    assert resp.status_code == 400
    assert resp.get_json()["error"]["kind"] == "ValidationError"

    resp = client.post("/api/sales", data="not json", content_type="text/plain", headers=ACTOR)
    assert resp.status_code == 400


def test_inventory_movements(client, tibs):
    resp = client.post("/api/inventory/usage", json={"product_id": tibs["id"], "quantity": "2.5"}, headers=ACTOR)
    assert resp.status_code == 201
    assert resp.get_json()["product"]["current_quantity"] == "22.5"

    resp = client.post("/api/inventory/addition", json={"product_id": tibs["id"], "quantity": 10}, headers=ACTOR)
    assert resp.get_json()["entry"]["new_quantity"] == "32.5"

    resp = client.post("/api/inventory/adjustment",
                       json={"product_id": tibs["id"], "new_quantity": 30}, headers=ACTOR)
    assert resp.status_code == 400

    resp = client.post("/api/inventory/adjustment",
                       json={"product_id": tibs["id"], "new_quantity": 30, "reason": "Count"}, headers=ACTOR)
    assert resp.status_code == 201
    assert resp.get_json()["entry"]["quantity_delta"] == "-2.5"

    resp = client.post("/api/inventory/usage", json={"product_id": "x", "quantity": 1}, headers=ACTOR)
    assert resp.status_code == 400

    history = client.get(f"/api/inventory/ledger/{tibs['id']}/history").get_json()
    assert [h["kind"] for h in history["items"]] == ["addition", "usage", "addition", "adjustment"]
    assert [h["quantity"] for h in history["items"]] == ["25", "22.5", "32.5", "30"]
    assert history["items"][1]["delta"] == "-2.5"

    assert client.get("/api/inventory/ledger/9999/history").status_code == 404


def test_low_stock_listing(client):
    _create(client, name="Salt", type="stock", cost_price="1", current_quantity=1, min_stock_level=5)

    body = client.get("/api/inventory/low-stock").get_json()

    assert [p["name"] for p in body["items"]] == ["Salt"]


def test_allocation_and_prices(client, tibs):
    resp = client.put(
        f"/api/products/{tibs['id']}/allocation",
        json={"inventory_percentage": 60, "operational_percentage": 30, "overhead_percentage": 20},
        headers=ACTOR,
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"]["kind"] == "InvalidAllocation"

    resp = client.put(
        f"/api/products/{tibs['id']}/allocation",
        json={"inventory_percentage": 50, "operational_percentage": 30, "overhead_percentage": 20},
        headers=ACTOR,
    )
    assert resp.status_code == 200
    assert resp.get_json()["product"]["cost_allocation"]["operational_percentage"] == "30"

    resp = client.patch(f"/api/products/{tibs['id']}/prices", json={"cost_price": "9.00"}, headers=ACTOR)
    assert resp.status_code == 200
    history = client.get(f"/api/products/{tibs['id']}/cost-history").get_json()
    assert [h["cost_price"] for h in history["items"]] == ["9.00", "8.00"]
    assert history["items"][0]["actor_id"] == "user-7"


def test_cost_endpoints(client, tibs):
    resp = client.post(
        "/api/costs/operations",
        json={"description": "Gas", "amount": "100.00", "category": "operational",
              "expense_type": "utilities", "incurred_at": "2026-03-02T08:00:00Z"},
        headers=ACTOR,
    )
    assert resp.status_code == 201
    assert resp.get_json()["operation"]["amount"] == "100.00"

    cost = client.get(f"/api/products/{tibs['id']}/cost").get_json()["cost"]
    assert Decimal(cost["operational_cost"]) == Decimal("100")
    assert Decimal(cost["total_cost"]) == Decimal("300")

    margins = client.get("/api/costs/profit-margins").get_json()["items"]
    assert margins[0]["product_id"] == tibs["id"]

    summary = client.get("/api/costs/summary?start=2026-03-01&end=2026-03-31").get_json()
    assert summary["total_operational_costs"] == "100.00"
    assert summary["monthly_breakdown"][0]["label"] == "March 2026"

    assert client.get("/api/costs/summary?start=yesterday").status_code == 400

    ops = client.get("/api/costs/operations?category=operational").get_json()
    assert ops["count"] == 1

    expenses = client.get("/api/costs/expenses/summary").get_json()["items"]
    assert expenses[0]["total_amount"] == "200.00"


def test_product_expenses_listing(client, tibs):
    client.patch(f"/api/products/{tibs['id']}/prices", json={"cost_price": "9.00", "reason": "Supplier"},
                 headers=ACTOR)

    body = client.get(f"/api/costs/expenses?product_id={tibs['id']}").get_json()

    assert body["count"] == 2
    assert [e["total_amount"] for e in body["items"]] == ["225.00", "200.00"]
    assert body["items"][0]["previous_cost_price"] == "8.00"

    assert client.get("/api/costs/expenses").status_code == 400
    assert client.get("/api/costs/expenses?product_id=9999").status_code == 404


def test_delete_product_in_use_is_409(client, tibs):
    resp = client.delete(f"/api/products/{tibs['id']}", headers=ACTOR)

    assert resp.status_code == 409
    assert resp.get_json()["error"]["kind"] == "ProductInUse"
    assert db.session.get(Product, tibs["id"]) is not None


def test_health_reports_outbox_backlog(client, db_session):
    db_session.add(OutboxMessage(topic="cost_expense.record", payload={}, status="PENDING",
                                 attempts=0, created_at=db.func.now()))
    db_session.commit()

    body = client.get("/api/health").get_json()

    assert body["checks"]["database"]["details"]["pending_outbox_messages"] == 1


def test_date_only_end_bound_covers_whole_day(client, db_session):
    for incurred_at in ("2026-03-31T18:00:00Z", "2026-04-01T00:00:00Z"):
        resp = client.post(
            "/api/costs/operations",
            json={"description": "Cleaning", "amount": "25", "category": "overhead", "incurred_at": incurred_at},
            headers=ACTOR,
        )
        assert resp.status_code == 201

    summary = client.get("/api/costs/summary?start=2026-03-01&end=2026-03-31").get_json()

    assert summary["total_overhead_costs"] == "25"
    assert summary["end"] == "2026-03-31T23:59:59Z"
