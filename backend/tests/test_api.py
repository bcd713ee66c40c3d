"""
End-to-end HTTP scenarios.

Drives the JSON API the way the browser UI does: purchase, sell through the
reorder threshold, sell to zero, oversell, duplicate invoice, dead stock.
"""

from datetime import timedelta

from smartstock.extensions import db
from smartstock.models import InventoryAlert, SaleHeader, StockMovement
from smartstock.services import ledger_service
from smartstock.time_utils import to_utc_z, utcnow

from conftest import make_product


def row_counts():
    return (
        db.session.query(SaleHeader).count(),
        db.session.query(StockMovement).count(),
        db.session.query(InventoryAlert).count(),
    )


class TestScenarios:
    def _purchase(self, client, headers, supplier, warehouse, product, quantity, **extra):
        body = {
            "supplier_id": supplier.id,
            "warehouse_id": warehouse.id,
            "items": [{"product_id": product.id, "quantity": quantity, "unit_cost": "10.00"}],
        }
        body.update(extra)
        return client.post("/api/purchases", json=body, headers=headers)

    def _sell(self, client, headers, customer, warehouse, product, quantity, **extra):
        body = {
            "customer_id": customer.id,
            "warehouse_id": warehouse.id,
            "items": [{"product_id": product.id, "quantity": quantity}],
        }
        body.update(extra)
        return client.post("/api/sales", json=body, headers=headers)

    def _unresolved(self, client, headers):
        return client.get("/api/alerts?status=unresolved", headers=headers).json

    def test_purchase_sell_through_threshold_to_zero(self, client, manager_headers, supplier, warehouse, product, customer):
        # Purchase then sale
        resp = self._purchase(client, manager_headers, supplier, warehouse, product, 10)
        assert resp.status_code == 201
        assert resp.json["data"]["total_cost"] == "100.00"
        assert ledger_service.position(product.id, warehouse.id) == 10
        assert db.session.query(StockMovement).filter_by(kind="PURCHASE_IN").count() == 1
        assert self._unresolved(client, manager_headers)["data"] == []

        resp = self._sell(client, manager_headers, customer, warehouse, product, 3)
        assert resp.status_code == 201
        assert resp.json["data"]["items"][0]["unit_price"] == "15.00"
        assert resp.json["data"]["customer_name"] == "Walk-in Wholesale"
        assert ledger_service.position(product.id, warehouse.id) == 7
        assert self._unresolved(client, manager_headers)["data"] == []

        # Sale crosses reorder threshold
        resp = self._sell(client, manager_headers, customer, warehouse, product, 3)
        assert resp.status_code == 201
        assert ledger_service.position(product.id, warehouse.id) == 4
        alerts = self._unresolved(client, manager_headers)["data"]
        assert [(a["kind"], a["product_id"]) for a in alerts] == [("LOW_STOCK", product.id)]

        # Sale to zero
        resp = self._sell(client, manager_headers, customer, warehouse, product, 4)
        assert resp.status_code == 201
        assert ledger_service.position(product.id, warehouse.id) == 0
        listing = self._unresolved(client, manager_headers)
        assert len(listing["data"]) == 1
        assert listing["data"][0]["kind"] == "OUT_OF_STOCK"
        assert listing["data"][0]["urgency"] == "CRITICAL"
        assert listing["summary"]["critical_count"] == 1

        # Insufficient stock
        before = row_counts()
        resp = self._sell(client, manager_headers, customer, warehouse, product, 1)
        assert resp.status_code == 409
        assert resp.json["error"] == "InsufficientStock"
        assert resp.json["details"]["have"] == 0
        assert resp.json["details"]["want"] == 1
        db.session.expire_all()
        assert row_counts() == before
        assert ledger_service.position(product.id, warehouse.id) == 0

    def test_duplicate_invoice(self, client, manager_headers, supplier, warehouse, product, customer):
        self._purchase(client, manager_headers, supplier, warehouse, product, 10)

        first = self._sell(client, manager_headers, customer, warehouse, product, 1, invoice_number="INV-1")
        assert first.status_code == 201
        before = row_counts()

        second = self._sell(client, manager_headers, customer, warehouse, product, 1, invoice_number="INV-1")
        assert second.status_code == 409
        assert second.json["error"] == "Conflict"
        db.session.expire_all()
        assert row_counts() == before
        assert ledger_service.position(product.id, warehouse.id) == 9

    def test_dead_stock_horizon(self, client, manager_headers, supplier, warehouse, category):
        q = make_product("Q1", reorder_level=2, category=category, supplier=supplier)
        resp = self._purchase(
            client, manager_headers, supplier, warehouse, q, 5,
            occurred_at=to_utc_z(utcnow() - timedelta(days=200)),
        )
        assert resp.status_code == 201

        for days in (90, 365):
            resp = client.get(f"/api/products/dead-stock?days={days}", headers=manager_headers)
            assert resp.status_code == 200
            [row] = resp.json["data"]
            assert row["code"] == "Q1"
            assert row["days_since_last_sale"] == "Never Sold"
            assert row["dead_stock_value"] == "50.00"

        # 5 > reorder level 2
        low = client.get("/api/products/low-stock", headers=manager_headers).json
        assert low["data"] == []
        assert low["summary"]["total_products"] == 0

    def test_dead_stock_days_validated(self, client, manager_headers):
        resp = client.get("/api/products/dead-stock?days=0", headers=manager_headers)
        assert resp.status_code == 400
        assert resp.json["details"]["field"] == "days"


class TestDocumentsApi:
    def test_line_validation_names_the_field(self, client, manager_headers, warehouse, product):
        resp = client.post(
            "/api/sales",
            json={"warehouse_id": warehouse.id, "items": [{"product_id": product.id, "quantity": -2}]},
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert resp.json["error"] == "ValidationFailed"
        assert resp.json["details"]["field"] == "lines[0].quantity"

    def test_unknown_warehouse_is_404(self, client, manager_headers, product, supplier):
        resp = client.post(
            "/api/purchases",
            json={
                "supplier_id": supplier.id,
                "warehouse_id": 999,
                "items": [{"product_id": product.id, "quantity": 1, "unit_cost": "1.00"}],
            },
            headers=manager_headers,
        )
        assert resp.status_code == 404
        assert resp.json["details"] == {"which": "warehouse", "id": 999}

    def test_cancel_and_list_summary(self, client, manager_headers, supplier, warehouse, product, customer):
        client.post(
            "/api/purchases",
            json={
                "supplier_id": supplier.id,
                "warehouse_id": warehouse.id,
                "items": [{"product_id": product.id, "quantity": 10, "unit_cost": "10.00"}],
            },
            headers=manager_headers,
        )
        sale = client.post(
            "/api/sales",
            json={
                "customer_id": customer.id,
                "warehouse_id": warehouse.id,
                "items": [{"product_id": product.id, "quantity": 2, "unit_price": "12.50"}],
            },
            headers=manager_headers,
        ).json["data"]
        client.post(
            "/api/sales",
            json={"warehouse_id": warehouse.id, "items": [{"product_id": product.id, "quantity": 1}]},
            headers=manager_headers,
        )

        resp = client.post(f"/api/sales/{sale['id']}/cancel", json={}, headers=manager_headers)
        assert resp.status_code == 201
        assert resp.json["data"]["compensates_id"] == sale["id"]

        again = client.post(f"/api/sales/{sale['id']}/cancel", json={}, headers=manager_headers)
        assert again.status_code == 409

        listing = client.get("/api/sales", headers=manager_headers).json
        assert listing["summary"] == {"total_sales": 1, "total_revenue": "15.00", "total_profit": "5.00"}
        cancelled = client.get("/api/sales?status=CANCELLED", headers=manager_headers).json["data"]
        assert [s["id"] for s in cancelled] == [sale["id"]]

        detail = client.get(f"/api/sales/{sale['id']}", headers=manager_headers).json["data"]
        assert detail["status"] == "CANCELLED"
        assert detail["items"][0]["profit"] == "5.00"

    def test_bad_list_limit(self, client, manager_headers):
        assert client.get("/api/sales?limit=0", headers=manager_headers).status_code == 400

    def test_ledger_paging(self, client, manager_headers, warehouse, product):
        for delta in (5, -1, -1):
            resp = client.post(
                "/api/stock/adjustments",
                json={"product_id": product.id, "warehouse_id": warehouse.id, "delta": delta},
                headers=manager_headers,
            )
            assert resp.status_code == 201

        page = client.get(f"/api/stock/ledger?product_id={product.id}&limit=2", headers=manager_headers).json
        assert [m["delta"] for m in page["data"]] == [5, -1]
        after = page["summary"]["next_after_id"]
        rest = client.get(
            f"/api/stock/ledger?product_id={product.id}&after_id={after}", headers=manager_headers
        ).json
        assert [m["delta"] for m in rest["data"]] == [-1]
        assert rest["summary"]["next_after_id"] is None

        positions = client.get(f"/api/stock/positions?product_id={product.id}", headers=manager_headers).json
        assert positions["data"][0]["total_on_hand"] == 3

    def test_ledger_requires_product(self, client, manager_headers):
        resp = client.get("/api/stock/ledger", headers=manager_headers)
        assert resp.status_code == 400

    def test_over_adjustment_is_409(self, client, manager_headers, warehouse, product):
        resp = client.post(
            "/api/stock/adjustments",
            json={"product_id": product.id, "warehouse_id": warehouse.id, "delta": -1},
            headers=manager_headers,
        )
        assert resp.status_code == 409
        assert resp.json["error"] == "InsufficientStock"


class TestCatalogApi:
    def test_product_crud(self, client, manager_headers, category):
        resp = client.post(
            "/api/products",
            json={"code": "NEW-1", "name": "New", "cost_price": "1.00", "selling_price": "2.00", "category_id": category.id},
            headers=manager_headers,
        )
        assert resp.status_code == 201
        product_id = resp.json["data"]["id"]
        assert resp.json["data"]["stock_status"] == "Out of Stock"

        dup = client.post(
            "/api/products",
            json={"code": "new-1", "name": "Dup", "cost_price": "1.00", "selling_price": "2.00"},
            headers=manager_headers,
        )
        assert dup.status_code == 409

        patched = client.patch(f"/api/products/{product_id}", json={"reorder_level": 3}, headers=manager_headers)
        assert patched.json["data"]["reorder_level"] == 3

        deleted = client.delete(f"/api/products/{product_id}", headers=manager_headers)
        assert deleted.json["data"]["is_active"] is False
        assert client.get("/api/products", headers=manager_headers).json["data"] == []

    def test_cheap_selling_price_rejected(self, client, manager_headers):
        resp = client.post(
            "/api/products",
            json={"code": "BAD", "name": "Bad", "cost_price": "5.00", "selling_price": "4.00"},
            headers=manager_headers,
        )
        assert resp.status_code == 400
        assert resp.json["details"]["field"] == "selling_price"

    def test_entity_routes(self, client, manager_headers):
        resp = client.post("/api/suppliers", json={"name": "Bolt Co", "email": "b@bolt.test"}, headers=manager_headers)
        assert resp.status_code == 201
        supplier_id = resp.json["data"]["id"]

        assert client.post("/api/suppliers", json={"name": "BOLT CO"}, headers=manager_headers).status_code == 409

        resp = client.patch(f"/api/suppliers/{supplier_id}", json={"is_active": False}, headers=manager_headers)
        assert resp.json["data"]["is_active"] is False

        listing = client.get("/api/suppliers", headers=manager_headers).json["data"]
        assert listing[0]["product_count"] == 0
        assert client.get("/api/suppliers/999", headers=manager_headers).status_code == 404

    def test_resolve_alert_via_api(self, client, manager_headers, warehouse, product):
        client.post(
            "/api/stock/adjustments",
            json={"product_id": product.id, "warehouse_id": warehouse.id, "delta": 2},
            headers=manager_headers,
        )
        [alert] = client.get("/api/alerts", headers=manager_headers).json["data"]

        resp = client.patch("/api/alerts", json={"alertId": alert["id"]}, headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["data"]["resolved_by"] == "manager"

        again = client.patch("/api/alerts", json={"alertId": alert["id"], "resolvedBy": "other"}, headers=manager_headers)
        assert again.json["data"]["resolved_by"] == "manager"

        assert client.patch("/api/alerts", json={}, headers=manager_headers).status_code == 400
        assert client.get("/api/alerts", headers=manager_headers).json["data"] == []

    def test_analytics_routes(self, client, manager_headers):
        assert client.get("/api/analytics/dashboard?year=2026&month=2", headers=manager_headers).status_code == 200
        assert client.get("/api/analytics/dashboard?year=2021&week=53", headers=manager_headers).status_code == 400
        assert client.get("/api/analytics/monthly-sales?year=2026", headers=manager_headers).status_code == 200
        assert client.get("/api/analytics/supplier-performance", headers=manager_headers).status_code == 200
