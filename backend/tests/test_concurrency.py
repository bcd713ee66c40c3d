"""
Deadline and concurrent-writer tests.

Verifies:
- a post that runs past the request deadline returns 500 Transient and
  writes nothing
- two sales of the same product at the same warehouse serialize: the later
  one sees the earlier decrement or fails with InsufficientStock
"""

import threading
import time

import pytest

from smartstock import create_app
from smartstock.errors import InsufficientStock
from smartstock.extensions import db
from smartstock.models import InventoryAlert, ProductStock, PurchaseHeader, SaleHeader, StockMovement
from smartstock.services import alert_service, catalog_service, ledger_service, sales_service, stock_service


def row_counts():
    return tuple(
        db.session.query(model).count()
        for model in (PurchaseHeader, SaleHeader, StockMovement, InventoryAlert, ProductStock)
    )


class TestRequestDeadline:
    def test_post_past_deadline_is_transient_and_writes_nothing(
        self, app, client, manager_headers, monkeypatch, supplier, warehouse, product
    ):
        real_evaluate = alert_service.evaluate

        def slow_evaluate(product):
            time.sleep(0.05)
            return real_evaluate(product)

        monkeypatch.setattr(alert_service, "evaluate", slow_evaluate)
        monkeypatch.setitem(app.config, "REQUEST_DEADLINE_MS", 1)

        before = row_counts()
        resp = client.post(
            "/api/purchases",
            json={
                "supplier_id": supplier.id,
                "warehouse_id": warehouse.id,
                "items": [{"product_id": product.id, "quantity": 3, "unit_cost": "10.00"}],
            },
            headers=manager_headers,
        )

        assert resp.status_code == 500
        assert resp.json["success"] is False
        assert resp.json["error"] == "Transient"
        assert row_counts() == before
        assert ledger_service.position(product.id, warehouse.id) == 0


@pytest.fixture
def file_app(tmp_path):
    """App on a file-backed SQLite database so several connections share it."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'PASSWORD_HASH_COST': 4,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.engine.dispose()


class TestConcurrentSales:
    def test_same_position_sales_observe_each_other(self, file_app):
        with file_app.app_context():
            warehouse = catalog_service.create_entity("warehouse", {"name": "Main Warehouse"})
            product = catalog_service.create_product({
                "code": "C1",
                "name": "Contended",
                "cost_price": "10.00",
                "selling_price": "15.00",
                "reorder_level": 1,
            })
            stock_service.post_adjustment(product_id=product.id, warehouse_id=warehouse.id, delta=5)
            product_id, warehouse_id = product.id, warehouse.id

        barrier = threading.Barrier(2)
        outcomes = []
        errors = []

        def sell():
            with file_app.app_context():
                barrier.wait()
                try:
                    sales_service.post_sale(
                        warehouse_id=warehouse_id,
                        lines=[{"product_id": product_id, "quantity": 3}],
                    )
                    outcomes.append("posted")
                except InsufficientStock as exc:
                    outcomes.append(("short", exc.have, exc.want))
                except Exception as exc:
                    errors.append(exc)

        workers = [threading.Thread(target=sell) for _ in range(2)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=30)

        assert errors == []
        assert sorted(outcomes, key=str) == [("short", 2, 3), "posted"]

        with file_app.app_context():
            assert ledger_service.position(product_id, warehouse_id) == 2
            assert ledger_service.verify_positions() == []
            assert db.session.query(StockMovement).filter_by(kind="SALE_OUT").count() == 1
            assert db.session.query(SaleHeader).count() == 1
