"""
Ledger and position tests.

Verifies:
- append() keeps product_stocks equal to the movement fold
- sign/kind rules and the no-negative-stock rule
- ledger reads are ordered and restartable
- verify/rebuild detect and repair drift
"""

from datetime import timedelta

import pytest

from smartstock.errors import CheckViolation, InsufficientStock, InvalidMovement, NotFound
from smartstock.extensions import db
from smartstock.models import ProductStock, StockMovement
from smartstock.services import ledger_service
from smartstock.services.concurrency import transaction
from smartstock.services.ledger_service import DocumentRef
from smartstock.time_utils import utcnow


def _append(product, warehouse, delta, kind="ADJUSTMENT", **kwargs):
    with transaction():
        return ledger_service.append(
            product_id=product.id,
            warehouse_id=warehouse.id,
            delta=delta,
            kind=kind,
            **kwargs,
        )


class TestAppend:
    def test_first_movement_creates_position(self, product, warehouse):
        _append(product, warehouse, 10, "PURCHASE_IN", doc_ref=DocumentRef("PURCHASE", 1, 1))

        assert ledger_service.position(product.id, warehouse.id) == 10
        assert db.session.query(ProductStock).count() == 1

    def test_positions_are_per_warehouse(self, product, warehouse, warehouse_b):
        _append(product, warehouse, 7, "PURCHASE_IN")
        _append(product, warehouse_b, 3, "PURCHASE_IN")
        _append(product, warehouse, -2, "SALE_OUT")

        assert ledger_service.position(product.id, warehouse.id) == 5
        assert ledger_service.position(product.id, warehouse_b.id) == 3
        assert ledger_service.total_on_hand(product.id) == 8

        rows = ledger_service.positions_for_product(product.id)
        assert [(r.warehouse_id, r.on_hand) for r in rows] == [(warehouse.id, 5), (warehouse_b.id, 3)]

    def test_position_of_unmoved_pair_is_zero(self, product, warehouse):
        assert ledger_service.position(product.id, warehouse.id) == 0
        assert ledger_service.total_on_hand(product.id) == 0
        assert ledger_service.positions_for_product(product.id) == []

    @pytest.mark.parametrize("kind,delta", [("PURCHASE_IN", -1), ("SALE_OUT", 1), ("ADJUSTMENT", 0)])
    def test_sign_must_match_kind(self, product, warehouse, kind, delta):
        with pytest.raises(InvalidMovement):
            _append(product, warehouse, delta, kind)
        assert db.session.query(StockMovement).count() == 0

    @pytest.mark.parametrize("kind,delta", [("PURCHASE_IN", -1), ("SALE_OUT", 1)])
    def test_store_rejects_sign_kind_mismatch(self, product, warehouse, kind, delta):
        with pytest.raises(CheckViolation):
            with transaction():
                db.session.add(StockMovement(
                    product_id=product.id,
                    warehouse_id=warehouse.id,
                    delta=delta,
                    kind=kind,
                ))
        assert db.session.query(StockMovement).count() == 0

    def test_unknown_kind_rejected(self, product, warehouse):
        with pytest.raises(InvalidMovement):
            _append(product, warehouse, 1, "TRANSFER")

    def test_cannot_go_negative(self, product, warehouse):
        _append(product, warehouse, 2, "PURCHASE_IN")

        with pytest.raises(InsufficientStock) as excinfo:
            _append(product, warehouse, -3, "SALE_OUT")

        assert excinfo.value.have == 2
        assert excinfo.value.want == 3
        assert ledger_service.position(product.id, warehouse.id) == 2
        assert db.session.query(StockMovement).count() == 1

    def test_negative_adjustment_limited_by_position(self, product, warehouse):
        with pytest.raises(InsufficientStock):
            _append(product, warehouse, -1, "ADJUSTMENT")

    def test_missing_warehouse(self, product):
        with pytest.raises(NotFound):
            with transaction():
                ledger_service.append(product_id=product.id, warehouse_id=9999, delta=1, kind="ADJUSTMENT")

    def test_movement_records_document_ref(self, product, warehouse):
        movement = _append(
            product, warehouse, 4, "PURCHASE_IN",
            doc_ref=DocumentRef("PURCHASE", 12, 34),
            unit_cost_snapshot_cents=1000,
        )
        data = movement.to_dict()
        assert data["document_ref"] == {"kind": "PURCHASE", "id": 12, "line_id": 34}
        assert data["unit_cost_snapshot"] == "10.00"


class TestLedgerReads:
    def test_ordered_by_occurred_then_id(self, product, warehouse):
        now = utcnow()
        late = _append(product, warehouse, 1, "PURCHASE_IN", occurred_at=now)
        early = _append(product, warehouse, 1, "PURCHASE_IN", occurred_at=now - timedelta(days=1))

        rows = ledger_service.ledger(product.id)
        assert [m.id for m in rows] == [early.id, late.id]

    def test_since_inclusive_until_exclusive(self, product, warehouse):
        now = utcnow().replace(microsecond=0)
        a = _append(product, warehouse, 1, "PURCHASE_IN", occurred_at=now - timedelta(hours=2))
        b = _append(product, warehouse, 1, "PURCHASE_IN", occurred_at=now - timedelta(hours=1))
        _append(product, warehouse, 1, "PURCHASE_IN", occurred_at=now)

        rows = ledger_service.ledger(product.id, since=a.occurred_at, until=now)
        assert [m.id for m in rows] == [a.id, b.id]

    def test_restartable_after_id(self, product, warehouse):
        ids = [_append(product, warehouse, 1, "PURCHASE_IN").id for _ in range(5)]

        first = ledger_service.ledger(product.id, limit=2)
        rest = ledger_service.ledger(product.id, after_id=first[-1].id)

        assert [m.id for m in first] + [m.id for m in rest] == ids

    def test_filter_by_warehouse(self, product, warehouse, warehouse_b):
        _append(product, warehouse, 1, "PURCHASE_IN")
        other = _append(product, warehouse_b, 2, "PURCHASE_IN")

        rows = ledger_service.ledger(product.id, warehouse_id=warehouse_b.id)
        assert [m.id for m in rows] == [other.id]


class TestVerifyAndRebuild:
    def test_consistent_store_verifies_clean(self, product, warehouse):
        _append(product, warehouse, 5, "PURCHASE_IN")
        _append(product, warehouse, -2, "SALE_OUT")
        assert ledger_service.verify_positions() == []

    def test_drift_detected_and_rebuilt(self, product, warehouse):
        _append(product, warehouse, 5, "PURCHASE_IN")
        position = db.session.query(ProductStock).one()
        position.on_hand = 42
        db.session.commit()

        mismatches = ledger_service.verify_positions()
        assert mismatches == [{
            "product_id": product.id,
            "warehouse_id": warehouse.id,
            "ledger_on_hand": 5,
            "position_on_hand": 42,
        }]

        with transaction():
            changed = ledger_service.rebuild_positions()

        assert changed == 1
        assert ledger_service.position(product.id, warehouse.id) == 5
        assert ledger_service.verify_positions() == []
