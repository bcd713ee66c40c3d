from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..validation import format_cents

MOVEMENT_KINDS = ("PURCHASE_IN", "SALE_OUT", "ADJUSTMENT")


class ProductStock(db.Model):
    """
    Materialized on-hand quantity per (product, warehouse).

    The ledger (stock_movements) is the source of truth; this row always
    equals the fold of its movements at every commit. Created lazily on
    first movement, never deleted.
    """
    __tablename__ = "product_stocks"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse_id", name="uq_product_stocks_product_warehouse"),
        db.CheckConstraint("on_hand >= 0", name="ck_product_stocks_on_hand_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    on_hand = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", backref=db.backref("stocks", lazy=True))
    warehouse = db.relationship("Warehouse", backref=db.backref("stocks", lazy=True))

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "warehouse_name": self.warehouse.name if self.warehouse else None,
            "on_hand": self.on_hand,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only ledger entry.

    delta > 0 for PURCHASE_IN, delta < 0 for SALE_OUT, any non-zero delta for
    ADJUSTMENT. Rows are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("delta <> 0", name="ck_stock_movements_delta_nonzero"),
        db.CheckConstraint(
            "kind IN ('PURCHASE_IN', 'SALE_OUT', 'ADJUSTMENT')",
            name="ck_stock_movements_kind",
        ),
        db.CheckConstraint(
            "(kind <> 'PURCHASE_IN' OR delta > 0) AND (kind <> 'SALE_OUT' OR delta < 0)",
            name="ck_stock_movements_sign_kind",
        ),
        db.Index("ix_stock_movements_product_warehouse_occurred", "product_id", "warehouse_id", "occurred_at"),
        db.Index("ix_stock_movements_kind_occurred", "kind", "occurred_at"),
        db.Index("ix_stock_movements_document", "document_kind", "document_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    delta = db.Column(db.Integer, nullable=False)
    kind = db.Column(db.String(16), nullable=False)

    # Document reference: PURCHASE / SALE / None for standalone adjustments
    document_kind = db.Column(db.String(16), nullable=True)
    document_id = db.Column(db.Integer, nullable=True)
    document_line_id = db.Column(db.Integer, nullable=True)

    unit_cost_snapshot_cents = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    product = db.relationship("Product")
    warehouse = db.relationship("Warehouse")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "delta": self.delta,
            "kind": self.kind,
            "document_ref": {
                "kind": self.document_kind,
                "id": self.document_id,
                "line_id": self.document_line_id,
            } if self.document_kind else None,
            "unit_cost_snapshot": format_cents(self.unit_cost_snapshot_cents),
            "notes": self.notes,
            "occurred_at": to_utc_z(self.occurred_at),
            "actor_user_id": self.actor_user_id,
        }
