from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..validation import format_cents

DOCUMENT_STATUSES = ("DRAFT", "POSTED", "CANCELLED")


class PurchaseHeader(db.Model):
    """
    Purchase (stock-in) document header.

    LIFECYCLE:
    Documents are posted in one step (DRAFT is reserved). Posted documents
    are never rewritten: cancellation posts a compensating document
    (compensates_id -> original) and flips the original to CANCELLED with
    cancelled_by_id -> compensator.
    """
    __tablename__ = "purchase_headers"
    __table_args__ = (
        db.CheckConstraint("status IN ('DRAFT', 'POSTED', 'CANCELLED')", name="ck_purchase_headers_status"),
        db.Index("ix_purchase_headers_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reference_number = db.Column(db.String(64), nullable=False, unique=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="POSTED")
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    compensates_id = db.Column(db.Integer, db.ForeignKey("purchase_headers.id"), nullable=True)
    cancelled_by_id = db.Column(db.Integer, db.ForeignKey("purchase_headers.id"), nullable=True)

    supplier = db.relationship("Supplier")
    warehouse = db.relationship("Warehouse")
    created_by = db.relationship("User")
    items = db.relationship(
        "PurchaseItem",
        backref="purchase",
        lazy=True,
        order_by="PurchaseItem.line_no",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "reference_number": self.reference_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "warehouse_id": self.warehouse_id,
            "warehouse_name": self.warehouse.name if self.warehouse else None,
            "status": self.status,
            "total_cost": format_cents(self.total_cost_cents),
            "notes": self.notes,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "created_by_user_id": self.created_by_user_id,
            "created_by": self.created_by.full_name if self.created_by else None,
            "compensates_id": self.compensates_id,
            "cancelled_by_id": self.cancelled_by_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseItem(db.Model):
    __tablename__ = "purchase_items"
    __table_args__ = (
        db.UniqueConstraint("purchase_id", "line_no", name="uq_purchase_items_line"),
        db.CheckConstraint("quantity > 0", name="ck_purchase_items_quantity_pos"),
        db.CheckConstraint("unit_cost_cents >= 0", name="ck_purchase_items_unit_cost_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchase_headers.id"), nullable=False, index=True)
    line_no = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_no": self.line_no,
            "product_id": self.product_id,
            "product_code": self.product.code if self.product else None,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_cost": format_cents(self.unit_cost_cents),
            "line_total": format_cents(self.line_total_cents),
            "notes": self.notes,
        }


class SaleHeader(db.Model):
    """
    Sale (stock-out) document header.

    customer_id is nullable for walk-in sales. Same cancellation model as
    PurchaseHeader.
    """
    __tablename__ = "sale_headers"
    __table_args__ = (
        db.CheckConstraint("status IN ('DRAFT', 'POSTED', 'CANCELLED')", name="ck_sale_headers_status"),
        db.Index("ix_sale_headers_occurred", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="POSTED")
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    compensates_id = db.Column(db.Integer, db.ForeignKey("sale_headers.id"), nullable=True)
    cancelled_by_id = db.Column(db.Integer, db.ForeignKey("sale_headers.id"), nullable=True)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    warehouse = db.relationship("Warehouse")
    created_by = db.relationship("User")
    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        order_by="SaleItem.line_no",
    )

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "warehouse_id": self.warehouse_id,
            "warehouse_name": self.warehouse.name if self.warehouse else None,
            "status": self.status,
            "total_amount": format_cents(self.total_amount_cents),
            "notes": self.notes,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "created_by_user_id": self.created_by_user_id,
            "created_by": self.created_by.full_name if self.created_by else None,
            "compensates_id": self.compensates_id,
            "cancelled_by_id": self.cancelled_by_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    __tablename__ = "sale_items"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_no", name="uq_sale_items_line"),
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_pos"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_sale_items_unit_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sale_headers.id"), nullable=False, index=True)
    line_no = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    # Product cost_price at posting time (COGS basis)
    unit_cost_snapshot_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    @property
    def profit_cents(self) -> int:
        return self.line_total_cents - self.quantity * self.unit_cost_snapshot_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_no": self.line_no,
            "product_id": self.product_id,
            "product_code": self.product.code if self.product else None,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": format_cents(self.unit_price_cents),
            "line_total": format_cents(self.line_total_cents),
            "unit_cost_snapshot": format_cents(self.unit_cost_snapshot_cents),
            "profit": format_cents(self.profit_cents),
        }
