from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

ALERT_KINDS = ("LOW_STOCK", "OUT_OF_STOCK")


class InventoryAlert(db.Model):
    """
    Reorder / out-of-stock alert.

    At most one open (resolved_at IS NULL) alert per (product, kind); the
    partial unique index backs the pre-insert check in alert_service.
    Resolution is monotonic: a resolved alert is never reopened.
    """
    __tablename__ = "inventory_alerts"
    __table_args__ = (
        db.CheckConstraint("kind IN ('LOW_STOCK', 'OUT_OF_STOCK')", name="ck_inventory_alerts_kind"),
        db.Index(
            "uq_inventory_alerts_open",
            "product_id",
            "kind",
            unique=True,
            sqlite_where=db.text("resolved_at IS NULL"),
            postgresql_where=db.text("resolved_at IS NULL"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    kind = db.Column(db.String(16), nullable=False)
    message = db.Column(db.String(255), nullable=False)

    observed_on_hand = db.Column(db.Integer, nullable=False)
    observed_reorder_level = db.Column(db.Integer, nullable=False)

    opened_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    resolved_at = db.Column(db.DateTime, nullable=True)
    resolved_by = db.Column(db.String(64), nullable=True)

    product = db.relationship("Product", backref=db.backref("alerts", lazy=True))

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "kind": self.kind,
            "message": self.message,
            "observed_on_hand": self.observed_on_hand,
            "observed_reorder_level": self.observed_reorder_level,
            "opened_at": to_utc_z(self.opened_at),
            "resolved_at": to_utc_z(self.resolved_at),
            "resolved_by": self.resolved_by,
            "is_resolved": self.resolved_at is not None,
        }
