# Overview: Reorder and out-of-stock alert engine; opens and resolves alerts on stock transitions.

from __future__ import annotations

import logging

from sqlalchemy import func

from ..errors import NotFound, ValidationFailed
from ..extensions import db
from ..models import InventoryAlert, Product, ProductStock
from ..time_utils import utcnow
from .concurrency import flush, lock_for_update
from .ledger_service import total_on_hand

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

URGENCY_RANK = {"CRITICAL": 0, "HIGH": 1, "MEDIUM": 2}


def classify_urgency(on_hand: int, reorder_level: int) -> str:
    """CRITICAL at zero, HIGH at or below half the reorder level, else MEDIUM."""
    if on_hand <= 0:
        return "CRITICAL"
    if on_hand * 2 <= reorder_level:
        return "HIGH"
    return "MEDIUM"


def _open_alert(product_id: int, kind: str) -> InventoryAlert | None:
    return (
        db.session.query(InventoryAlert)
        .filter(
            InventoryAlert.product_id == product_id,
            InventoryAlert.kind == kind,
            InventoryAlert.resolved_at.is_(None),
        )
        .first()
    )


def _resolve(alert: InventoryAlert, actor: str) -> None:
    alert.resolved_at = utcnow()
    alert.resolved_by = actor
    logger.info("Resolved %s alert %s for product %s (by %s)", alert.kind, alert.id, alert.product_id, actor)


def _create(product: Product, kind: str, on_hand: int) -> InventoryAlert:
    if kind == "OUT_OF_STOCK":
        message = f"Product {product.code} is OUT OF STOCK"
    else:
        message = f"Product {product.code} at {on_hand} units, reorder level {product.reorder_level}"

    alert = InventoryAlert(
        product_id=product.id,
        kind=kind,
        message=message,
        observed_on_hand=on_hand,
        observed_reorder_level=product.reorder_level,
        opened_at=utcnow(),
    )
    db.session.add(alert)
    flush()
    logger.info("Opened %s alert %s for product %s", kind, alert.id, product.code)
    return alert


def evaluate(product: Product) -> list[InventoryAlert]:
    """
    Re-evaluate alerts for one product after a movement.

    Runs inside the caller's transaction with the product row already
    locked, so the "no open alert of this kind" check cannot race. Returns
    the alerts opened or resolved by this call.
    """
    on_hand = total_on_hand(product.id)
    reorder_level = product.reorder_level
    touched: list[InventoryAlert] = []

    low = _open_alert(product.id, "LOW_STOCK")
    out = _open_alert(product.id, "OUT_OF_STOCK")

    if on_hand == 0:
        if low is not None:
            _resolve(low, SYSTEM_ACTOR)
            touched.append(low)
        if out is None:
            touched.append(_create(product, "OUT_OF_STOCK", on_hand))
    elif on_hand <= reorder_level:
        if out is not None:
            _resolve(out, SYSTEM_ACTOR)
            touched.append(out)
        if low is None:
            touched.append(_create(product, "LOW_STOCK", on_hand))
    else:
        for alert in (low, out):
            if alert is not None:
                _resolve(alert, SYSTEM_ACTOR)
                touched.append(alert)

    if touched:
        flush()
    return touched


def evaluate_products(product_ids) -> None:
    """Lock products in id order and evaluate each one once."""
    for product_id in sorted(set(product_ids)):
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFound("product", product_id)
        evaluate(product)


def resolve(alert_id: int, actor: str | None) -> InventoryAlert:
    """
    Manually resolve an alert. Idempotent: an already-resolved alert is
    returned unchanged. Caller commits.
    """
    alert = lock_for_update(db.session.query(InventoryAlert).filter_by(id=alert_id)).first()
    if alert is None:
        raise NotFound("alert", alert_id)
    if alert.resolved_at is not None:
        return alert
    _resolve(alert, (actor or SYSTEM_ACTOR).strip() or SYSTEM_ACTOR)
    flush()
    return alert


def list_alerts(status: str = "unresolved") -> tuple[list[dict], dict]:
    """
    Alerts with product/supplier context and urgency.

    status: unresolved | resolved | all. Sorted by urgency, then newest first.
    """
    if status not in ("unresolved", "resolved", "all"):
        raise ValidationFailed("status", "must be one of unresolved, resolved, all")

    stock_totals = (
        db.session.query(
            ProductStock.product_id.label("product_id"),
            func.sum(ProductStock.on_hand).label("on_hand"),
        )
        .group_by(ProductStock.product_id)
        .subquery()
    )

    query = (
        db.session.query(InventoryAlert, Product, func.coalesce(stock_totals.c.on_hand, 0))
        .join(Product, Product.id == InventoryAlert.product_id)
        .outerjoin(stock_totals, stock_totals.c.product_id == Product.id)
    )
    if status == "unresolved":
        query = query.filter(InventoryAlert.resolved_at.is_(None))
    elif status == "resolved":
        query = query.filter(InventoryAlert.resolved_at.isnot(None))

    rows = []
    for alert, product, latest in query.all():
        latest = int(latest or 0)
        if alert.kind == "OUT_OF_STOCK" and alert.resolved_at is None:
            urgency = "CRITICAL"
        else:
            urgency = classify_urgency(latest, product.reorder_level)
        supplier = product.supplier
        row = alert.to_dict()
        row.update({
            "product_code": product.code,
            "product_name": product.name,
            "category_name": product.category.name if product.category else None,
            "supplier_name": supplier.name if supplier else None,
            "supplier_email": supplier.email if supplier else None,
            "supplier_phone": supplier.phone if supplier else None,
            "latest_on_hand": latest,
            "reorder_level": product.reorder_level,
            "urgency": urgency,
        })
        rows.append(row)

    rows.sort(key=lambda r: r["id"], reverse=True)
    rows.sort(key=lambda r: r["opened_at"] or "", reverse=True)
    rows.sort(key=lambda r: URGENCY_RANK[r["urgency"]])

    summary = {
        "total_alerts": len(rows),
        "critical_count": sum(1 for r in rows if r["urgency"] == "CRITICAL"),
        "high_count": sum(1 for r in rows if r["urgency"] == "HIGH"),
        "medium_count": sum(1 for r in rows if r["urgency"] == "MEDIUM"),
        "out_of_stock_count": sum(1 for r in rows if r["kind"] == "OUT_OF_STOCK"),
        "low_stock_count": sum(1 for r in rows if r["kind"] == "LOW_STOCK"),
    }
    return rows, summary


def open_alert_counts() -> dict:
    rows = (
        db.session.query(InventoryAlert.kind, func.count(InventoryAlert.id))
        .filter(InventoryAlert.resolved_at.is_(None))
        .group_by(InventoryAlert.kind)
        .all()
    )
    counts = {kind: int(n) for kind, n in rows}
    return {
        "open_total": sum(counts.values()),
        "low_stock": counts.get("LOW_STOCK", 0),
        "out_of_stock": counts.get("OUT_OF_STOCK", 0),
    }
