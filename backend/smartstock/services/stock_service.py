# Overview: Standalone stock adjustments and position read-models.

from __future__ import annotations

import logging
from typing import Any, Optional

from ..errors import ValidationFailed
from ..extensions import db
from ..models import Product, ProductStock, StockMovement, Warehouse
from ..validation import parse_int, require_positive_int
from . import alert_service, ledger_service
from .concurrency import lock_for_update, run_with_retry, transaction
from .document_service import get_active

logger = logging.getLogger(__name__)


def post_adjustment(
    *,
    product_id: Any,
    warehouse_id: Any,
    delta: Any,
    actor_user_id: int | None = None,
    notes: Optional[str] = None,
) -> StockMovement:
    """
    Append one ADJUSTMENT movement (damage, shrinkage, found stock) and
    refresh alerts, in one transaction.
    """
    product_id = require_positive_int(product_id, "product_id")
    if delta is None:
        raise ValidationFailed("delta", "is required")
    delta = parse_int(delta, "delta")
    if delta == 0:
        raise ValidationFailed("delta", "must be non-zero")
    if notes is not None:
        notes = str(notes).strip()[:255] or None

    def _op():
        with transaction():
            warehouse = get_active(Warehouse, warehouse_id, "warehouse")
            product = get_active(Product, product_id, "product")
            product = lock_for_update(db.session.query(Product).filter_by(id=product.id)).first()

            movement = ledger_service.append(
                product_id=product.id,
                warehouse_id=warehouse.id,
                delta=delta,
                kind="ADJUSTMENT",
                unit_cost_snapshot_cents=product.cost_price_cents,
                actor_user_id=actor_user_id,
                notes=notes,
            )
            alert_service.evaluate(product)
            return movement

    movement = run_with_retry(_op)
    logger.info("Adjusted product %s at warehouse %s by %+d", product_id, movement.warehouse_id, delta)
    return movement


def positions_by_product(product_ids: list[int] | None = None) -> dict[int, list[dict]]:
    """Per-warehouse positions for many products in one query."""
    query = (
        db.session.query(ProductStock, Warehouse.name)
        .join(Warehouse, Warehouse.id == ProductStock.warehouse_id)
    )
    if product_ids is not None:
        if not product_ids:
            return {}
        query = query.filter(ProductStock.product_id.in_(product_ids))
    result: dict[int, list[dict]] = {}
    for position, warehouse_name in query.order_by(ProductStock.product_id, ProductStock.warehouse_id).all():
        result.setdefault(position.product_id, []).append({
            "warehouse_id": position.warehouse_id,
            "warehouse_name": warehouse_name,
            "on_hand": position.on_hand,
        })
    return result
