# Overview: Stock ledger appends and position reads; the single source of truth for quantities.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func

from ..errors import InsufficientStock, InvalidMovement, NotFound
from ..extensions import db
from ..models import Product, ProductStock, StockMovement, Warehouse
from ..time_utils import utcnow
from .concurrency import flush, lock_for_update

"""
Ledger invariants (authoritative)

- stock_movements is append-only; rows are never updated or deleted.
- product_stocks.on_hand == SUM(stock_movements.delta) for the same
  (product, warehouse) at every commit boundary.
- on_hand is never negative.
- append() never commits; it runs inside the caller's transaction.
"""

logger = logging.getLogger(__name__)

MAX_LEDGER_PAGE = 1000


@dataclass(frozen=True)
class DocumentRef:
    kind: str  # "PURCHASE" | "SALE"
    document_id: int
    line_id: int | None = None


def _check_sign(kind: str, delta: int) -> None:
    if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
        raise InvalidMovement("Movement delta must be a non-zero integer")
    if kind == "PURCHASE_IN" and delta < 0:
        raise InvalidMovement("PURCHASE_IN movements must have a positive delta")
    if kind == "SALE_OUT" and delta > 0:
        raise InvalidMovement("SALE_OUT movements must have a negative delta")
    if kind not in ("PURCHASE_IN", "SALE_OUT", "ADJUSTMENT"):
        raise InvalidMovement(f"Unknown movement kind {kind!r}")


def _locked_position(product_id: int, warehouse_id: int) -> ProductStock:
    """Lock the position row, inserting it at 0 on first movement."""
    position = lock_for_update(
        db.session.query(ProductStock).filter_by(product_id=product_id, warehouse_id=warehouse_id)
    ).first()
    if position is not None:
        return position

    position = ProductStock(product_id=product_id, warehouse_id=warehouse_id, on_hand=0)
    db.session.add(position)
    flush()
    return position


def append(
    *,
    product_id: int,
    warehouse_id: int,
    delta: int,
    kind: str,
    doc_ref: DocumentRef | None = None,
    unit_cost_snapshot_cents: int | None = None,
    actor_user_id: int | None = None,
    occurred_at: datetime | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Append one movement and update the (product, warehouse) position.

    Raises InvalidMovement if sign and kind disagree, InsufficientStock if the
    resulting on_hand would be negative, NotFound if product or warehouse is
    missing. Nothing is written when it raises.
    """
    _check_sign(kind, delta)

    if db.session.get(Product, product_id) is None:
        raise NotFound("product", product_id)
    if db.session.get(Warehouse, warehouse_id) is None:
        raise NotFound("warehouse", warehouse_id)

    position = _locked_position(product_id, warehouse_id)
    new_on_hand = position.on_hand + delta
    if new_on_hand < 0:
        raise InsufficientStock(
            have=position.on_hand,
            want=-delta,
            product_id=product_id,
            warehouse_id=warehouse_id,
        )

    position.on_hand = new_on_hand

    movement = StockMovement(
        product_id=product_id,
        warehouse_id=warehouse_id,
        delta=delta,
        kind=kind,
        document_kind=doc_ref.kind if doc_ref else None,
        document_id=doc_ref.document_id if doc_ref else None,
        document_line_id=doc_ref.line_id if doc_ref else None,
        unit_cost_snapshot_cents=unit_cost_snapshot_cents,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at or utcnow(),
        notes=notes,
    )
    db.session.add(movement)
    flush()
    return movement


def position(product_id: int, warehouse_id: int) -> int:
    """Current on-hand at one warehouse (0 if the product never moved there)."""
    on_hand = (
        db.session.query(ProductStock.on_hand)
        .filter_by(product_id=product_id, warehouse_id=warehouse_id)
        .scalar()
    )
    return on_hand or 0


def positions_for_product(product_id: int) -> list[ProductStock]:
    return (
        db.session.query(ProductStock)
        .filter_by(product_id=product_id)
        .order_by(ProductStock.warehouse_id.asc())
        .all()
    )


def total_on_hand(product_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(ProductStock.on_hand), 0))
        .filter(ProductStock.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def ledger(
    product_id: int,
    *,
    warehouse_id: Optional[int] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    after_id: Optional[int] = None,
    limit: Optional[int] = None,
) -> list[StockMovement]:
    """
    Movements for a product ordered by (occurred_at, id) ascending.

    since is inclusive, until is exclusive. Restartable: pass the last row's
    id as after_id to continue after it.
    """
    query = db.session.query(StockMovement).filter(StockMovement.product_id == product_id)
    if warehouse_id is not None:
        query = query.filter(StockMovement.warehouse_id == warehouse_id)
    if since is not None:
        query = query.filter(StockMovement.occurred_at >= since)
    if until is not None:
        query = query.filter(StockMovement.occurred_at < until)
    if after_id is not None:
        anchor = db.session.get(StockMovement, after_id)
        if anchor is None:
            raise NotFound("movement", after_id)
        query = query.filter(
            db.or_(
                StockMovement.occurred_at > anchor.occurred_at,
                db.and_(
                    StockMovement.occurred_at == anchor.occurred_at,
                    StockMovement.id > anchor.id,
                ),
            )
        )
    query = query.order_by(StockMovement.occurred_at.asc(), StockMovement.id.asc())
    if limit is not None:
        query = query.limit(min(limit, MAX_LEDGER_PAGE))
    return query.all()


def _ledger_sums() -> dict[tuple[int, int], int]:
    rows = (
        db.session.query(
            StockMovement.product_id,
            StockMovement.warehouse_id,
            func.sum(StockMovement.delta),
        )
        .group_by(StockMovement.product_id, StockMovement.warehouse_id)
        .all()
    )
    return {(p, w): int(total or 0) for p, w, total in rows}


def verify_positions() -> list[dict]:
    """
    Fold the ledger and compare with materialized positions.

    Returns one entry per mismatching (product, warehouse); empty when the
    store is consistent.
    """
    folded = _ledger_sums()
    stored = {
        (row.product_id, row.warehouse_id): row.on_hand
        for row in db.session.query(ProductStock).all()
    }

    mismatches = []
    for key in sorted(set(folded) | set(stored)):
        expected = folded.get(key, 0)
        actual = stored.get(key, 0)
        if expected != actual:
            mismatches.append({
                "product_id": key[0],
                "warehouse_id": key[1],
                "ledger_on_hand": expected,
                "position_on_hand": actual,
            })
    return mismatches


def rebuild_positions() -> int:
    """
    Rewrite every position from the ledger fold. Caller commits.

    Returns the number of rows changed.
    """
    folded = _ledger_sums()
    changed = 0

    positions = lock_for_update(db.session.query(ProductStock)).all()
    seen = set()
    for row in positions:
        key = (row.product_id, row.warehouse_id)
        seen.add(key)
        expected = folded.get(key, 0)
        if row.on_hand != expected:
            logger.warning(
                "Rebuilding position product=%s warehouse=%s: %s -> %s",
                row.product_id, row.warehouse_id, row.on_hand, expected,
            )
            row.on_hand = expected
            changed += 1

    for (product_id, warehouse_id), expected in folded.items():
        if (product_id, warehouse_id) in seen:
            continue
        logger.warning(
            "Rebuilding missing position product=%s warehouse=%s -> %s",
            product_id, warehouse_id, expected,
        )
        db.session.add(ProductStock(product_id=product_id, warehouse_id=warehouse_id, on_hand=expected))
        changed += 1

    flush()
    return changed
