# Overview: Flask API routes for stock positions, the movement ledger and manual adjustments.

from flask import Blueprint, g

from ..decorators import require_auth, require_writer
from ..errors import ValidationFailed
from ..responses import created, json_body, ok, query_datetime, query_int
from ..services import ledger_service, stock_service
from ..services.catalog_service import get_product


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _required_query_int(name: str) -> int:
    value = query_int(name)
    if value is None:
        raise ValidationFailed(name, "is required")
    return value


@stock_bp.get("/positions")
@require_auth
def positions_route():
    """
    Per-warehouse on-hand figures.

    Query params: product_id (optional; all products when omitted)
    """
    product_id = query_int("product_id")
    if product_id is not None:
        get_product(product_id)
        positions = stock_service.positions_by_product([product_id])
    else:
        positions = stock_service.positions_by_product()

    data = [
        {
            "product_id": pid,
            "total_on_hand": sum(p["on_hand"] for p in rows),
            "positions": rows,
        }
        for pid, rows in sorted(positions.items())
    ]
    return ok(data)


@stock_bp.get("/ledger")
@require_auth
def ledger_route():
    """
    Movements for one product in (occurred_at, id) order.

    Query params:
    - product_id (required)
    - warehouse_id
    - since (inclusive), until (exclusive): ISO-8601
    - after_id: continue after this movement
    - limit: page size (max 1000)
    """
    product_id = _required_query_int("product_id")
    get_product(product_id)
    limit = query_int("limit", ledger_service.MAX_LEDGER_PAGE)
    if limit < 1:
        raise ValidationFailed("limit", "must be >= 1")

    movements = ledger_service.ledger(
        product_id,
        warehouse_id=query_int("warehouse_id"),
        since=query_datetime("since"),
        until=query_datetime("until"),
        after_id=query_int("after_id"),
        limit=limit,
    )
    data = [m.to_dict() for m in movements]
    next_after_id = data[-1]["id"] if len(data) == min(limit, ledger_service.MAX_LEDGER_PAGE) else None
    return ok(data, f"{len(data)} movement(s)", summary={"next_after_id": next_after_id})


@stock_bp.post("/adjustments")
@require_auth
@require_writer
def adjustment_route():
    """
    Manual stock correction (damage, shrinkage, recount).

    Body: {product_id, warehouse_id, delta, notes?}. A negative delta larger
    than the position fails with 409.
    """
    data = json_body()
    movement = stock_service.post_adjustment(
        product_id=data.get("product_id"),
        warehouse_id=data.get("warehouse_id"),
        delta=data.get("delta"),
        actor_user_id=g.current_user.id,
        notes=data.get("notes"),
    )
    return created(movement.to_dict(), "Adjustment recorded")
