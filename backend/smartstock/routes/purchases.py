# Overview: Flask API routes for purchases operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_writer
from ..responses import created, json_body, ok, query_limit
from ..services import purchase_service


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("")
@require_auth
def list_purchases_route():
    purchases, summary = purchase_service.list_purchases(
        status=request.args.get("status") or None,
        limit=query_limit(),
    )
    return ok([p.to_dict() for p in purchases], f"{len(purchases)} purchase(s)", summary=summary)


@purchases_bp.post("")
@require_auth
@require_writer
def post_purchase_route():
    """
    Receive stock from a supplier into one warehouse.

    Body: {supplier_id, warehouse_id, reference_number?, notes?, occurred_at?,
           items: [{product_id, quantity, unit_cost}]}
    Requires: ADMIN or MANAGER
    """
    data = json_body()
    purchase = purchase_service.post_purchase(
        supplier_id=data.get("supplier_id"),
        warehouse_id=data.get("warehouse_id"),
        lines=data.get("items", data.get("lines")),
        actor_user_id=g.current_user.id,
        reference_number=data.get("reference_number"),
        notes=data.get("notes"),
        occurred_at=data.get("occurred_at"),
    )
    current_app.logger.info("Purchase %s posted by %s", purchase.reference_number, g.current_user.username)
    return created(purchase.to_dict(), "Purchase recorded successfully")


@purchases_bp.get("/<int:purchase_id>")
@require_auth
def get_purchase_route(purchase_id: int):
    purchase = purchase_service.get_purchase(purchase_id)
    return ok(purchase.to_dict())


@purchases_bp.post("/<int:purchase_id>/cancel")
@require_auth
@require_writer
def cancel_purchase_route(purchase_id: int):
    """
    Cancel a posted purchase. Fails with 409 when the received units were
    already sold.
    """
    data = json_body()
    compensator = purchase_service.cancel_purchase(
        purchase_id,
        actor_user_id=g.current_user.id,
        notes=data.get("notes"),
    )
    current_app.logger.info("Purchase %s cancelled by %s", purchase_id, g.current_user.username)
    return created(compensator.to_dict(), "Purchase cancelled")
