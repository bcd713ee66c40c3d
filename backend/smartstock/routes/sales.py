# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""Sales API routes with role enforcement"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_writer
from ..responses import created, json_body, ok, query_limit
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    List sales, newest first, with line items.

    Query params:
    - status: POSTED | CANCELLED (default: all)
    - limit: max rows (default 200)
    """
    sales, summary = sales_service.list_sales(
        status=request.args.get("status") or None,
        limit=query_limit(),
    )
    return ok([s.to_dict() for s in sales], f"{len(sales)} sale(s)", summary=summary)


@sales_bp.post("")
@require_auth
@require_writer
def post_sale_route():
    """
    Post a sale: header, lines and SALE_OUT movements in one transaction.

    Body: {warehouse_id, customer_id?, invoice_number?, notes?, occurred_at?,
           items: [{product_id, quantity, unit_price?}]}
    Requires: ADMIN or MANAGER
    """
    data = json_body()
    sale = sales_service.post_sale(
        warehouse_id=data.get("warehouse_id"),
        customer_id=data.get("customer_id"),
        lines=data.get("items", data.get("lines")),
        actor_user_id=g.current_user.id,
        invoice_number=data.get("invoice_number"),
        notes=data.get("notes"),
        occurred_at=data.get("occurred_at"),
    )
    current_app.logger.info("Sale %s posted by %s", sale.invoice_number, g.current_user.username)
    return created(sale.to_dict(), "Sale recorded successfully")


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    return ok(sale.to_dict())


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
@require_writer
def cancel_sale_route(sale_id: int):
    """
    Cancel a posted sale. Stock returns to the warehouse via a compensating
    document, which is returned.

    Requires: ADMIN or MANAGER
    """
    data = json_body()
    compensator = sales_service.cancel_sale(
        sale_id,
        actor_user_id=g.current_user.id,
        notes=data.get("notes"),
    )
    current_app.logger.info("Sale %s cancelled by %s", sale_id, g.current_user.username)
    return created(compensator.to_dict(), "Sale cancelled")
