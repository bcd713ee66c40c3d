# Overview: Flask API routes for products operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, request

from ..decorators import require_auth, require_writer
from ..responses import created, json_body, ok, query_int
from ..services import catalog_service, reporting_service
from ..services.stock_service import positions_by_product


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _product_payload(product) -> dict:
    positions = positions_by_product([product.id]).get(product.id, [])
    return catalog_service.product_row(product, positions)


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products with current stock.

    Query params:
    - include_inactive: true|false (default false)
    - search: substring of code or name
    - category_id: filter by category
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    rows = catalog_service.list_products(
        include_inactive=include_inactive,
        search=request.args.get("search"),
        category_id=query_int("category_id"),
    )
    return ok(rows, f"{len(rows)} product(s)")


@products_bp.post("")
@require_auth
@require_writer
def create_product_route():
    product = catalog_service.create_product(json_body())
    return created(_product_payload(product), "Product created")


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    product = catalog_service.get_product(product_id)
    return ok(_product_payload(product))


@products_bp.put("/<int:product_id>")
@require_auth
@require_writer
def replace_product_route(product_id: int):
    product = catalog_service.update_product(product_id, json_body(), partial=False)
    return ok(_product_payload(product), "Product updated")


@products_bp.patch("/<int:product_id>")
@require_auth
@require_writer
def update_product_route(product_id: int):
    product = catalog_service.update_product(product_id, json_body(), partial=True)
    return ok(_product_payload(product), "Product updated")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_writer
def delete_product_route(product_id: int):
    """Soft delete: the product is deactivated, its history stays."""
    product = catalog_service.deactivate_product(product_id)
    return ok(_product_payload(product), "Product deactivated")


@products_bp.get("/low-stock")
@require_auth
def low_stock_route():
    rows, summary = reporting_service.low_stock()
    return ok(rows, f"{len(rows)} product(s) at or below reorder level", summary=summary)


@products_bp.get("/dead-stock")
@require_auth
def dead_stock_route():
    """Products with no sale in ``days`` days (default DEAD_STOCK_DEFAULT_DAYS)."""
    days = reporting_service.parse_dead_stock_days(
        request.args.get("days"),
        current_app.config["DEAD_STOCK_DEFAULT_DAYS"],
    )
    rows, summary = reporting_service.dead_stock(days)
    return ok(rows, f"{len(rows)} dead stock product(s)", summary=summary)
