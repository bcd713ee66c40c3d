# Overview: Service-layer operations for the catalog; products, categories, suppliers, customers, warehouses and users.

"""
Catalog Service

WHY: Documents reference catalog entities by id; this module owns their
validation and uniqueness so the posting path can trust them.

UNIQUENESS (case-insensitive, stored case preserved):
- product code, category name, supplier name, warehouse name, username

DEACTIVATION:
Entities are never hard-deleted. Documents post in one step and are never
left open, so clearing is_active is always allowed; posted history keeps
its references.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func

from ..errors import Conflict, NotFound, ValidationFailed
from ..extensions import db
from ..models import (
    Category,
    Customer,
    Product,
    ProductStock,
    SaleHeader,
    SaleItem,
    Supplier,
    User,
    Warehouse,
)
from ..time_utils import to_utc_z
from ..validation import ModelValidationPolicy, enforce_rules_product, format_cents, validate_payload
from . import auth_service
from .concurrency import flush, transaction
from .stock_service import positions_by_product

logger = logging.getLogger(__name__)


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "code", "name", "description", "category_id", "supplier_id", "unit",
        "cost_price", "selling_price", "reorder_level", "is_active",
    },
    required_on_create={"code", "name", "cost_price", "selling_price"},
    money_fields={"cost_price": "cost_price_cents", "selling_price": "selling_price_cents"},
)


@dataclass(frozen=True)
class EntitySpec:
    model: type
    which: str
    policy: ModelValidationPolicy
    unique_name: bool


ENTITY_SPECS = {
    "category": EntitySpec(
        model=Category,
        which="category",
        policy=ModelValidationPolicy(
            writable_fields={"name", "description", "is_active"},
            required_on_create={"name"},
        ),
        unique_name=True,
    ),
    "supplier": EntitySpec(
        model=Supplier,
        which="supplier",
        policy=ModelValidationPolicy(
            writable_fields={"name", "contact_person", "email", "phone", "address", "is_active"},
            required_on_create={"name"},
        ),
        unique_name=True,
    ),
    "customer": EntitySpec(
        model=Customer,
        which="customer",
        policy=ModelValidationPolicy(
            writable_fields={"name", "email", "phone", "address", "is_active"},
            required_on_create={"name"},
        ),
        unique_name=False,
    ),
    "warehouse": EntitySpec(
        model=Warehouse,
        which="warehouse",
        policy=ModelValidationPolicy(
            writable_fields={"name", "location", "is_active"},
            required_on_create={"name"},
        ),
        unique_name=True,
    ),
}


def _stock_status(on_hand: int, reorder_level: int) -> str:
    if on_hand <= 0:
        return "Out of Stock"
    if on_hand <= reorder_level:
        return "Low Stock"
    return "In Stock"


def _name_taken(model, name: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(model.id).filter(func.lower(model.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    return query.first() is not None


def _code_taken(code: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Product.id).filter(func.lower(Product.code) == code.lower())
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    return query.first() is not None


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

def _check_product_refs(patch: dict) -> None:
    if patch.get("category_id") is not None and db.session.get(Category, patch["category_id"]) is None:
        raise NotFound("category", patch["category_id"])
    if patch.get("supplier_id") is not None and db.session.get(Supplier, patch["supplier_id"]) is None:
        raise NotFound("supplier", patch["supplier_id"])


def product_row(product: Product, positions: list[dict] | None = None) -> dict:
    """Product dict enriched with stock figures for list/detail views."""
    if positions is None:
        positions = positions_by_product([product.id]).get(product.id, [])
    on_hand = sum(p["on_hand"] for p in positions)
    row = product.to_dict()
    row.update({
        "current_stock": on_hand,
        "stock_by_warehouse": positions,
        "stock_status": _stock_status(on_hand, product.reorder_level),
        "profit_margin": format_cents(product.selling_price_cents - product.cost_price_cents),
        "stock_value": format_cents(on_hand * product.cost_price_cents),
    })
    return row


def list_products(*, include_inactive: bool = False, search: str | None = None, category_id: int | None = None) -> list[dict]:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            db.or_(func.lower(Product.code).like(pattern), func.lower(Product.name).like(pattern))
        )
    products = query.order_by(Product.name.asc(), Product.id.asc()).all()
    positions = positions_by_product([p.id for p in products])
    return [product_row(p, positions.get(p.id, [])) for p in products]


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound("product", product_id)
    return product


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    patch.pop("is_active", None)
    enforce_rules_product(patch)
    _check_product_refs(patch)

    with transaction():
        if _code_taken(patch["code"]):
            raise Conflict(f"Product code '{patch['code']}' already exists", {"field": "code"})
        product = Product(**patch)
        db.session.add(product)
        flush()

    logger.info("Created product %s", product.code)
    return product


def update_product(product_id: int, payload: dict, *, partial: bool = True) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)

    with transaction():
        product = get_product(product_id)
        enforce_rules_product(patch, current=product)
        _check_product_refs(patch)
        if "code" in patch and _code_taken(patch["code"], exclude_id=product.id):
            raise Conflict(f"Product code '{patch['code']}' already exists", {"field": "code"})
        for key, value in patch.items():
            setattr(product, key, value)
        flush()
    return product


def deactivate_product(product_id: int) -> Product:
    """Soft delete. Idempotent for already-inactive products."""
    with transaction():
        product = get_product(product_id)
        if product.is_active:
            product.is_active = False
            flush()
    logger.info("Deactivated product %s", product.code)
    return product


# ---------------------------------------------------------------------------
# Categories / suppliers / customers / warehouses
# ---------------------------------------------------------------------------

def _spec(kind: str) -> EntitySpec:
    try:
        return ENTITY_SPECS[kind]
    except KeyError:
        raise ValueError(f"Unknown catalog kind {kind!r}")


def get_entity(kind: str, entity_id: int):
    spec = _spec(kind)
    entity = db.session.get(spec.model, entity_id)
    if entity is None:
        raise NotFound(spec.which, entity_id)
    return entity


def create_entity(kind: str, payload: dict):
    spec = _spec(kind)
    patch = validate_payload(model=spec.model, payload=payload, policy=spec.policy, partial=False)
    patch.pop("is_active", None)

    with transaction():
        if spec.unique_name and _name_taken(spec.model, patch["name"]):
            raise Conflict(f"{spec.which.capitalize()} '{patch['name']}' already exists", {"field": "name"})
        entity = spec.model(**patch)
        db.session.add(entity)
        flush()
    return entity


def update_entity(kind: str, entity_id: int, payload: dict, *, partial: bool = True):
    """
    PATCH (partial) or PUT (all required fields) update. Re-applying the
    current values is a no-op that still succeeds.
    """
    spec = _spec(kind)
    patch = validate_payload(model=spec.model, payload=payload, policy=spec.policy, partial=partial)

    with transaction():
        entity = get_entity(kind, entity_id)
        if "name" in patch and spec.unique_name and _name_taken(spec.model, patch["name"], exclude_id=entity.id):
            raise Conflict(f"{spec.which.capitalize()} '{patch['name']}' already exists", {"field": "name"})
        for key, value in patch.items():
            setattr(entity, key, value)
        flush()
    return entity


def list_categories() -> list[dict]:
    counts = dict(
        db.session.query(Product.category_id, func.count(Product.id))
        .filter(Product.is_active.is_(True))
        .group_by(Product.category_id)
        .all()
    )
    rows = []
    for category in db.session.query(Category).order_by(Category.name.asc()).all():
        row = category.to_dict()
        row["product_count"] = int(counts.get(category.id, 0))
        rows.append(row)
    return rows


def list_suppliers() -> list[dict]:
    counts = dict(
        db.session.query(Product.supplier_id, func.count(Product.id))
        .filter(Product.is_active.is_(True))
        .group_by(Product.supplier_id)
        .all()
    )
    rows = []
    for supplier in db.session.query(Supplier).order_by(Supplier.name.asc()).all():
        row = supplier.to_dict()
        row["product_count"] = int(counts.get(supplier.id, 0))
        rows.append(row)
    return rows


def list_warehouses() -> list[dict]:
    stats = {
        warehouse_id: (int(total or 0), int(products or 0))
        for warehouse_id, total, products in (
            db.session.query(
                ProductStock.warehouse_id,
                func.sum(ProductStock.on_hand),
                func.count(ProductStock.product_id),
            )
            .filter(ProductStock.on_hand > 0)
            .group_by(ProductStock.warehouse_id)
            .all()
        )
    }
    rows = []
    for warehouse in db.session.query(Warehouse).order_by(Warehouse.name.asc()).all():
        total, products = stats.get(warehouse.id, (0, 0))
        row = warehouse.to_dict()
        row["total_stock"] = total
        row["product_count"] = products
        rows.append(row)
    return rows


def list_customers() -> list[dict]:
    """Customers with their purchase history (lines of non-cancelled sales)."""
    history: dict[int, list[dict]] = {}
    spent: dict[int, int] = {}
    lines = (
        db.session.query(SaleItem, SaleHeader, Product)
        .join(SaleHeader, SaleHeader.id == SaleItem.sale_id)
        .join(Product, Product.id == SaleItem.product_id)
        .filter(
            SaleHeader.customer_id.isnot(None),
            SaleHeader.status == "POSTED",
            SaleHeader.compensates_id.is_(None),
        )
        .order_by(SaleHeader.occurred_at.desc(), SaleItem.id.asc())
        .all()
    )
    for item, sale, product in lines:
        spent[sale.customer_id] = spent.get(sale.customer_id, 0) + item.line_total_cents
        history.setdefault(sale.customer_id, []).append({
            "sale_id": sale.id,
            "invoice_number": sale.invoice_number,
            "occurred_at": to_utc_z(sale.occurred_at),
            "product_id": product.id,
            "product_code": product.code,
            "product_name": product.name,
            "quantity": item.quantity,
            "unit_price": format_cents(item.unit_price_cents),
            "line_total": format_cents(item.line_total_cents),
        })

    rows = []
    for customer in db.session.query(Customer).order_by(Customer.name.asc(), Customer.id.asc()).all():
        row = customer.to_dict()
        purchases = history.get(customer.id, [])
        row["purchase_history"] = purchases
        row["total_spent"] = format_cents(spent.get(customer.id, 0))
        rows.append(row)
    return rows


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def list_users() -> list[dict]:
    return [u.to_dict() for u in auth_service.list_users()]


def create_user(payload: dict) -> User:
    if not isinstance(payload, dict):
        raise ValidationFailed("body", "Invalid JSON payload")
    with transaction():
        user = auth_service.create_user(
            username=payload.get("username"),
            password=payload.get("password"),
            full_name=payload.get("full_name"),
            role=payload.get("role", "SALES"),
            email=payload.get("email"),
        )
    logger.info("Created user %s (%s)", user.username, user.role)
    return user


def update_user(user_id: int, payload: dict, *, partial: bool = True) -> User:
    if not isinstance(payload, dict):
        raise ValidationFailed("body", "Invalid JSON payload")
    if not partial:
        for field_name in ("username", "full_name", "role"):
            if payload.get(field_name) in (None, ""):
                raise ValidationFailed(field_name, "is required")
    with transaction():
        user = auth_service.update_user(user_id, payload)
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("user", user_id)
    return user
