# Overview: Flask API routes for catalog CRUD; categories, suppliers, customers, warehouses and users.

"""
Catalog API routes

Each resource serves:
- GET    /api/<resource>        list (with derived counts)
- POST   /api/<resource>        create (ADMIN, MANAGER)
- GET    /api/<resource>/<id>   one row
- PATCH  /api/<resource>/<id>   partial update (ADMIN, MANAGER)
- PUT    /api/<resource>/<id>   full update (ADMIN, MANAGER)

Deactivate by sending {"is_active": false}; nothing is hard-deleted.
Users are managed by ADMIN only.
"""

from flask import Blueprint

from ..decorators import require_auth, require_role, require_writer
from ..responses import created, json_body, ok
from ..services import catalog_service


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


# resource path -> (catalog kind, list function)
RESOURCES = {
    "categories": ("category", catalog_service.list_categories),
    "suppliers": ("supplier", catalog_service.list_suppliers),
    "customers": ("customer", catalog_service.list_customers),
    "warehouses": ("warehouse", catalog_service.list_warehouses),
}


def _register(resource: str, kind: str, list_fn) -> None:
    @require_auth
    def list_route():
        rows = list_fn()
        return ok(rows, f"{len(rows)} {resource}")

    @require_auth
    @require_writer
    def create_route():
        entity = catalog_service.create_entity(kind, json_body())
        return created(entity.to_dict(), f"{kind.capitalize()} created")

    @require_auth
    def get_route(entity_id: int):
        return ok(catalog_service.get_entity(kind, entity_id).to_dict())

    @require_auth
    @require_writer
    def patch_route(entity_id: int):
        entity = catalog_service.update_entity(kind, entity_id, json_body(), partial=True)
        return ok(entity.to_dict(), f"{kind.capitalize()} updated")

    @require_auth
    @require_writer
    def put_route(entity_id: int):
        entity = catalog_service.update_entity(kind, entity_id, json_body(), partial=False)
        return ok(entity.to_dict(), f"{kind.capitalize()} updated")

    catalog_bp.add_url_rule(f"/{resource}", f"list_{resource}", list_route, methods=["GET"])
    catalog_bp.add_url_rule(f"/{resource}", f"create_{kind}", create_route, methods=["POST"])
    catalog_bp.add_url_rule(f"/{resource}/<int:entity_id>", f"get_{kind}", get_route, methods=["GET"])
    catalog_bp.add_url_rule(f"/{resource}/<int:entity_id>", f"patch_{kind}", patch_route, methods=["PATCH"])
    catalog_bp.add_url_rule(f"/{resource}/<int:entity_id>", f"put_{kind}", put_route, methods=["PUT"])


for _resource, (_kind, _list_fn) in RESOURCES.items():
    _register(_resource, _kind, _list_fn)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@catalog_bp.get("/users")
@require_auth
@require_writer
def list_users_route():
    rows = catalog_service.list_users()
    return ok(rows, f"{len(rows)} users")


@catalog_bp.post("/users")
@require_auth
@require_role("ADMIN")
def create_user_route():
    """Body: {username, password, full_name, role?, email?}"""
    user = catalog_service.create_user(json_body())
    return created(user.to_dict(), "User created")


@catalog_bp.get("/users/<int:user_id>")
@require_auth
@require_writer
def get_user_route(user_id: int):
    return ok(catalog_service.get_user(user_id).to_dict())


@catalog_bp.patch("/users/<int:user_id>")
@require_auth
@require_role("ADMIN")
def patch_user_route(user_id: int):
    user = catalog_service.update_user(user_id, json_body(), partial=True)
    return ok(user.to_dict(), "User updated")


@catalog_bp.put("/users/<int:user_id>")
@require_auth
@require_role("ADMIN")
def put_user_route(user_id: int):
    user = catalog_service.update_user(user_id, json_body(), partial=False)
    return ok(user.to_dict(), "User updated")
