"""
Catalog tests.

Verifies:
- case-insensitive uniqueness with stored case preserved
- payload validation (allowlist, money, cross-field price rule)
- soft deactivation and list counts
"""

import pytest

from smartstock.errors import Conflict, NotFound, ValidationFailed
from smartstock.extensions import db
from smartstock.models import Product
from smartstock.services import catalog_service, purchase_service, sales_service

from conftest import make_product


class TestProducts:
    def test_create_stores_cents(self, category, supplier):
        product = make_product("AbC-1", cost="2.50", selling="4.99", category=category, supplier=supplier)

        stored = db.session.get(Product, product.id)
        assert stored.code == "AbC-1"
        assert stored.cost_price_cents == 250
        assert stored.selling_price_cents == 499
        assert stored.unit == "pcs"
        assert stored.to_dict()["selling_price"] == "4.99"

    def test_code_unique_ignoring_case(self, db_session):
        make_product("abc")
        with pytest.raises(Conflict):
            make_product("ABC")

    def test_rename_to_taken_code_conflicts(self, db_session):
        make_product("A1")
        b = make_product("B1")
        with pytest.raises(Conflict):
            catalog_service.update_product(b.id, {"code": "a1"})

    def test_rename_keeping_own_code_is_allowed(self, db_session):
        a = make_product("A1")
        updated = catalog_service.update_product(a.id, {"code": "a1", "name": "Renamed"})
        assert updated.code == "a1"

    @pytest.mark.parametrize("payload,field", [
        ({"name": "No code", "cost_price": "1.00", "selling_price": "2.00"}, "code"),
        ({"code": "Q", "name": "Q", "cost_price": "1.00"}, "selling_price"),
        ({"code": "Q", "name": "Q", "cost_price": "1.001", "selling_price": "2.00"}, "cost_price"),
        ({"code": "Q", "name": "Q", "cost_price": "-1", "selling_price": "2.00"}, "cost_price"),
        ({"code": "Q", "name": "Q", "cost_price": "3.00", "selling_price": "2.00"}, "selling_price"),
        ({"code": "Q", "name": "Q", "cost_price": "1", "selling_price": "2", "reorder_level": -1}, "reorder_level"),
        ({"code": "Q", "name": "Q", "cost_price": "1", "selling_price": "2", "cost_price_cents": 5}, "cost_price_cents"),
        ({"code": "Q" * 65, "name": "Q", "cost_price": "1", "selling_price": "2"}, "code"),
        ({"code": "  ", "name": "Q", "cost_price": "1", "selling_price": "2"}, "code"),
    ])
    def test_validation(self, db_session, payload, field):
        with pytest.raises(ValidationFailed) as excinfo:
            catalog_service.create_product(payload)
        assert excinfo.value.field == field
        assert db.session.query(Product).count() == 0

    def test_price_rule_checks_merged_values(self, product):
        with pytest.raises(ValidationFailed):
            catalog_service.update_product(product.id, {"selling_price": "9.99"})
        updated = catalog_service.update_product(product.id, {"cost_price": "14.00"})
        assert updated.cost_price_cents == 1400

    def test_unknown_category_reference(self, db_session):
        with pytest.raises(NotFound):
            catalog_service.create_product({
                "code": "Q", "name": "Q", "cost_price": "1", "selling_price": "2", "category_id": 404,
            })

    def test_put_requires_full_payload(self, product):
        with pytest.raises(ValidationFailed):
            catalog_service.update_product(product.id, {"name": "Only name"}, partial=False)

    def test_deactivate_keeps_history(self, product, supplier, warehouse):
        purchase_service.post_purchase(
            supplier_id=supplier.id,
            warehouse_id=warehouse.id,
            lines=[{"product_id": product.id, "quantity": 2, "unit_cost": "10.00"}],
        )
        catalog_service.deactivate_product(product.id)
        again = catalog_service.deactivate_product(product.id)

        assert again.is_active is False
        assert catalog_service.list_products() == []
        [row] = catalog_service.list_products(include_inactive=True)
        assert row["current_stock"] == 2

    def test_list_rows_carry_stock(self, product, supplier, warehouse, warehouse_b):
        for wh, qty in ((warehouse, 3), (warehouse_b, 4)):
            purchase_service.post_purchase(
                supplier_id=supplier.id,
                warehouse_id=wh.id,
                lines=[{"product_id": product.id, "quantity": qty, "unit_cost": "10.00"}],
            )

        [row] = catalog_service.list_products(search="x1")
        assert row["current_stock"] == 7
        assert [p["on_hand"] for p in row["stock_by_warehouse"]] == [3, 4]
        assert row["stock_status"] == "In Stock"
        assert row["profit_margin"] == "5.00"
        assert row["stock_value"] == "70.00"

    def test_search_and_category_filter(self, category, db_session):
        other = catalog_service.create_entity("category", {"name": "Paint"})
        make_product("HAM-1", category=category)
        make_product("PNT-1", category=other)

        assert [r["code"] for r in catalog_service.list_products(search="pnt")] == ["PNT-1"]
        assert [r["code"] for r in catalog_service.list_products(category_id=category.id)] == ["HAM-1"]


class TestEntities:
    def test_names_unique_ignoring_case(self, supplier):
        with pytest.raises(Conflict):
            catalog_service.create_entity("supplier", {"name": "ACME supply"})

    def test_customers_may_share_names(self, customer):
        twin = catalog_service.create_entity("customer", {"name": "Walk-in Wholesale"})
        assert twin.id != customer.id

    def test_reapplying_current_values_is_a_noop(self, warehouse):
        same = catalog_service.update_entity("warehouse", warehouse.id, {"name": "Main Warehouse", "location": "Dock 1"})
        assert same.name == "Main Warehouse"

    def test_unknown_field_rejected(self, category):
        with pytest.raises(ValidationFailed):
            catalog_service.update_entity("category", category.id, {"colour": "red"})

    def test_missing_entity(self, db_session):
        with pytest.raises(NotFound):
            catalog_service.get_entity("warehouse", 77)

    def test_deactivation_keeps_posted_history(self, product, supplier, warehouse):
        purchase = purchase_service.post_purchase(
            supplier_id=supplier.id,
            warehouse_id=warehouse.id,
            lines=[{"product_id": product.id, "quantity": 2, "unit_cost": "10.00"}],
        )

        catalog_service.update_entity("supplier", supplier.id, {"is_active": False})
        catalog_service.update_entity("warehouse", warehouse.id, {"is_active": False})

        assert catalog_service.get_entity("warehouse", warehouse.id).is_active is False
        stored = purchase_service.get_purchase(purchase.id)
        assert (stored.supplier_id, stored.warehouse_id) == (supplier.id, warehouse.id)

    def test_category_counts_only_active_products(self, category):
        make_product("C1", category=category)
        gone = make_product("C2", category=category)
        catalog_service.deactivate_product(gone.id)

        [row] = catalog_service.list_categories()
        assert row["product_count"] == 1

    def test_warehouse_totals(self, product, supplier, warehouse, warehouse_b):
        purchase_service.post_purchase(
            supplier_id=supplier.id,
            warehouse_id=warehouse.id,
            lines=[{"product_id": product.id, "quantity": 6, "unit_cost": "10.00"}],
        )
        rows = {r["name"]: r for r in catalog_service.list_warehouses()}
        assert rows["Main Warehouse"]["total_stock"] == 6
        assert rows["Main Warehouse"]["product_count"] == 1
        assert rows["Overflow"]["total_stock"] == 0

    def test_customer_history_skips_cancelled_sales(self, product, supplier, warehouse, customer):
        purchase_service.post_purchase(
            supplier_id=supplier.id,
            warehouse_id=warehouse.id,
            lines=[{"product_id": product.id, "quantity": 5, "unit_cost": "10.00"}],
        )
        kept = sales_service.post_sale(
            customer_id=customer.id, warehouse_id=warehouse.id,
            lines=[{"product_id": product.id, "quantity": 1}],
        )
        dropped = sales_service.post_sale(
            customer_id=customer.id, warehouse_id=warehouse.id,
            lines=[{"product_id": product.id, "quantity": 2}],
        )
        sales_service.cancel_sale(dropped.id)

        [row] = catalog_service.list_customers()
        assert [h["sale_id"] for h in row["purchase_history"]] == [kept.id]
        assert row["total_spent"] == "15.00"


class TestUsers:
    def test_username_unique_ignoring_case(self, users):
        with pytest.raises(Conflict):
            catalog_service.create_user({"username": "ADMIN", "password": "Password123!", "full_name": "Dup"})

    def test_weak_password_rejected(self, db_session):
        with pytest.raises(ValidationFailed) as excinfo:
            catalog_service.create_user({"username": "new", "password": "short", "full_name": "New"})
        assert excinfo.value.field == "password"

    def test_unknown_role_rejected(self, db_session):
        with pytest.raises(ValidationFailed):
            catalog_service.create_user({
                "username": "new", "password": "Password123!", "full_name": "New", "role": "OWNER",
            })

    def test_deactivate_and_change_role(self, users):
        user = catalog_service.update_user(users["sales"].id, {"role": "manager", "is_active": False})
        assert user.role == "MANAGER"
        assert user.is_active is False

    def test_password_hash_not_exposed(self, users):
        data = catalog_service.get_user(users["admin"].id).to_dict()
        assert "password_hash" not in data
        assert data["role"] == "ADMIN"
