"""Initial inventory schema

Revision ID: 20261016_initial
Revises:
Create Date: 2026-10-16 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261016_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("uq_categories_name_ci", "categories", [sa.text("lower(name)")], unique=True)

    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("contact_person", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("uq_suppliers_name_ci", "suppliers", [sa.text("lower(name)")], unique=True)

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_customers_name", "customers", ["name"])

    op.create_table(
        "warehouses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("uq_warehouses_name_ci", "warehouses", [sa.text("lower(name)")], unique=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("role IN ('ADMIN', 'MANAGER', 'SALES', 'WAREHOUSE')", name="ck_users_role"),
        sqlite_autoincrement=True,
    )
    op.create_index("uq_users_username_ci", "users", [sa.text("lower(username)")], unique=True)

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_used_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False),
        sa.Column("revoked_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_session_tokens_user_id", "session_tokens", ["user_id"])
    op.create_index("ix_session_tokens_token_hash", "session_tokens", ["token_hash"], unique=True)
    op.create_index("ix_session_tokens_expires_at", "session_tokens", ["expires_at"])
    op.create_index("ix_session_tokens_user_active", "session_tokens", ["user_id", "is_revoked"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("suppliers.id"), nullable=True),
        sa.Column("unit", sa.String(length=32), nullable=False),
        sa.Column("cost_price_cents", sa.Integer(), nullable=False),
        sa.Column("selling_price_cents", sa.Integer(), nullable=False),
        sa.Column("reorder_level", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("cost_price_cents >= 0", name="ck_products_cost_nonneg"),
        sa.CheckConstraint("selling_price_cents >= 0", name="ck_products_selling_nonneg"),
        sa.CheckConstraint("reorder_level >= 0", name="ck_products_reorder_nonneg"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_products_category_id", "products", ["category_id"])
    op.create_index("ix_products_supplier_id", "products", ["supplier_id"])
    op.create_index("ix_products_active_name", "products", ["is_active", "name"])
    op.create_index("uq_products_code_ci", "products", [sa.text("lower(code)")], unique=True)

    op.create_table(
        "product_stocks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("on_hand", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("product_id", "warehouse_id", name="uq_product_stocks_product_warehouse"),
        sa.CheckConstraint("on_hand >= 0", name="ck_product_stocks_on_hand_nonneg"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_product_stocks_product_id", "product_stocks", ["product_id"])
    op.create_index("ix_product_stocks_warehouse_id", "product_stocks", ["warehouse_id"])

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("document_kind", sa.String(length=16), nullable=True),
        sa.Column("document_id", sa.Integer(), nullable=True),
        sa.Column("document_line_id", sa.Integer(), nullable=True),
        sa.Column("unit_cost_snapshot_cents", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.CheckConstraint("delta <> 0", name="ck_stock_movements_delta_nonzero"),
        sa.CheckConstraint("kind IN ('PURCHASE_IN', 'SALE_OUT', 'ADJUSTMENT')", name="ck_stock_movements_kind"),
        sa.CheckConstraint(
            "(kind <> 'PURCHASE_IN' OR delta > 0) AND (kind <> 'SALE_OUT' OR delta < 0)",
            name="ck_stock_movements_sign_kind",
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"])
    op.create_index("ix_stock_movements_warehouse_id", "stock_movements", ["warehouse_id"])
    op.create_index("ix_stock_movements_actor_user_id", "stock_movements", ["actor_user_id"])
    op.create_index(
        "ix_stock_movements_product_warehouse_occurred",
        "stock_movements",
        ["product_id", "warehouse_id", "occurred_at"],
    )
    op.create_index("ix_stock_movements_kind_occurred", "stock_movements", ["kind", "occurred_at"])
    op.create_index("ix_stock_movements_document", "stock_movements", ["document_kind", "document_id"])

    op.create_table(
        "inventory_alerts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("kind", sa.String(length=16), nullable=False),
        sa.Column("message", sa.String(length=255), nullable=False),
        sa.Column("observed_on_hand", sa.Integer(), nullable=False),
        sa.Column("observed_reorder_level", sa.Integer(), nullable=False),
        sa.Column("opened_at", sa.DateTime(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_by", sa.String(length=64), nullable=True),
        sa.CheckConstraint("kind IN ('LOW_STOCK', 'OUT_OF_STOCK')", name="ck_inventory_alerts_kind"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_inventory_alerts_product_id", "inventory_alerts", ["product_id"])
    op.create_index("ix_inventory_alerts_opened_at", "inventory_alerts", ["opened_at"])
    op.create_index(
        "uq_inventory_alerts_open",
        "inventory_alerts",
        ["product_id", "kind"],
        unique=True,
        sqlite_where=sa.text("resolved_at IS NULL"),
        postgresql_where=sa.text("resolved_at IS NULL"),
    )

    op.create_table(
        "purchase_headers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reference_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("suppliers.id"), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("total_cost_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("compensates_id", sa.Integer(), sa.ForeignKey("purchase_headers.id"), nullable=True),
        sa.Column("cancelled_by_id", sa.Integer(), sa.ForeignKey("purchase_headers.id"), nullable=True),
        sa.CheckConstraint("status IN ('DRAFT', 'POSTED', 'CANCELLED')", name="ck_purchase_headers_status"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_purchase_headers_supplier_id", "purchase_headers", ["supplier_id"])
    op.create_index("ix_purchase_headers_warehouse_id", "purchase_headers", ["warehouse_id"])
    op.create_index("ix_purchase_headers_created_by_user_id", "purchase_headers", ["created_by_user_id"])
    op.create_index("ix_purchase_headers_occurred", "purchase_headers", ["occurred_at"])

    op.create_table(
        "purchase_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("purchase_id", sa.Integer(), sa.ForeignKey("purchase_headers.id"), nullable=False),
        sa.Column("line_no", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.String(length=255), nullable=True),
        sa.UniqueConstraint("purchase_id", "line_no", name="uq_purchase_items_line"),
        sa.CheckConstraint("quantity > 0", name="ck_purchase_items_quantity_pos"),
        sa.CheckConstraint("unit_cost_cents >= 0", name="ck_purchase_items_unit_cost_nonneg"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_purchase_items_purchase_id", "purchase_items", ["purchase_id"])
    op.create_index("ix_purchase_items_product_id", "purchase_items", ["product_id"])

    op.create_table(
        "sale_headers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_number", sa.String(length=64), nullable=False, unique=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("compensates_id", sa.Integer(), sa.ForeignKey("sale_headers.id"), nullable=True),
        sa.Column("cancelled_by_id", sa.Integer(), sa.ForeignKey("sale_headers.id"), nullable=True),
        sa.CheckConstraint("status IN ('DRAFT', 'POSTED', 'CANCELLED')", name="ck_sale_headers_status"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sale_headers_customer_id", "sale_headers", ["customer_id"])
    op.create_index("ix_sale_headers_warehouse_id", "sale_headers", ["warehouse_id"])
    op.create_index("ix_sale_headers_created_by_user_id", "sale_headers", ["created_by_user_id"])
    op.create_index("ix_sale_headers_occurred", "sale_headers", ["occurred_at"])

    op.create_table(
        "sale_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sale_id", sa.Integer(), sa.ForeignKey("sale_headers.id"), nullable=False),
        sa.Column("line_no", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        sa.Column("unit_cost_snapshot_cents", sa.Integer(), nullable=False),
        sa.UniqueConstraint("sale_id", "line_no", name="uq_sale_items_line"),
        sa.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_pos"),
        sa.CheckConstraint("unit_price_cents >= 0", name="ck_sale_items_unit_price_nonneg"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_sale_items_sale_id", "sale_items", ["sale_id"])
    op.create_index("ix_sale_items_product_id", "sale_items", ["product_id"])


def downgrade():
    op.drop_table("sale_items")
    op.drop_table("sale_headers")
    op.drop_table("purchase_items")
    op.drop_table("purchase_headers")
    op.drop_table("inventory_alerts")
    op.drop_table("stock_movements")
    op.drop_table("product_stocks")
    op.drop_table("products")
    op.drop_table("session_tokens")
    op.drop_table("users")
    op.drop_table("warehouses")
    op.drop_table("customers")
    op.drop_table("suppliers")
    op.drop_table("categories")
