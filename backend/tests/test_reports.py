"""
Reporting tests.

Figures are read back from posted documents and the ledger; cancelled
sales and their compensators never count.
"""

from datetime import datetime, time, timedelta

import pytest

from smartstock.errors import ValidationFailed
from smartstock.services import catalog_service, purchase_service, reporting_service, sales_service
from smartstock.services.reporting_service import dead_stock_recommendation, parse_dead_stock_days, parse_period
from smartstock.time_utils import to_utc_z, utcnow

from conftest import make_product


def receive(supplier, warehouse, product, quantity, unit_cost="10.00", when=None):
    return purchase_service.post_purchase(
        supplier_id=supplier.id,
        warehouse_id=warehouse.id,
        lines=[{"product_id": product.id, "quantity": quantity, "unit_cost": unit_cost}],
        occurred_at=to_utc_z(when) if when else None,
    )


def sell(warehouse, product, quantity, unit_price=None, when=None, customer=None):
    line = {"product_id": product.id, "quantity": quantity}
    if unit_price is not None:
        line["unit_price"] = unit_price
    return sales_service.post_sale(
        warehouse_id=warehouse.id,
        customer_id=customer.id if customer else None,
        lines=[line],
        occurred_at=to_utc_z(when) if when else None,
    )


class TestLowStock:
    def test_rows_summary_and_order(self, supplier, warehouse, category):
        x1 = make_product("X1", reorder_level=5, category=category, supplier=supplier)
        make_product("Y2", reorder_level=10, category=category, supplier=supplier)
        z3 = make_product("Z3", reorder_level=5, category=category)
        receive(supplier, warehouse, x1, 2)
        receive(supplier, warehouse, z3, 20)

        rows, summary = reporting_service.low_stock()

        assert [r["code"] for r in rows] == ["Y2", "X1"]
        y2, x1_row = rows
        assert y2["urgency"] == "CRITICAL"
        assert y2["suggested_order_quantity"] == 20
        assert y2["estimated_restock_cost"] == "200.00"
        assert x1_row["urgency"] == "HIGH"
        assert x1_row["units_needed"] == 3
        assert x1_row["supplier_contact"] == "Ann Smith"
        assert summary == {
            "total_products": 2,
            "critical_count": 1,
            "high_count": 1,
            "medium_count": 0,
            "total_restock_cost": "300.00",
        }

    def test_inactive_products_excluded(self, product):
        catalog_service.deactivate_product(product.id)
        rows, summary = reporting_service.low_stock()
        assert rows == []
        assert summary["total_restock_cost"] == "0.00"


class TestDeadStock:
    def test_never_sold_first_then_oldest(self, supplier, warehouse, category):
        now = utcnow()
        never = make_product("N1", category=category)
        stale = make_product("S1", category=category)
        fresh = make_product("F1", category=category)
        for p in (never, stale, fresh):
            receive(supplier, warehouse, p, 10, when=now - timedelta(days=200))
        sell(warehouse, stale, 1, when=now - timedelta(days=130))
        sell(warehouse, fresh, 1, when=now - timedelta(days=1))

        rows, summary = reporting_service.dead_stock(90, now=now)

        assert [r["code"] for r in rows] == ["N1", "S1"]
        assert rows[0]["days_since_last_sale"] == "Never Sold"
        assert rows[0]["last_sale_date"] is None
        assert rows[0]["dead_stock_value"] == "100.00"
        assert rows[1]["days_since_last_sale"] == 130
        assert rows[1]["recommendation"] == "Run promotional campaign"
        assert summary == {
            "days": 90,
            "total_products": 2,
            "total_units": 19,
            "total_dead_stock_value": "190.00",
            "never_sold_count": 1,
        }

    def test_cancelled_sale_does_not_count_as_sale(self, supplier, warehouse, product):
        receive(supplier, warehouse, product, 5)
        sale = sell(warehouse, product, 1)
        sales_service.cancel_sale(sale.id)

        rows, _ = reporting_service.dead_stock(30)
        assert [r["days_since_last_sale"] for r in rows] == ["Never Sold"]

    def test_out_of_stock_products_are_not_dead(self, product):
        rows, _ = reporting_service.dead_stock(30)
        assert rows == []

    @pytest.mark.parametrize("days,expected", [
        (None, "Consider clearance sale or return to supplier"),
        (365, "Consider clearance sale or return to supplier"),
        (180, "Consider clearance sale or return to supplier"),
        (179, "Run promotional campaign"),
        (120, "Run promotional campaign"),
        (119, "Monitor closely"),
    ])
    def test_recommendation(self, days, expected):
        assert dead_stock_recommendation(days) == expected

    def test_days_parameter_bounds(self):
        assert parse_dead_stock_days(None, 90) == 90
        assert parse_dead_stock_days("30", 90) == 30
        for bad in ("0", "366", "abc", "1.5"):
            with pytest.raises(ValidationFailed):
                parse_dead_stock_days(bad, 90)


class TestPeriodStats:
    def test_gross_profit_is_revenue_minus_cogs(self, supplier, warehouse, product):
        now = utcnow()
        receive(supplier, warehouse, product, 10)
        sell(warehouse, product, 4)
        sell(warehouse, product, 2, unit_price="20.00")
        cancelled = sell(warehouse, product, 3)
        sales_service.cancel_sale(cancelled.id)

        stats = reporting_service.period_stats(now - timedelta(hours=1), now + timedelta(hours=1))

        assert stats["sales_revenue_cents"] == 4 * 1500 + 2 * 2000
        assert stats["cogs_cents"] == 6 * 1000
        assert stats["gross_profit_cents"] == stats["sales_revenue_cents"] - stats["cogs_cents"]
        assert stats["purchases_cost_cents"] == 10_000
        assert stats["sales_count"] == 2

    def test_cogs_uses_cost_at_time_of_sale(self, supplier, warehouse, product):
        now = utcnow()
        receive(supplier, warehouse, product, 5, unit_cost="10.00")
        sell(warehouse, product, 1)
        receive(supplier, warehouse, product, 5, unit_cost="12.00")
        sell(warehouse, product, 1)

        stats = reporting_service.period_stats(now - timedelta(hours=1), now + timedelta(hours=1))
        assert stats["cogs_cents"] == 1000 + 1200

    def test_bounds_are_half_open(self, supplier, warehouse, product):
        start = datetime.combine((utcnow() - timedelta(days=60)).date(), time())
        end = start + timedelta(days=31)
        receive(supplier, warehouse, product, 10, when=start - timedelta(days=1))
        sell(warehouse, product, 1, when=start)
        sell(warehouse, product, 1, when=end)

        stats = reporting_service.period_stats(start, end)
        assert stats["sales_count"] == 1
        assert stats["purchases_cost_cents"] == 0


class TestPeriodParsing:
    def test_defaults_to_current_month(self):
        today = utcnow().date()
        assert parse_period(None, None, None) == (today.year, today.month, None)

    def test_invalid_iso_week(self):
        # 2021 has 52 ISO weeks
        with pytest.raises(ValidationFailed) as excinfo:
            parse_period(2021, 1, 53)
        assert excinfo.value.field == "week"
        assert parse_period(2020, 12, 53) == (2020, 12, 53)

    @pytest.mark.parametrize("year,month", [(2026, 0), (2026, 13), (1969, 1), ("abc", 1)])
    def test_invalid_year_month(self, year, month):
        with pytest.raises(ValidationFailed):
            parse_period(year, month, None)


class TestDashboard:
    def test_default_week_contains_first_of_month(self, db_session):
        data = reporting_service.dashboard(2026, 10)
        # 2026-10-01 is a Thursday
        assert data["selected_period"]["week_start"] == "2026-09-28T00:00:00Z"
        assert data["selected_period"]["week_end"] == "2026-10-05T00:00:00Z"
        assert data["period_stats"]["monthly"]["start"] == "2026-10-01T00:00:00Z"
        assert data["period_stats"]["yearly"]["end"] == "2027-01-01T00:00:00Z"

    def test_explicit_iso_week(self, db_session):
        data = reporting_service.dashboard(2026, 1, 1)
        assert data["selected_period"]["week_start"] == "2025-12-29T00:00:00Z"

    def test_sections(self, supplier, warehouse, product, customer):
        now = utcnow()
        receive(supplier, warehouse, product, 10)
        sell(warehouse, product, 6, customer=customer)

        data = reporting_service.dashboard(now.year, now.month)

        monthly = data["period_stats"]["monthly"]
        assert monthly["sales_revenue"] == "90.00"
        assert monthly["cogs"] == "60.00"
        assert monthly["gross_profit"] == "30.00"
        assert data["inventory"]["total_units"] == 4
        assert data["inventory"]["inventory_value"] == "40.00"
        assert data["inventory"]["low_stock_products"] == 1
        assert data["alerts"]["low_stock"] == 1
        assert data["recent_sales"][0]["customer_name"] == "Walk-in Wholesale"
        assert data["top_products"][0]["total_units_sold"] == 6
        assert data["top_products"][0]["total_profit"] == "30.00"
        assert data["categories"][0]["category_name"] == "Hardware"
        assert data["warehouses"] == [{
            "warehouse_id": warehouse.id,
            "warehouse_name": "Main Warehouse",
            "total_stock": 4,
            "product_count": 1,
        }]


class TestMonthlySales:
    def test_summary_categories_and_trend(self, supplier, warehouse, category, customer):
        garden = catalog_service.create_entity("category", {"name": "Garden"})
        hammer = make_product("H1", category=category)
        rake = make_product("R1", cost="5.00", selling="8.00", category=garden)
        receive(supplier, warehouse, hammer, 10)
        receive(supplier, warehouse, rake, 10, unit_cost="5.00")

        sell(warehouse, hammer, 2, customer=customer)
        sell(warehouse, rake, 5)
        sell(warehouse, hammer, 1, customer=customer)

        now = utcnow()
        data = reporting_service.monthly_sales(now.year, now.month)

        overall = data["overall_stats"]
        assert overall["total_revenue"] == "85.00"
        assert overall["total_profit"] == "30.00"
        assert overall["total_transactions"] == 3
        assert overall["total_units_sold"] == 8

        [month] = data["monthly_summary"]
        assert month["unique_customers"] == 1
        assert month["unique_products_sold"] == 2
        assert month["average_transaction_value"] == "28.33"

        assert [c["category_name"] for c in data["category_performance"]] == ["Hardware", "Garden"]
        assert data["category_performance"][0]["revenue_percentage"] == "52.94"
        assert [p["code"] for p in data["top_products"]] == ["H1", "R1"]
        assert data["daily_trend"][0]["transactions"] == 3

    def test_whole_year_when_month_omitted(self, db_session):
        data = reporting_service.monthly_sales(2025, None)
        assert data["overall_stats"]["month"] == "All"
        assert data["overall_stats"]["average_monthly_revenue"] == "0.00"
        assert data["monthly_summary"] == []


class TestSupplierPerformance:
    def test_sorted_by_inventory_value(self, supplier, warehouse, product):
        catalog_service.create_entity("supplier", {"name": "Budget Parts"})
        receive(supplier, warehouse, product, 10)

        rows = reporting_service.supplier_performance()

        assert [r["supplier_name"] for r in rows] == ["Acme Supply", "Budget Parts"]
        assert rows[0]["inventory_value"] == "100.00"
        assert rows[0]["purchase_count"] == 1
        assert rows[0]["total_purchase_value"] == "100.00"
        assert rows[1]["inventory_value"] == "0.00"
