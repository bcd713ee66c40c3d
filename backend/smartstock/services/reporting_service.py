# Overview: Analytics read-models; low-stock, dead-stock, dashboard and sales aggregates derived from the ledger.

"""
Reporting invariants

- Every figure is computed at query time from the ledger, documents and
  catalog. Nothing here writes.
- Effective sales are POSTED and not a cancellation; cancelled originals
  and their compensators are both excluded, so revenue, COGS and counts
  move together.
- Period bounds are half-open: start <= occurred_at < end (UTC).
- COGS is SUM(|delta| * unit_cost_snapshot) over SALE_OUT movements.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import func

from ..errors import ValidationFailed
from ..extensions import db
from ..models import (
    Category,
    Product,
    ProductStock,
    PurchaseHeader,
    PurchaseItem,
    SaleHeader,
    SaleItem,
    StockMovement,
    Supplier,
    Warehouse,
)
from ..time_utils import iso_week_range, month_range, to_utc_z, utcnow, week_containing, year_range
from ..validation import divide_cents_half_up, format_cents, parse_int
from .alert_service import URGENCY_RANK, classify_urgency, open_alert_counts
from .sales_service import effective_sales_filter, last_sale_movements

MIN_DEAD_STOCK_DAYS = 1
MAX_DEAD_STOCK_DAYS = 365


def _stock_totals_subquery():
    return (
        db.session.query(
            ProductStock.product_id.label("product_id"),
            func.sum(ProductStock.on_hand).label("on_hand"),
        )
        .group_by(ProductStock.product_id)
        .subquery()
    )


def _active_products_with_stock():
    """[(Product, total_on_hand)] for every active product."""
    totals = _stock_totals_subquery()
    rows = (
        db.session.query(Product, func.coalesce(totals.c.on_hand, 0))
        .outerjoin(totals, totals.c.product_id == Product.id)
        .filter(Product.is_active.is_(True))
        .all()
    )
    return [(product, int(on_hand or 0)) for product, on_hand in rows]


# ---------------------------------------------------------------------------
# Low stock / dead stock
# ---------------------------------------------------------------------------

def low_stock() -> tuple[list[dict], dict]:
    """Active products at or below their reorder level, most urgent first."""
    rows = []
    for product, on_hand in _active_products_with_stock():
        if on_hand > product.reorder_level:
            continue
        suggested = 2 * product.reorder_level
        supplier = product.supplier
        rows.append({
            "product_id": product.id,
            "code": product.code,
            "name": product.name,
            "category_name": product.category.name if product.category else None,
            "supplier_name": supplier.name if supplier else None,
            "supplier_contact": supplier.contact_person if supplier else None,
            "supplier_email": supplier.email if supplier else None,
            "supplier_phone": supplier.phone if supplier else None,
            "current_stock": on_hand,
            "reorder_level": product.reorder_level,
            "units_needed": max(0, product.reorder_level - on_hand),
            "suggested_order_quantity": suggested,
            "cost_price": format_cents(product.cost_price_cents),
            "estimated_restock_cost_cents": suggested * product.cost_price_cents,
            "urgency": classify_urgency(on_hand, product.reorder_level),
        })

    rows.sort(key=lambda r: (URGENCY_RANK[r["urgency"]], r["current_stock"], r["code"]))

    total_cost = sum(r["estimated_restock_cost_cents"] for r in rows)
    for row in rows:
        row["estimated_restock_cost"] = format_cents(row.pop("estimated_restock_cost_cents"))

    summary = {
        "total_products": len(rows),
        "critical_count": sum(1 for r in rows if r["urgency"] == "CRITICAL"),
        "high_count": sum(1 for r in rows if r["urgency"] == "HIGH"),
        "medium_count": sum(1 for r in rows if r["urgency"] == "MEDIUM"),
        "total_restock_cost": format_cents(total_cost),
    }
    return rows, summary


def dead_stock_recommendation(days_since: int | None) -> str:
    if days_since is None or days_since >= 180:
        return "Consider clearance sale or return to supplier"
    if days_since >= 120:
        return "Run promotional campaign"
    return "Monitor closely"


def parse_dead_stock_days(value, default: int) -> int:
    if value in (None, ""):
        return default
    days = parse_int(value, "days")
    if not MIN_DEAD_STOCK_DAYS <= days <= MAX_DEAD_STOCK_DAYS:
        raise ValidationFailed("days", f"must be between {MIN_DEAD_STOCK_DAYS} and {MAX_DEAD_STOCK_DAYS}")
    return days


def dead_stock(days: int = 90, *, now: datetime | None = None) -> tuple[list[dict], dict]:
    """
    Active products with stock that never sold, or whose latest
    (non-cancelled) sale is at least ``days`` days old. Products created
    recently are included too.
    """
    if not MIN_DEAD_STOCK_DAYS <= days <= MAX_DEAD_STOCK_DAYS:
        raise ValidationFailed("days", f"must be between {MIN_DEAD_STOCK_DAYS} and {MAX_DEAD_STOCK_DAYS}")
    now = now or utcnow()

    last_sales = last_sale_movements()
    last_by_product = dict(
        db.session.query(last_sales.c.product_id, last_sales.c.last_sold_at).all()
    )

    rows = []
    for product, on_hand in _active_products_with_stock():
        if on_hand <= 0:
            continue
        last_sold_at = last_by_product.get(product.id)
        days_since = (now - last_sold_at).days if last_sold_at is not None else None
        if days_since is not None and days_since < days:
            continue
        value_cents = on_hand * product.cost_price_cents
        rows.append({
            "product_id": product.id,
            "code": product.code,
            "name": product.name,
            "category_name": product.category.name if product.category else None,
            "supplier_name": product.supplier.name if product.supplier else None,
            "current_stock": on_hand,
            "cost_price": format_cents(product.cost_price_cents),
            "last_sale_date": to_utc_z(last_sold_at),
            "days_since_last_sale": days_since if days_since is not None else "Never Sold",
            "dead_stock_value_cents": value_cents,
            "recommendation": dead_stock_recommendation(days_since),
            "_sort": days_since,
        })

    # Never sold first, then oldest sale first
    rows.sort(key=lambda r: r["code"])
    rows.sort(key=lambda r: (r["_sort"] is not None, -(r["_sort"] or 0)))

    total_value = sum(r["dead_stock_value_cents"] for r in rows)
    for row in rows:
        row.pop("_sort")
        row["dead_stock_value"] = format_cents(row.pop("dead_stock_value_cents"))

    summary = {
        "days": days,
        "total_products": len(rows),
        "total_units": sum(r["current_stock"] for r in rows),
        "total_dead_stock_value": format_cents(total_value),
        "never_sold_count": sum(1 for r in rows if r["days_since_last_sale"] == "Never Sold"),
    }
    return rows, summary


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

def _cancelled_sale_ids():
    return db.select(SaleHeader.id).where(SaleHeader.status == "CANCELLED")


def period_stats(start: datetime, end: datetime) -> dict:
    """Revenue, purchases, COGS and profit for [start, end), in cents."""
    in_period = db.and_(SaleHeader.occurred_at >= start, SaleHeader.occurred_at < end)

    revenue, sales_count = (
        db.session.query(
            func.coalesce(func.sum(SaleItem.line_total_cents), 0),
            func.count(func.distinct(SaleHeader.id)),
        )
        .join(SaleHeader, SaleHeader.id == SaleItem.sale_id)
        .filter(effective_sales_filter(), in_period)
        .one()
    )

    purchases_cost = (
        db.session.query(func.coalesce(func.sum(PurchaseItem.line_total_cents), 0))
        .join(PurchaseHeader, PurchaseHeader.id == PurchaseItem.purchase_id)
        .filter(
            PurchaseHeader.status == "POSTED",
            PurchaseHeader.compensates_id.is_(None),
            PurchaseHeader.occurred_at >= start,
            PurchaseHeader.occurred_at < end,
        )
        .scalar()
    )

    cogs = (
        db.session.query(
            func.coalesce(func.sum(-StockMovement.delta * StockMovement.unit_cost_snapshot_cents), 0)
        )
        .filter(
            StockMovement.kind == "SALE_OUT",
            StockMovement.occurred_at >= start,
            StockMovement.occurred_at < end,
            StockMovement.document_id.notin_(_cancelled_sale_ids()),
        )
        .scalar()
    )

    revenue = int(revenue or 0)
    cogs = int(cogs or 0)
    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "sales_revenue_cents": revenue,
        "purchases_cost_cents": int(purchases_cost or 0),
        "cogs_cents": cogs,
        "gross_profit_cents": revenue - cogs,
        "sales_count": int(sales_count or 0),
    }


def _format_period(stats: dict) -> dict:
    return {
        "start": stats["start"],
        "end": stats["end"],
        "sales_revenue": format_cents(stats["sales_revenue_cents"]),
        "purchases_cost": format_cents(stats["purchases_cost_cents"]),
        "cogs": format_cents(stats["cogs_cents"]),
        "gross_profit": format_cents(stats["gross_profit_cents"]),
        "sales_count": stats["sales_count"],
    }


def parse_period(year, month, week) -> tuple[int, int, int | None]:
    today = utcnow().date()
    year = today.year if year in (None, "") else parse_int(year, "year")
    month = today.month if month in (None, "") else parse_int(month, "month")
    if not 1970 <= year <= 9998:
        raise ValidationFailed("year", "out of range")
    if not 1 <= month <= 12:
        raise ValidationFailed("month", "must be between 1 and 12")
    if week in (None, ""):
        return year, month, None
    week = parse_int(week, "week")
    try:
        date.fromisocalendar(year, week, 1)
    except ValueError:
        raise ValidationFailed("week", f"ISO year {year} has no week {week}")
    return year, month, week


def inventory_overview() -> dict:
    products = _active_products_with_stock()
    total_units = sum(on_hand for _, on_hand in products)
    value = sum(on_hand * p.cost_price_cents for p, on_hand in products)
    average = Decimal(total_units) / len(products) if products else Decimal(0)
    return {
        "total_products": len(products),
        "total_units": total_units,
        "inventory_value": format_cents(value),
        "low_stock_products": sum(1 for p, on_hand in products if on_hand <= p.reorder_level),
        "out_of_stock_products": sum(1 for _, on_hand in products if on_hand == 0),
        "average_stock": str(average.quantize(Decimal("0.01"))),
    }


def recent_sales(limit: int = 5) -> list[dict]:
    sales = (
        db.session.query(SaleHeader)
        .filter(effective_sales_filter())
        .order_by(SaleHeader.occurred_at.desc(), SaleHeader.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": sale.id,
            "invoice_number": sale.invoice_number,
            "customer_name": sale.customer.name if sale.customer else None,
            "warehouse_name": sale.warehouse.name if sale.warehouse else None,
            "total_amount": format_cents(sale.total_amount_cents),
            "item_count": len(sale.items),
            "occurred_at": to_utc_z(sale.occurred_at),
        }
        for sale in sales
    ]


def _product_sales(start: datetime, end: datetime) -> list[dict]:
    """Per-product units, revenue and profit over effective sales in [start, end)."""
    rows = (
        db.session.query(
            Product.id,
            Product.code,
            Product.name,
            Category.name,
            func.sum(SaleItem.quantity),
            func.sum(SaleItem.line_total_cents),
            func.sum(SaleItem.quantity * SaleItem.unit_cost_snapshot_cents),
            func.count(SaleItem.id),
        )
        .join(SaleItem, SaleItem.product_id == Product.id)
        .join(SaleHeader, SaleHeader.id == SaleItem.sale_id)
        .outerjoin(Category, Category.id == Product.category_id)
        .filter(
            effective_sales_filter(),
            SaleHeader.occurred_at >= start,
            SaleHeader.occurred_at < end,
        )
        .group_by(Product.id, Product.code, Product.name, Category.name)
        .all()
    )
    result = []
    for product_id, code, name, category_name, units, revenue, cost, line_count in rows:
        units = int(units or 0)
        revenue = int(revenue or 0)
        line_count = int(line_count or 0)
        result.append({
            "product_id": product_id,
            "code": code,
            "name": name,
            "category_name": category_name,
            "total_units_sold": units,
            "revenue_cents": revenue,
            "profit_cents": revenue - int(cost or 0),
            "number_of_sales": line_count,
            "avg_units_per_sale": str((Decimal(units) / line_count).quantize(Decimal("0.01"))) if line_count else "0.00",
        })
    # Revenue desc, stable tiebreak by code
    result.sort(key=lambda r: r["code"])
    result.sort(key=lambda r: r["revenue_cents"], reverse=True)
    return result


def _format_product_sales(row: dict) -> dict:
    row = dict(row)
    row["total_revenue"] = format_cents(row.pop("revenue_cents"))
    row["total_profit"] = format_cents(row.pop("profit_cents"))
    return row


def category_distribution() -> list[dict]:
    products = _active_products_with_stock()
    stats: dict[int, dict] = {}
    for product, on_hand in products:
        if product.category_id is None:
            continue
        entry = stats.setdefault(product.category_id, {"count": 0, "stock": 0, "value": 0})
        entry["count"] += 1
        entry["stock"] += on_hand
        entry["value"] += on_hand * product.cost_price_cents

    rows = []
    for category in db.session.query(Category).order_by(Category.name.asc()).all():
        entry = stats.get(category.id, {"count": 0, "stock": 0, "value": 0})
        rows.append({
            "category_id": category.id,
            "category_name": category.name,
            "product_count": entry["count"],
            "total_stock": entry["stock"],
            "inventory_value_cents": entry["value"],
        })
    rows.sort(key=lambda r: r["inventory_value_cents"], reverse=True)
    for row in rows:
        row["inventory_value"] = format_cents(row.pop("inventory_value_cents"))
    return rows


def warehouse_summary() -> list[dict]:
    stats = {
        warehouse_id: (int(total or 0), int(count or 0))
        for warehouse_id, total, count in (
            db.session.query(
                ProductStock.warehouse_id,
                func.sum(ProductStock.on_hand),
                func.count(func.distinct(ProductStock.product_id)),
            )
            .group_by(ProductStock.warehouse_id)
            .all()
        )
    }
    rows = []
    for warehouse in (
        db.session.query(Warehouse)
        .filter(Warehouse.is_active.is_(True))
        .order_by(Warehouse.name.asc())
        .all()
    ):
        total, count = stats.get(warehouse.id, (0, 0))
        rows.append({
            "warehouse_id": warehouse.id,
            "warehouse_name": warehouse.name,
            "total_stock": total,
            "product_count": count,
        })
    return rows


def dashboard(year=None, month=None, week=None) -> dict:
    """
    Week / month / year financials for the selected period plus inventory
    overview. Without a week, the ISO week containing the 1st of the month
    is used.
    """
    year, month, week = parse_period(year, month, week)

    if week is not None:
        week_start, week_end = iso_week_range(year, week)
    else:
        week_start, week_end = week_containing(date(year, month, 1))
    month_start, month_end = month_range(year, month)
    year_start, year_end = year_range(year)

    top_products = [_format_product_sales(r) for r in _product_sales(month_start, month_end)[:5]]

    return {
        "selected_period": {
            "year": year,
            "month": month,
            "week": week,
            "week_start": to_utc_z(week_start),
            "week_end": to_utc_z(week_end),
        },
        "period_stats": {
            "weekly": _format_period(period_stats(week_start, week_end)),
            "monthly": _format_period(period_stats(month_start, month_end)),
            "yearly": _format_period(period_stats(year_start, year_end)),
        },
        "inventory": inventory_overview(),
        "alerts": open_alert_counts(),
        "recent_sales": recent_sales(),
        "top_products": top_products,
        "categories": category_distribution(),
        "warehouses": warehouse_summary(),
    }


# ---------------------------------------------------------------------------
# Monthly sales analytics
# ---------------------------------------------------------------------------

def _effective_sale_lines(start: datetime, end: datetime):
    return (
        db.session.query(SaleItem, SaleHeader, Product, Category.name)
        .join(SaleHeader, SaleHeader.id == SaleItem.sale_id)
        .join(Product, Product.id == SaleItem.product_id)
        .outerjoin(Category, Category.id == Product.category_id)
        .filter(
            effective_sales_filter(),
            SaleHeader.occurred_at >= start,
            SaleHeader.occurred_at < end,
        )
        .all()
    )


def _percentage(part: int, whole: int) -> str:
    if not whole:
        return "0.00"
    return str((Decimal(part) * 100 / Decimal(whole)).quantize(Decimal("0.01")))


def monthly_sales(year=None, month=None) -> dict:
    """Monthly summary, top 10 products, category performance and daily trend."""
    today = utcnow().date()
    year = today.year if year in (None, "") else parse_int(year, "year")
    if not 1970 <= year <= 9998:
        raise ValidationFailed("year", "out of range")
    if month in (None, ""):
        month = None
        start, end = year_range(year)
    else:
        month = parse_int(month, "month")
        if not 1 <= month <= 12:
            raise ValidationFailed("month", "must be between 1 and 12")
        start, end = month_range(year, month)

    lines = _effective_sale_lines(start, end)

    months: dict[int, dict] = {}
    categories: dict[str, dict] = {}
    days: dict[date, dict] = {}
    total_revenue = 0

    for item, sale, product, category_name in lines:
        revenue = item.line_total_cents
        profit = item.profit_cents
        total_revenue += revenue

        m = months.setdefault(sale.occurred_at.month, {
            "sales": set(), "units": 0, "revenue": 0, "profit": 0,
            "lines": 0, "products": set(), "customers": set(),
        })
        m["sales"].add(sale.id)
        m["units"] += item.quantity
        m["revenue"] += revenue
        m["profit"] += profit
        m["lines"] += 1
        m["products"].add(product.id)
        if sale.customer_id is not None:
            m["customers"].add(sale.customer_id)

        if category_name is not None:
            c = categories.setdefault(category_name, {
                "category_id": product.category_id, "sales": set(), "units": 0,
                "revenue": 0, "profit": 0, "products": set(),
            })
            c["sales"].add(sale.id)
            c["units"] += item.quantity
            c["revenue"] += revenue
            c["profit"] += profit
            c["products"].add(product.id)

        d = days.setdefault(sale.occurred_at.date(), {"sales": set(), "units": 0, "revenue": 0})
        d["sales"].add(sale.id)
        d["units"] += item.quantity
        d["revenue"] += revenue

    monthly_summary = []
    for month_no in sorted(months, reverse=True):
        m = months[month_no]
        transactions = len(m["sales"])
        monthly_summary.append({
            "year": year,
            "month": month_no,
            "month_name": calendar.month_name[month_no],
            "total_transactions": transactions,
            "total_units_sold": m["units"],
            "total_revenue": format_cents(m["revenue"]),
            "total_profit": format_cents(m["profit"]),
            "average_transaction_value": format_cents(divide_cents_half_up(m["revenue"], transactions)),
            "unique_products_sold": len(m["products"]),
            "unique_customers": len(m["customers"]),
            "_revenue": m["revenue"],
            "_profit": m["profit"],
        })

    category_performance = []
    for name, c in categories.items():
        category_performance.append({
            "category_id": c["category_id"],
            "category_name": name,
            "total_transactions": len(c["sales"]),
            "total_units_sold": c["units"],
            "total_revenue": format_cents(c["revenue"]),
            "total_profit": format_cents(c["profit"]),
            "unique_products_sold": len(c["products"]),
            "revenue_percentage": _percentage(c["revenue"], total_revenue),
            "_revenue": c["revenue"],
        })
    category_performance.sort(key=lambda r: r["category_name"])
    category_performance.sort(key=lambda r: r["_revenue"], reverse=True)

    daily_trend = [
        {
            "date": day.isoformat(),
            "transactions": len(days[day]["sales"]),
            "units_sold": days[day]["units"],
            "revenue": format_cents(days[day]["revenue"]),
        }
        for day in sorted(days, reverse=True)
    ]

    top_products = [_format_product_sales(r) for r in _product_sales(start, end)[:10]]

    revenue_sum = sum(m["_revenue"] for m in monthly_summary)
    profit_sum = sum(m["_profit"] for m in monthly_summary)
    overall = {
        "year": year,
        "month": month if month is not None else "All",
        "total_revenue": format_cents(revenue_sum),
        "total_profit": format_cents(profit_sum),
        "total_transactions": sum(m["total_transactions"] for m in monthly_summary),
        "total_units_sold": sum(m["total_units_sold"] for m in monthly_summary),
        "average_monthly_revenue": format_cents(
            divide_cents_half_up(revenue_sum, len(monthly_summary)) if monthly_summary else 0
        ),
    }

    for row in monthly_summary:
        row.pop("_revenue")
        row.pop("_profit")
    for row in category_performance:
        row.pop("_revenue")

    return {
        "overall_stats": overall,
        "monthly_summary": monthly_summary,
        "top_products": top_products,
        "category_performance": category_performance,
        "daily_trend": daily_trend,
    }


# ---------------------------------------------------------------------------
# Suppliers
# ---------------------------------------------------------------------------

def supplier_performance() -> list[dict]:
    products = _active_products_with_stock()
    product_stats: dict[int, dict] = {}
    for product, on_hand in products:
        if product.supplier_id is None:
            continue
        entry = product_stats.setdefault(product.supplier_id, {"count": 0, "value": 0})
        entry["count"] += 1
        entry["value"] += on_hand * product.cost_price_cents

    purchase_stats = {
        supplier_id: (int(count or 0), int(total or 0))
        for supplier_id, count, total in (
            db.session.query(
                PurchaseHeader.supplier_id,
                func.count(PurchaseHeader.id),
                func.sum(PurchaseHeader.total_cost_cents),
            )
            .filter(PurchaseHeader.status == "POSTED", PurchaseHeader.compensates_id.is_(None))
            .group_by(PurchaseHeader.supplier_id)
            .all()
        )
    }

    rows = []
    for supplier in db.session.query(Supplier).all():
        entry = product_stats.get(supplier.id, {"count": 0, "value": 0})
        purchase_count, purchase_total = purchase_stats.get(supplier.id, (0, 0))
        rows.append({
            "supplier_id": supplier.id,
            "supplier_name": supplier.name,
            "contact_person": supplier.contact_person,
            "email": supplier.email,
            "phone": supplier.phone,
            "is_active": supplier.is_active,
            "product_count": entry["count"],
            "inventory_value_cents": entry["value"],
            "purchase_count": purchase_count,
            "total_purchase_value": format_cents(purchase_total),
        })
    rows.sort(key=lambda r: r["supplier_name"].lower())
    rows.sort(key=lambda r: r["inventory_value_cents"], reverse=True)
    for row in rows:
        row["inventory_value"] = format_cents(row.pop("inventory_value_cents"))
    return rows
