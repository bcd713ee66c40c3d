# Overview: Flask API routes for analytics; dashboard, monthly sales and supplier performance.

"""
Analytics API routes

All figures are computed from the ledger at request time. Periods are UTC
and half-open.
"""

from flask import Blueprint, request

from ..decorators import require_auth
from ..responses import ok
from ..services import reporting_service


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/analytics")


@analytics_bp.get("/dashboard")
@require_auth
def dashboard_route():
    """
    Query params:
    - year, month: selected month (default: current UTC month)
    - week: ISO week number of ``year`` (default: week containing the 1st)
    """
    data = reporting_service.dashboard(
        year=request.args.get("year"),
        month=request.args.get("month"),
        week=request.args.get("week"),
    )
    return ok(data, "Dashboard data")


@analytics_bp.get("/monthly-sales")
@require_auth
def monthly_sales_route():
    data = reporting_service.monthly_sales(
        year=request.args.get("year"),
        month=request.args.get("month"),
    )
    return ok(data, "Monthly sales analytics")


@analytics_bp.get("/supplier-performance")
@require_auth
def supplier_performance_route():
    rows = reporting_service.supplier_performance()
    return ok(rows, f"{len(rows)} supplier(s)")
