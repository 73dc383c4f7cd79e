# Overview: Flask API routes for dashboard reports; parses query params and returns JSON responses.

from flask import Blueprint, request, g

from ..services import reporting_service
from ..decorators import require_auth

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/top-selling-products")
@require_auth
def top_selling_products_route():
    """
    Query params:
    - limit: int (default 5)
    - days: int (default 30)
    """
    limit = request.args.get("limit", type=int) or 5
    days = request.args.get("days", type=int) or 30

    report = reporting_service.top_selling_products(owner_id=g.owner_id, limit=limit, days=days)
    return {
        "success": True,
        "message": f"Top {limit} selling products from last {days} days retrieved successfully.",
        **report,
    }


@dashboard_bp.get("/sales-over-time")
@require_auth
def sales_over_time_route():
    """
    Query params:
    - period: daily | weekly | yearly (default daily)
    - numPeriods: int (default 30)
    """
    period = request.args.get("period") or "daily"
    num_periods = request.args.get("numPeriods", type=int) or 30

    report = reporting_service.sales_over_time(owner_id=g.owner_id, period=period, num_periods=num_periods)
    return {
        "success": True,
        "message": f"Sales and purchase data for last {num_periods} {period} periods retrieved successfully.",
        **report,
    }
