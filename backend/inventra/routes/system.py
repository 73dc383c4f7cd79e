# Overview: System health endpoint and scheduler-triggered sweep endpoints.

"""
System routes.

/health reports database reachability. /api/cron/* are called by an external
scheduler and are guarded by CRON_SECRET instead of a user session.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Invoice, Product, User
from ..services import maintenance_service
from ..decorators import require_cron_secret
from inventra.time_utils import utcnow

system_bp = Blueprint("system", __name__)
cron_bp = Blueprint("cron", __name__, url_prefix="/api/cron")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        product_count = db.session.query(Product).count()
        invoice_count = db.session.query(Invoice).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "products": product_count,
                "invoices": invoice_count,
            }
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unhealthy
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }
    return response, 200 if healthy else 503


@cron_bp.post("/product-expiry")
@require_cron_secret
def product_expiry_route():
    """Mark products past their expiry date as Expired."""
    count = maintenance_service.expire_products()
    return {"success": True, "message": f"{count} products marked as Expired.", "updated_count": count}


@cron_bp.post("/invoice-overdue")
@require_cron_secret
def invoice_overdue_route():
    """Move past-due Unpaid invoices to Overdue."""
    count = maintenance_service.mark_overdue_invoices()
    return {"success": True, "message": f"{count} invoices marked as Overdue.", "updated_count": count}
