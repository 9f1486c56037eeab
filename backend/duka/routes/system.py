# backend/duka/routes/system.py
"""
System health and version endpoints.

The health check also reports the stock-sync backlog: a shop with pending
StockSyncIssue rows is still trading, but its on-hand figures are off until
`flask stock retry-sync` clears them.
"""

import sys
import time
from flask import Blueprint, current_app

from ..extensions import db
from ..models import Product, Sale, StockSyncIssue, Supplier
from ..models.sales import ISSUE_PENDING, SYNC_STATUS_PARTIAL
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """Count rows in the core tables; any failure marks the database unhealthy."""
    start_time = time.time()
    try:
        details = {
            "products": db.session.query(Product).count(),
            "sales": db.session.query(Sale).count(),
            "suppliers": db.session.query(Supplier).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


def check_stock_sync_health() -> dict:
    try:
        pending = db.session.query(StockSyncIssue).filter_by(status=ISSUE_PENDING).count()
        # PARTIAL sales whose failed lines never made it into the queue
        queued = db.session.query(StockSyncIssue.id).filter(StockSyncIssue.sale_id == Sale.id).exists()
        unqueued = (
            db.session.query(Sale)
            .filter(Sale.stock_sync_status == SYNC_STATUS_PARTIAL, ~queued)
            .count()
        )
    except Exception:
        current_app.logger.exception("Stock sync health check failed")
        return {"status": "unhealthy", "error": "Stock sync check error"}
    return {
        "status": "degraded" if pending or unqueued else "healthy",
        "details": {"pending_issues": pending, "unqueued_partial_sales": unqueued},
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy, or degraded (stock sync backlog)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    stock_sync_health = check_stock_sync_health()

    all_checks = [database_health, stock_sync_health]
    if any(c["status"] == "unhealthy" for c in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(c["status"] == "degraded" for c in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    total_elapsed_ms = (time.time() - start_time) * 1000
    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "stock_sync": stock_sync_health,
        },
    }, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": "0.1.0",
        "shop_name": current_app.config["SHOP_NAME"],
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
