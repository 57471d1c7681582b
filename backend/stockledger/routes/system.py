# backend/stockledger/routes/system.py
"""
System health endpoint.

Used by load balancers and deployment checks; no acting user required.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, Location, DocumentSequence
from stockledger.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        location_count = db.session.query(Location).count()
        sequence_count = db.session.query(DocumentSequence).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "locations": location_count,
                "document_sequences": sequence_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: database reachable
    - 503: database unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
        }
    }

    return response, http_status
