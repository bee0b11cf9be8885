# Overview: System health endpoint.

import time
from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import Supplier, PriceObservation
from goldledger.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/gold")


def check_database_health() -> dict:
    """Run two cheap counts and report latency."""
    start_time = time.time()
    try:
        supplier_count = db.session.query(Supplier).count()
        price_count = db.session.query(PriceObservation).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"suppliers": supplier_count, "price_observations": price_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }), (200 if healthy else 503)
