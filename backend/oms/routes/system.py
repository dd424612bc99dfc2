# backend/oms/routes/system.py
"""
System health endpoint.

Reports database connectivity and whether the order status catalog has
been seeded, for deployment debugging.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import OrderStatus, Organization
from oms.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and the status catalog seed.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        org_count = db.session.query(Organization).count()
        system_statuses = db.session.query(OrderStatus).filter(OrderStatus.org_id.is_(None)).count()

        elapsed_ms = (time.time() - start_time) * 1000

        if system_statuses == 0:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "Order statuses not seeded; run `flask system init`",
                "details": {"organizations": org_count, "system_statuses": 0},
            }

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "organizations": org_count,
                "system_statuses": system_statuses,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    overall = database["status"]
    body = {
        "status": overall,
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }
    return jsonify(body), (503 if overall == "unhealthy" else 200)
