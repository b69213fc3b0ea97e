# backend/printshop/routes/system.py
"""
System health and version endpoints.

Health checks cover the database and the finalization queue; the queue
is reported as degraded when jobs are waiting on manual reconciliation.
"""

import sys
import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import FinalizeFilesJob, Order, SessionToken, User
from ..models.orders import JOB_NEEDS_RECONCILIATION, JOB_PENDING
from printshop.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")

API_VERSION = "1.0.0"


def check_database_health() -> dict:
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        order_count = db.session.query(Order).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "orders": order_count,
                "active_sessions": active_sessions,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_finalization_queue_health() -> dict:
    start_time = time.time()
    try:
        pending = db.session.query(FinalizeFilesJob).filter_by(status=JOB_PENDING).count()
        stuck = db.session.query(FinalizeFilesJob).filter_by(status=JOB_NEEDS_RECONCILIATION).count()
        elapsed_ms = (time.time() - start_time) * 1000
        result = {
            "status": "degraded" if stuck else "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"pending": pending, "needs_reconciliation": stuck},
        }
        if stuck:
            result["warning"] = f"{stuck} finalization job(s) need reconciliation"
        return result
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Finalization queue health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Finalization queue error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: a dependency is unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    queue_health = check_finalization_queue_health()

    all_checks = [database_health, queue_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "finalization_queue": queue_health,
        },
    }, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment info."""
    return {
        "api_version": API_VERSION,
        "environment": "production" if not current_app.debug else "development",
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
