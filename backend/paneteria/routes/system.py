# backend/paneteria/routes/system.py
"""
System health endpoint.

Reports database connectivity and the state of the dashboard store
(session, last snapshot, last refresh error).
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db, get_store
from paneteria.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_store_health() -> dict:
    store = get_store()
    snapshot = store.snapshot
    age_seconds = None
    if snapshot.loaded_at is not None:
        age_seconds = round((utcnow() - snapshot.loaded_at).total_seconds(), 1)

    details = {
        "session_open": store.has_session,
        "loaded_at": to_utc_z(snapshot.loaded_at),
        "snapshot_age_seconds": age_seconds,
        "orders": len(snapshot.orders),
    }
    if store.error:
        # Stale snapshot is still served; the dashboard shows a retry
        return {"status": "degraded", "warning": store.error, "details": details}
    return {"status": "healthy", "details": details}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (last refresh failed, stale snapshot served)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    store_health = check_store_health()

    all_checks = [database_health, store_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "dashboard_store": store_health,
        },
    }
    return response, http_status
