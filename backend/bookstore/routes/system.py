# Overview: Flask API routes for system health; reports database, session and ledger status.

"""
System health endpoint.

Each check returns {"status": healthy | degraded | unhealthy, "latency_ms", ...}.
Any unhealthy check turns the overall response into a 503; degraded is
still operational and answers 200.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import User, Product, Order, SessionToken
from ..services import inventory_service
from ..time_utils import utcnow, to_utc_z


system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


def check_database_health() -> dict:
    """Check connectivity with a count over the core tables."""
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "products": db.session.query(Product).count(),
            "orders": db.session.query(Order).count(),
        }
        return {"status": "healthy", "latency_ms": _elapsed_ms(start_time), "details": details}
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Database error"}


def check_session_service_health() -> dict:
    start_time = time.time()
    try:
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()
        expired_sessions = db.session.query(SessionToken).filter(
            SessionToken.expires_at < utcnow(),
            SessionToken.is_revoked == False,  # noqa: E712
        ).count()
        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": {
                "active_sessions": active_sessions,
                "expired_pending_cleanup": expired_sessions,
            },
        }
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Session service health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Session service error"}


def check_inventory_health() -> dict:
    """Cached stock counters must agree with the ledger; drift is reported as degraded."""
    start_time = time.time()
    try:
        drift = inventory_service.check_stock_consistency()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Inventory health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Inventory error"}

    if drift:
        return {
            "status": "degraded",
            "latency_ms": _elapsed_ms(start_time),
            "warning": f"{len(drift)} product(s) with stock drift",
            "details": {"drift": drift},
        }
    return {"status": "healthy", "latency_ms": _elapsed_ms(start_time)}


@system_bp.get("/health")
def health():
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "session_service": check_session_service_health(),
        "inventory": check_inventory_health(),
    }
    statuses = [check["status"] for check in checks.values()]

    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": _elapsed_ms(start_time),
        "checks": checks,
    }
    return response, http_status
