# Overview: System health endpoint.

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import ShopSettings, Variant
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        variant_count = db.session.query(Variant).count()
        settings_present = db.session.query(ShopSettings).count() > 0

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy" if settings_present else "degraded",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "variants": variant_count,
                "shop_settings_initialized": settings_present,
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


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy, or degraded (shop settings not yet initialised)
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    return {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
        }
    }, http_status
