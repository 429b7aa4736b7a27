from flask import Blueprint, current_app
from sqlalchemy import text

from roster_api.common.http import ok, fail
from roster_api.extensions import db, get_time_service

bp = Blueprint("health", __name__, url_prefix="/api/health")


@bp.get("")
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except Exception as e:
        current_app.logger.warning("Health check DB failure: %s", e)
        return fail("Database unavailable", status=503)
    return ok({"status": "ok", "reference_timezone": get_time_service().zone_name})
