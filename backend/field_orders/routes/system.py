# backend/field_orders/routes/system.py
"""Health endpoint."""

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Order, Product, User
from ..services.realtime_service import get_broker

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "products": db.session.query(Product).count(),
            "orders": db.session.query(Order).count(),
        }
    except SQLAlchemyError as e:
        current_app.logger.exception("Failed database health check")
        return {"status": "unhealthy", "error": str(e)}
    return {
        "status": "healthy",
        "latency_ms": round((time.time() - start_time) * 1000, 2),
        "details": details,
    }


@system_bp.get("/health")
def health():
    database = check_database_health()
    status = "ok" if database["status"] == "healthy" else "degraded"
    body = {
        "status": status,
        "database": database,
        "realtime_subscribers": get_broker().subscriber_count,
    }
    return body, 200 if status == "ok" else 503
