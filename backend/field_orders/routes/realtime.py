# Overview: Server-sent event stream of order changes.

from flask import Blueprint, Response, current_app, g

from ..decorators import require_auth
from ..services import realtime_service

realtime_bp = Blueprint("realtime", __name__, url_prefix="/api/realtime")


@realtime_bp.get("/orders")
@require_auth
def stream_order_changes():
    """
    INSERT/UPDATE/DELETE events for orders the caller can read.

    Browsers connect with EventSource, passing `apikey` and `access_token`
    in the query string.
    """
    sub = realtime_service.get_broker().subscribe(g.actor)
    heartbeat = current_app.config.get("REALTIME_HEARTBEAT_SECONDS", 15.0)
    return Response(
        realtime_service.iter_sse(sub, heartbeat=heartbeat),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
