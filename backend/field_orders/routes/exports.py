# Overview: Flask API routes for exports; renders order items as CSV or XLSX downloads.

from flask import Blueprint, Response, g, jsonify, request

from ..decorators import require_auth
from ..services import export_service
from ..services.export_service import ExportError
from ..services.status_service import StatusError

exports_bp = Blueprint("exports", __name__, url_prefix="/api/exports")


def _parse_ids(raw: str | None) -> list[int] | None:
    if not raw:
        return None
    try:
        return [int(part) for part in raw.split(",") if part.strip()]
    except ValueError:
        raise ExportError("ids must be a comma separated list of integers")


@exports_bp.get("/order-items")
@require_auth
def export_order_items():
    """
    Query params:
    - ids: comma separated order ids (takes precedence)
    - status: status filter when no ids are given ('all' or omitted for every order)
    - format: xlsx (default) or csv
    """
    try:
        content, filename, mimetype = export_service.export_order_items(
            g.actor,
            order_ids=_parse_ids(request.args.get("ids")),
            status=request.args.get("status"),
            fmt=request.args.get("format", "xlsx"),
        )
    except (ExportError, StatusError) as e:
        return jsonify({"error": str(e)}), 400

    return Response(
        content,
        mimetype=mimetype,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
