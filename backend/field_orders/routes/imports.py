# Overview: Flask API routes for imports; parses input and returns JSON responses.

"""
Import Routes

Multipart upload with a `file` field (.csv or .xlsx).
"""

from flask import Blueprint, Response, current_app, g, jsonify, request

from ..decorators import require_auth
from ..policies import PolicyError
from ..services import import_service
from ..services.import_service import ImportFileError
from ..validation import ValidationError

imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")


def _uploaded_rows():
    if "file" not in request.files:
        raise ImportFileError("file is required")
    file = request.files["file"]
    return import_service.read_rows(file.filename or "", file.stream)


@imports_bp.post("/products")
@require_auth
def import_products_route():
    try:
        rows = _uploaded_rows()
        report = import_service.import_products(g.actor, rows)
    except (ImportFileError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to import products")
        return jsonify({"error": "Failed to import products"}), 500
    return jsonify(report), 200


@imports_bp.post("/customers")
@require_auth
def import_customers_route():
    try:
        rows = _uploaded_rows()
        report = import_service.import_customers(g.actor, rows)
    except (ImportFileError, ValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to import customers")
        return jsonify({"error": "Failed to import customers"}), 500
    return jsonify(report), 200


@imports_bp.get("/products/template")
@require_auth
def product_template_route():
    return Response(
        import_service.product_template_csv(),
        mimetype="text/csv",
        headers={
            "Content-Disposition": f'attachment; filename="{import_service.PRODUCT_TEMPLATE_NAME}"',
        },
    )
