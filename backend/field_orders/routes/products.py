# Overview: Flask API routes for products operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..policies import PolicyError
from ..services import product_service
from ..validation import ConflictError, ValidationError

products_bp = Blueprint("products", __name__, url_prefix="/api/products")
product_branches_bp = Blueprint("product_branches", __name__, url_prefix="/api/product-branches")


@products_bp.get("")
@require_auth
def list_products():
    """
    Query params:
    - q: search in sku and name
    - branch: only products available in this branch
    - is_active, sku, ...: row filters
    - order (default name.asc), limit, offset
    """
    try:
        return jsonify(product_service.list_products(g.actor, request.args)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@products_bp.get("/search")
@require_auth
def search_products():
    """Active products matching sku or name, at most 20."""
    q = request.args.get("q", "")
    limit = request.args.get("limit", default=product_service.SEARCH_LIMIT, type=int)
    return jsonify({"items": product_service.search_products(g.actor, q, limit)}), 200


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    product = product_service.get_product(g.actor, product_id)
    if product is None:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(product_service.product_view(product)), 200


@products_bp.post("")
@require_auth
def create_product():
    payload = request.get_json(silent=True) or {}
    try:
        product = product_service.create_product(g.actor, payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Failed to create product"}), 500
    return jsonify(product_service.product_view(product)), 201


@products_bp.patch("/<int:product_id>")
@require_auth
def update_product(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        product = product_service.update_product(g.actor, product_id, payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update product %s", product_id)
        return jsonify({"error": "Failed to update product"}), 500

    if product is None:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(product_service.product_view(product)), 200


@products_bp.put("/<int:product_id>/branches")
@require_auth
def set_product_branches(product_id: int):
    """Body: {"branches": ["JKP", "BGR"]} (replaces the product's branch set)."""
    data = request.get_json(silent=True) or {}
    try:
        result = product_service.set_branches(g.actor, product_id, data.get("branches") or [])
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403

    if result is None:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(result), 200


@product_branches_bp.get("")
@require_auth
def list_product_branches():
    try:
        return jsonify(product_service.list_product_branches(g.actor, request.args)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
