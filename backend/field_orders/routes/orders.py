# Overview: Flask API routes for orders, order items and status changes; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..policies import PolicyError
from ..services import order_service, status_service
from ..services.order_service import OrderError
from ..services.status_service import StatusError
from ..validation import ValidationError

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")
order_items_bp = Blueprint("order_items", __name__, url_prefix="/api/order-items")

CLIENT_ERRORS = (ValidationError, OrderError, StatusError)


@orders_bp.get("")
@require_auth
def list_orders():
    try:
        return jsonify(order_service.list_orders(g.actor, request.args)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@orders_bp.get("/view")
@require_auth
def list_order_view():
    """
    Rows of the composite order view (customer_name, submitted_by_name)
    plus per-status counts for the caller.

    Query params: status=eq.new, status=in.(new,shipped), order=created_at.desc,
    limit, offset.
    """
    try:
        return jsonify(order_service.list_order_view(g.actor, request.args)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@orders_bp.post("")
@require_auth
def create_order():
    """
    With `items`: save a complete order (header status 'new', then items,
    header removed again if the items fail).
    Without `items`: insert a bare header.
    """
    data = request.get_json(silent=True) or {}
    try:
        if "items" in data:
            detail = order_service.save_order(
                g.actor,
                customer_id=data.get("customer_id"),
                items=data.get("items"),
                notes=data.get("notes"),
                payment_terms=data.get("payment_terms"),
                submitted_by=data.get("submitted_by"),
            )
            return jsonify(detail), 201
        order = order_service.create_order_header(g.actor, data)
        return jsonify(order.to_dict()), 201
    except CLIENT_ERRORS as e:
        return jsonify({"error": str(e)}), 400
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to save order")
        return jsonify({"error": "Failed to save order"}), 500


@orders_bp.post("/status")
@require_auth
def bulk_change_status():
    """Body: {"ids": [1, 2], "status": "shipped"}"""
    data = request.get_json(silent=True) or {}
    try:
        result = status_service.bulk_change_status(g.actor, data.get("ids"), data.get("status"))
    except StatusError as e:
        return jsonify({"error": str(e)}), 400
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to change order statuses")
        return jsonify({"error": "Failed to change order statuses"}), 500
    return jsonify(result), 200


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order(order_id: int):
    detail = order_service.get_order_detail(g.actor, order_id)
    if detail is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(detail), 200


@orders_bp.delete("/<int:order_id>")
@require_auth
def delete_order(order_id: int):
    try:
        deleted = order_service.delete_order(g.actor, order_id)
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403
    if not deleted:
        return jsonify({"error": "Order not found"}), 404
    return jsonify({"ok": True}), 200


@orders_bp.get("/<int:order_id>/items")
@require_auth
def list_items(order_id: int):
    items = order_service.list_items(g.actor, order_id)
    if items is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify({"items": items, "count": len(items)}), 200


@orders_bp.post("/<int:order_id>/items")
@require_auth
def add_items(order_id: int):
    data = request.get_json(silent=True) or {}
    items = data.get("items") if isinstance(data, dict) else data
    if not isinstance(items, list) or not items:
        return jsonify({"error": "items must be a non-empty list"}), 400
    try:
        rows = order_service.add_items(g.actor, order_id, items)
    except CLIENT_ERRORS as e:
        return jsonify({"error": str(e)}), 400
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403
    return jsonify({"items": [r.to_dict() for r in rows]}), 201


@orders_bp.patch("/<int:order_id>/items")
@require_auth
def update_items(order_id: int):
    """Body: {"items": [{"id": 5, "qty": 2, "price": 10000}]}; totals are rewritten."""
    data = request.get_json(silent=True) or {}
    try:
        detail = order_service.update_items(g.actor, order_id, data.get("items"))
    except CLIENT_ERRORS as e:
        return jsonify({"error": str(e)}), 400
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update items of order %s", order_id)
        return jsonify({"error": "Failed to update items"}), 500

    if detail is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(detail), 200


@orders_bp.post("/<int:order_id>/status")
@require_auth
def change_status(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        result = status_service.change_status(g.actor, order_id, data.get("status"))
    except StatusError as e:
        return jsonify({"error": str(e)}), 400
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403

    if result is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(result), 200


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order(order_id: int):
    try:
        result = status_service.cancel_order(g.actor, order_id)
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403

    if result is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(result), 200


@orders_bp.get("/<int:order_id>/history")
@require_auth
def list_history(order_id: int):
    history = status_service.list_history(g.actor, order_id)
    if history is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify({"items": history, "count": len(history)}), 200


@order_items_bp.patch("/<int:item_id>/uom")
@require_auth
def change_item_uom(item_id: int):
    """Body: {"uom_level": 1|2|3}. Keeps the piece count, re-prices from the product."""
    data = request.get_json(silent=True) or {}
    try:
        item = order_service.change_item_uom(g.actor, item_id, data.get("uom_level"))
    except CLIENT_ERRORS as e:
        return jsonify({"error": str(e)}), 400
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403

    if item is None:
        return jsonify({"error": "Order item not found"}), 404
    return jsonify(item), 200
