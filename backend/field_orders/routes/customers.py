# Overview: Flask API routes for customers; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..policies import PolicyError
from ..services import customer_service
from ..validation import ValidationError

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers():
    """
    Query params:
    - q: search in name, customer_code and phone
    - branch, customer_code, ...: row filters (eq./in./ilike.)
    - order, limit, offset
    """
    try:
        return jsonify(customer_service.list_customers(g.actor, request.args)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer(customer_id: int):
    customer = customer_service.get_customer(g.actor, customer_id)
    if customer is None:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify(customer.to_dict()), 200


@customers_bp.post("")
@require_auth
def create_customer():
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.create_customer(g.actor, payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Failed to create customer"}), 500
    return jsonify(customer.to_dict()), 201


@customers_bp.patch("/<int:customer_id>")
@require_auth
def update_customer(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.update_customer(g.actor, customer_id, payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update customer %s", customer_id)
        return jsonify({"error": "Failed to update customer"}), 500

    if customer is None:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify(customer.to_dict()), 200
