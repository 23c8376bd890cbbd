# Overview: Flask API routes for profiles; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_auth
from ..policies import PolicyError
from ..services import profile_service
from ..validation import ValidationError

profiles_bp = Blueprint("profiles", __name__, url_prefix="/api/profiles")


@profiles_bp.get("/me")
@require_auth
def get_my_profile():
    profile = profile_service.get_profile(g.actor, g.actor.user_id)
    if profile is None:
        # Signed in before a profile existed: report the defaults in effect
        profile = {
            "id": g.actor.user_id,
            "full_name": None,
            "role": g.actor.role,
            "branch": g.actor.branch,
            "email": g.current_user.email,
        }
    return jsonify(profile), 200


@profiles_bp.patch("/me")
@require_auth
def update_my_profile():
    payload = request.get_json(silent=True) or {}
    try:
        profile = profile_service.update_own_profile(g.actor, payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403
    return jsonify(profile), 200


@profiles_bp.get("")
@require_auth
def list_profiles():
    """Admins see every profile; others see only their own row."""
    try:
        return jsonify(profile_service.list_profiles(g.actor, request.args)), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@profiles_bp.get("/<int:profile_id>")
@require_auth
def get_profile(profile_id: int):
    profile = profile_service.get_profile(g.actor, profile_id)
    if profile is None:
        return jsonify({"error": "Profile not found"}), 404
    return jsonify(profile), 200


@profiles_bp.put("/<int:profile_id>")
@require_auth
@require_admin
def update_profile(profile_id: int):
    """Admin update of role, branch and full_name."""
    payload = request.get_json(silent=True) or {}
    try:
        profile = profile_service.update_profile(g.actor, profile_id, payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PolicyError as e:
        return jsonify({"error": str(e)}), 403
    except Exception:
        current_app.logger.exception("Failed to update profile %s", profile_id)
        return jsonify({"error": "Failed to update profile"}), 500

    if profile is None:
        return jsonify({"error": "Profile not found"}), 404
    current_app.logger.info("Profile %s updated by admin %s", profile_id, g.actor.user_id)
    return jsonify(profile), 200
