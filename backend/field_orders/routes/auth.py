# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import auth_service, session_service
from ..services.auth_service import AccountExistsError, PasswordValidationError

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_body(user, token: str) -> dict:
    profile = auth_service.ensure_profile(user)
    return {
        "token": token,
        "user": user.to_dict(),
        "profile": profile.to_dict(),
    }


@auth_bp.post("/signup")
def signup_route():
    """Create an account (role sales, branch JKP unless an admin changes it) and sign in."""
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")
    if not email or not password:
        return jsonify({"error": "email and password required"}), 400

    try:
        user = auth_service.create_user(email=email, password=password, full_name=data.get("full_name"))
        _, token = session_service.create_session(
            user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except AccountExistsError as e:
        return jsonify({"error": str(e)}), 409
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to sign up")
        return jsonify({"error": "Failed to sign up"}), 500

    return jsonify(_session_body(user, token)), 201


@auth_bp.post("/login")
def login_route():
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")
    if not email or not password:
        return jsonify({"error": "email and password required"}), 400

    user = auth_service.authenticate(email, password)
    if not user:
        current_app.logger.info("Failed sign-in for %s", auth_service.normalize_email(email))
        return jsonify({"error": "Invalid login credentials"}), 400

    _, token = session_service.create_session(
        user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify(_session_body(user, token)), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.token)
    return jsonify({"ok": True}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    profile = auth_service.ensure_profile(g.current_user)
    return jsonify({"user": g.current_user.to_dict(), "profile": profile.to_dict()}), 200
