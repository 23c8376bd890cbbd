# Overview: Request decorators for API routes (API key, bearer session, admin gate).

import hmac
from functools import wraps

from flask import current_app, g, jsonify, request

from .policies import actor_for_user
from .services import session_service


def api_key_valid() -> bool:
    """The public API key from the `apikey` header (or query string for EventSource)."""
    supplied = request.headers.get("apikey") or request.args.get("apikey") or ""
    expected = current_app.config.get("API_KEY") or ""
    return bool(expected) and hmac.compare_digest(supplied, expected)


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization") or ""
    if auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    # EventSource cannot set headers
    return request.args.get("access_token") or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets:
    - g.current_user: the authenticated User
    - g.actor: policies.Actor built from the user's profile as stored now,
      so role changes apply on the next request
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        user = session_service.validate_session(token)
        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.actor = actor_for_user(user)
        g.token = token
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Must come after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = getattr(g, "actor", None)
        if actor is None:
            return jsonify({"error": "Authentication required"}), 401
        if not actor.is_admin:
            current_app.logger.warning(
                "Admin-only %s %s refused for user %s", request.method, request.path, actor.user_id
            )
            return jsonify({"error": "Admin role required"}), 403
        return f(*args, **kwargs)

    return decorated_function
