# backend/field_orders/__init__.py
from flask import Flask, jsonify, request

from .config import Config, check_required
from .extensions import db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Fail fast: DATABASE_URL and FIELD_ORDERS_API_KEY are required
    check_required(app.config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services import realtime_service
    realtime_service.init_app(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.profiles import profiles_bp
    from .routes.customers import customers_bp
    from .routes.products import products_bp, product_branches_bp
    from .routes.orders import orders_bp, order_items_bp
    from .routes.imports import imports_bp
    from .routes.exports import exports_bp
    from .routes.realtime import realtime_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(profiles_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(product_branches_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(order_items_bp)
    app.register_blueprint(imports_bp)
    app.register_blueprint(exports_bp)
    app.register_blueprint(realtime_bp)

    @app.before_request
    def check_api_key():
        if not request.path.startswith("/api/") or request.method == "OPTIONS":
            return None
        from .decorators import api_key_valid
        if not api_key_valid():
            return jsonify({"error": "Invalid API key"}), 401
        return None

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("CORS_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, apikey"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
