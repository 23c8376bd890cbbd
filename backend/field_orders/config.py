# backend/field_orders/config.py
from __future__ import annotations
import os


class ConfigError(RuntimeError):
    """Raised at start-up when required configuration is missing."""


# Settings that must be supplied by the environment (or a test config).
REQUIRED_SETTINGS = {
    "SQLALCHEMY_DATABASE_URI": "DATABASE_URL",
    "API_KEY": "FIELD_ORDERS_API_KEY",
}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Required: no local fallback database
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Public key every client sends in the `apikey` header
    API_KEY = os.environ.get("FIELD_ORDERS_API_KEY")

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
    SESSION_HOURS = int(os.environ.get("SESSION_HOURS", "24"))
    REALTIME_HEARTBEAT_SECONDS = float(os.environ.get("REALTIME_HEARTBEAT_SECONDS", "15"))

    CORS_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    )


def check_required(config) -> None:
    """Fail fast when a required setting is absent or blank."""
    missing = [
        env_name
        for key, env_name in REQUIRED_SETTINGS.items()
        if not (config.get(key) or "").strip()
    ]
    if missing:
        raise ConfigError(
            f"Missing {' or '.join(missing)}. "
            "Set them in your environment before starting the server."
        )
