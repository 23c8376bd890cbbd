# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Account creation and password authentication.

Passwords are hashed with bcrypt. The cost factor comes from BCRYPT_ROUNDS
so tests can run with a low value. A profile row is created on first
sign-in when the account does not have one yet.
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import BRANCHES, DEFAULT_BRANCH, DEFAULT_ROLE, Profile, User
from ..time_utils import utcnow

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class AccountExistsError(ValueError):
    pass


def validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password should be at least {MIN_PASSWORD_LENGTH} characters"
        )


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def create_user(
    email: str,
    password: str,
    full_name: str | None = None,
    role: str = DEFAULT_ROLE,
    branch: str = DEFAULT_BRANCH,
) -> User:
    """
    Create an account and its profile.

    Raises ValueError for a malformed email, AccountExistsError when the
    email is taken and PasswordValidationError for a weak password.
    """
    email = normalize_email(email)
    if not EMAIL_RE.match(email):
        raise ValueError("Unable to validate email address: invalid format")
    if role not in ("sales", "admin"):
        raise ValueError("role must be sales or admin")
    if branch not in BRANCHES:
        raise ValueError(f"branch must be one of {', '.join(BRANCHES)}")

    if db.session.query(User).filter_by(email=email).first():
        raise AccountExistsError("User already registered")

    user = User(email=email, password_hash=hash_password(password))
    db.session.add(user)
    db.session.flush()

    db.session.add(Profile(id=user.id, full_name=(full_name or "").strip() or None, role=role, branch=branch))
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Check credentials. Returns the active user or None.

    Updates last_login_at and makes sure the profile row exists.
    """
    user = db.session.query(User).filter_by(email=normalize_email(email), is_active=True).first()
    if not user or not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    ensure_profile(user, commit=False)
    db.session.commit()
    return user


def ensure_profile(user: User, commit: bool = True) -> Profile:
    """Profile for the user, created with default role and branch when absent."""
    profile = db.session.get(Profile, user.id)
    if profile is None:
        profile = Profile(id=user.id, role=DEFAULT_ROLE, branch=DEFAULT_BRANCH)
        db.session.add(profile)
        current_app.logger.info("Created profile for user %s on first sign-in", user.id)
        if commit:
            db.session.commit()
    return profile


def set_active(user_id: int, is_active: bool) -> User | None:
    user = db.session.get(User, user_id)
    if user is None:
        return None
    user.is_active = is_active
    db.session.commit()
    return user
