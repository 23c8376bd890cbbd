# Overview: Service-layer operations for profiles (display name, role, branch).

from __future__ import annotations

from ..extensions import db
from ..models import Profile, User
from .. import policies
from ..policies import Actor
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_profile
from . import row_query

PROFILE_ADMIN_POLICY = ModelValidationPolicy(
    writable_fields={"full_name", "role", "branch"},
    blank_to_null={"full_name"},
)
PROFILE_SELF_POLICY = ModelValidationPolicy(
    writable_fields={"full_name"},
    blank_to_null={"full_name"},
)

PROFILE_COLUMNS = {
    "id": Profile.id,
    "full_name": Profile.full_name,
    "role": Profile.role,
    "branch": Profile.branch,
    "email": User.email,
    "created_at": Profile.created_at,
}


def _serialize(row) -> dict:
    profile, email = row
    data = profile.to_dict()
    data["email"] = email
    return data


def _base_query(actor: Actor):
    return (
        db.session.query(Profile, User.email)
        .join(User, User.id == Profile.id)
        .filter(policies.profile_read_clause(actor))
    )


def get_profile(actor: Actor, profile_id: int) -> dict | None:
    row = _base_query(actor).filter(Profile.id == profile_id).first()
    return _serialize(row) if row else None


def list_profiles(actor: Actor, args) -> dict:
    """Profiles visible to the caller (everyone for admins, self otherwise)."""
    query = _base_query(actor)
    q = (args.get("q") or "").strip()
    if q:
        like = f"%{q}%"
        query = query.filter(db.or_(Profile.full_name.ilike(like), User.email.ilike(like)))
    query = row_query.apply_filters(query, PROFILE_COLUMNS, args)
    query = query.order_by(*row_query.order_clauses(
        PROFILE_COLUMNS, args.get("order"), default=[Profile.full_name.asc(), Profile.id.asc()]
    ))
    limit, offset = row_query.parse_window(args)
    return row_query.paginate(query, limit, offset, _serialize)


def update_profile(actor: Actor, profile_id: int, payload: dict) -> dict | None:
    """
    Admins may change role, branch and full_name of anyone; a user may
    change only their own full_name. Returns None for an invisible profile.
    """
    profile = db.session.get(Profile, profile_id)
    if profile is None or not policies.can_read_profile(actor, profile):
        return None

    policy = PROFILE_ADMIN_POLICY if actor.is_admin else PROFILE_SELF_POLICY
    if not actor.is_admin:
        policies.require(
            policies.can_update_profile(actor, profile, payload.keys() if isinstance(payload, dict) else ()),
            "profiles",
            "UPDATE",
        )
    patch = validate_payload(model=Profile, payload=payload, policy=policy, partial=True)
    enforce_rules_profile(patch)

    for k, v in patch.items():
        setattr(profile, k, v)
    db.session.commit()
    return get_profile(actor, profile_id)


def update_own_profile(actor: Actor, payload: dict) -> dict:
    """Change the caller's display name, creating the profile row if needed."""
    profile = db.session.get(Profile, actor.user_id)
    if profile is None:
        policies.require(policies.can_insert_profile(actor, actor.user_id), "profiles")
        profile = Profile(id=actor.user_id)
        db.session.add(profile)
        db.session.flush()
    patch = validate_payload(model=Profile, payload=payload, policy=PROFILE_SELF_POLICY, partial=True)
    for k, v in patch.items():
        setattr(profile, k, v)
    db.session.commit()
    return get_profile(actor, actor.user_id)


def set_role(profile_id: int, role: str | None = None, branch: str | None = None) -> Profile | None:
    """Unchecked role/branch change for operator tooling (CLI)."""
    profile = db.session.get(Profile, profile_id)
    if profile is None:
        return None
    patch = {}
    if role is not None:
        patch["role"] = role
    if branch is not None:
        patch["branch"] = branch
    enforce_rules_profile(patch)
    for k, v in patch.items():
        setattr(profile, k, v)
    db.session.commit()
    return profile
