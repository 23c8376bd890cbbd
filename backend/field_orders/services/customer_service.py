# Overview: Service-layer operations for customers; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer
from .. import policies
from ..policies import Actor
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_customer,
    validate_payload,
)
from . import row_query

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "address", "customer_code", "latitude", "longitude", "branch"},
    required_on_create={"name"},
    blank_to_null={"phone", "address", "customer_code", "latitude", "longitude", "branch"},
)

CUSTOMER_COLUMNS = {
    "id": Customer.id,
    "name": Customer.name,
    "phone": Customer.phone,
    "address": Customer.address,
    "customer_code": Customer.customer_code,
    "branch": Customer.branch,
    "created_by": Customer.created_by,
    "created_at": Customer.created_at,
    "updated_at": Customer.updated_at,
}


def list_customers(actor: Actor, args) -> dict:
    """Newest first unless `order` says otherwise; `q` searches name, code and phone."""
    query = db.session.query(Customer).filter(policies.customer_read_clause(actor))
    q = (args.get("q") or "").strip()
    if q:
        like = f"%{q}%"
        query = query.filter(db.or_(
            Customer.name.ilike(like),
            Customer.customer_code.ilike(like),
            Customer.phone.ilike(like),
        ))
    query = row_query.apply_filters(query, CUSTOMER_COLUMNS, args)
    query = query.order_by(*row_query.order_clauses(
        CUSTOMER_COLUMNS, args.get("order"), default=[Customer.created_at.desc(), Customer.id.desc()]
    ))
    limit, offset = row_query.parse_window(args)
    return row_query.paginate(query, limit, offset, lambda c: c.to_dict())


def get_customer(actor: Actor, customer_id: int) -> Customer | None:
    customer = db.session.get(Customer, customer_id)
    if customer is None or not policies.can_read_customer(actor, customer):
        return None
    return customer


def create_customer(actor: Actor, payload: dict, commit: bool = True) -> Customer:
    """Any signed-in user may add a customer; branch defaults to the caller's branch."""
    policies.require(policies.can_insert_customer(actor), "customers")
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    enforce_rules_customer(patch)
    if not patch.get("branch"):
        patch["branch"] = actor.branch

    customer = Customer(created_by=actor.user_id, **patch)
    db.session.add(customer)
    _flush_or_raise(commit)
    return customer


def update_customer(actor: Actor, customer_id: int, payload: dict, commit: bool = True) -> Customer | None:
    customer = get_customer(actor, customer_id)
    if customer is None:
        return None
    policies.require(policies.can_update_customer(actor, customer), "customers", "UPDATE")
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    enforce_rules_customer(patch)
    if "branch" in patch and patch["branch"] is None:
        patch.pop("branch")

    for k, v in patch.items():
        setattr(customer, k, v)
    _flush_or_raise(commit)
    return customer


def find_by_code(code: str | None) -> Customer | None:
    if not code:
        return None
    return (
        db.session.query(Customer)
        .filter(Customer.customer_code == code)
        .order_by(Customer.id.asc())
        .first()
    )


def _flush_or_raise(commit: bool) -> None:
    if not commit:
        return
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ValidationError(str(e.orig))
