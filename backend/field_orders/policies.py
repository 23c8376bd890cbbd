# Overview: Row-level authorization predicates; every service read and write goes through here.

"""
Row-level authorization.

Each table has a small set of predicates evaluated against the caller's
current profile. Every predicate exists in two forms:

- a boolean check on a loaded row (`can_*`), used before writes and when a
  single row is fetched;
- a SQL clause (`*_clause`), applied to list queries so invisible rows are
  never loaded.

Rows that fail a read predicate are treated as missing (services return
None, routes answer 404). Writes that fail raise PolicyError (403) with a
message that names the table.

    table                 read            insert            update           delete
    profiles              self or admin   self only         admin / self*    -
    customers             authenticated   authenticated     admin            -
    products              authenticated   admin             admin            -
    product_branches      authenticated   admin             -                admin
    orders                creator/admin   creator is self   admin            creator/admin
    order_items           parent visible  parent visible    parent visible   parent visible
    order_status_history  parent visible  admin             -                -

    * self may change full_name only
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import true

from .extensions import db
from .models import DEFAULT_BRANCH, DEFAULT_ROLE, Order, OrderItem, Profile, User


class PolicyError(PermissionError):
    """Write rejected by a row-level policy (HTTP 403)."""

    def __init__(self, table: str, action: str = "INSERT", message: str | None = None):
        self.table = table
        self.action = action
        if message is None:
            if action == "INSERT":
                message = f'new row violates row-level security policy for table "{table}"'
            else:
                message = f'row-level security policy for table "{table}" does not allow {action}'
        super().__init__(message)


@dataclass(frozen=True)
class Actor:
    """The caller as seen by the policies: identity plus current role and branch."""
    user_id: int
    role: str = DEFAULT_ROLE
    branch: str = DEFAULT_BRANCH

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def actor_for_user(user: User) -> Actor:
    """
    Build an Actor from the user's profile as stored right now.

    A missing profile means a plain sales user in the default branch.
    """
    profile = db.session.get(Profile, user.id)
    if profile is None:
        return Actor(user_id=user.id)
    return Actor(user_id=user.id, role=profile.role, branch=profile.branch)


def require(allowed: bool, table: str, action: str = "INSERT") -> None:
    if not allowed:
        raise PolicyError(table, action)


# ---- profiles ----

SELF_EDITABLE_PROFILE_FIELDS = frozenset({"full_name"})


def can_read_profile(actor: Actor, profile: Profile) -> bool:
    return actor.is_admin or profile.id == actor.user_id


def profile_read_clause(actor: Actor):
    if actor.is_admin:
        return true()
    return Profile.id == actor.user_id


def can_insert_profile(actor: Actor, profile_id: int) -> bool:
    return profile_id == actor.user_id


def can_update_profile(actor: Actor, profile: Profile, fields) -> bool:
    if actor.is_admin:
        return True
    return profile.id == actor.user_id and set(fields) <= SELF_EDITABLE_PROFILE_FIELDS


# ---- customers ----

def can_read_customer(actor: Actor, customer) -> bool:
    return True


def customer_read_clause(actor: Actor):
    return true()


def can_insert_customer(actor: Actor) -> bool:
    return True


def can_update_customer(actor: Actor, customer) -> bool:
    return actor.is_admin


# ---- products / product_branches ----

def can_read_product(actor: Actor, product) -> bool:
    return True


def product_read_clause(actor: Actor):
    return true()


def can_write_product(actor: Actor) -> bool:
    return actor.is_admin


def can_write_product_branches(actor: Actor) -> bool:
    return actor.is_admin


# ---- orders ----

def can_read_order(actor: Actor, order) -> bool:
    """`order` may be an Order row or a change event mapping with created_by."""
    if actor.is_admin:
        return True
    created_by = order.get("created_by") if isinstance(order, dict) else order.created_by
    return created_by == actor.user_id


def order_read_clause(actor: Actor, created_by_column=None):
    column = created_by_column if created_by_column is not None else Order.created_by
    if actor.is_admin:
        return true()
    return column == actor.user_id


def can_insert_order(actor: Actor, created_by) -> bool:
    return created_by == actor.user_id


def can_update_order(actor: Actor, order) -> bool:
    return actor.is_admin


def can_delete_order(actor: Actor, order) -> bool:
    return actor.is_admin or order.created_by == actor.user_id


def visible_order(actor: Actor, order_id: int) -> Order | None:
    """Load an order through the read predicate (None when missing or invisible)."""
    if order_id is None:
        return None
    return (
        db.session.query(Order)
        .filter(Order.id == order_id, order_read_clause(actor))
        .first()
    )


# ---- order_items ----

def can_access_order_item(actor: Actor, order) -> bool:
    return order is not None and can_read_order(actor, order)


def order_item_read_clause(actor: Actor):
    if actor.is_admin:
        return true()
    return OrderItem.order_id.in_(
        db.select(Order.id).where(order_read_clause(actor))
    )


# ---- order_status_history ----

def can_read_status_history(actor: Actor, order) -> bool:
    return order is not None and can_read_order(actor, order)


def can_insert_status_history(actor: Actor) -> bool:
    return actor.is_admin

