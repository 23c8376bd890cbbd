from types import SimpleNamespace

import pytest

from field_orders import policies
from field_orders.models import Order
from field_orders.policies import Actor, PolicyError

ADMIN = Actor(user_id=1, role="admin")
SALES = Actor(user_id=2)
OTHER = Actor(user_id=3, branch="BGR")


def order_by(user_id):
    return SimpleNamespace(created_by=user_id)


def test_actor_defaults():
    assert SALES.role == "sales"
    assert SALES.branch == "JKP"
    assert not SALES.is_admin
    assert ADMIN.is_admin


def test_policy_error_messages():
    assert str(PolicyError("orders")) == 'new row violates row-level security policy for table "orders"'
    assert str(PolicyError("orders", "UPDATE")) == (
        'row-level security policy for table "orders" does not allow UPDATE'
    )
    err = PolicyError("customers", "DELETE")
    assert err.table == "customers"
    assert isinstance(err, PermissionError)


def test_require_raises_only_when_denied():
    policies.require(True, "orders")
    with pytest.raises(PolicyError, match='table "order_items"'):
        policies.require(False, "order_items")


def test_order_read_is_creator_or_admin():
    mine = order_by(SALES.user_id)
    assert policies.can_read_order(SALES, mine)
    assert not policies.can_read_order(OTHER, mine)
    assert policies.can_read_order(ADMIN, mine)


def test_order_read_accepts_event_mapping():
    assert policies.can_read_order(SALES, {"created_by": SALES.user_id})
    assert not policies.can_read_order(OTHER, {"created_by": SALES.user_id})


def test_order_insert_requires_self_as_creator():
    assert policies.can_insert_order(SALES, SALES.user_id)
    assert not policies.can_insert_order(SALES, OTHER.user_id)
    # admins are not exempt
    assert not policies.can_insert_order(ADMIN, SALES.user_id)


def test_order_update_and_delete():
    mine = order_by(SALES.user_id)
    assert not policies.can_update_order(SALES, mine)
    assert policies.can_update_order(ADMIN, mine)
    assert policies.can_delete_order(SALES, mine)
    assert not policies.can_delete_order(OTHER, mine)
    assert policies.can_delete_order(ADMIN, mine)


def test_item_and_history_follow_parent_visibility():
    mine = order_by(SALES.user_id)
    assert policies.can_access_order_item(SALES, mine)
    assert not policies.can_access_order_item(OTHER, mine)
    assert not policies.can_access_order_item(SALES, None)
    assert policies.can_read_status_history(ADMIN, mine)
    assert not policies.can_read_status_history(OTHER, mine)


def test_status_history_insert_is_admin_only():
    assert policies.can_insert_status_history(ADMIN)
    assert not policies.can_insert_status_history(SALES)


def test_profile_rules():
    own = SimpleNamespace(id=SALES.user_id)
    theirs = SimpleNamespace(id=OTHER.user_id)
    assert policies.can_read_profile(SALES, own)
    assert not policies.can_read_profile(SALES, theirs)
    assert policies.can_read_profile(ADMIN, theirs)

    assert policies.can_update_profile(SALES, own, ["full_name"])
    assert not policies.can_update_profile(SALES, own, ["full_name", "role"])
    assert not policies.can_update_profile(SALES, theirs, ["full_name"])
    assert policies.can_update_profile(ADMIN, theirs, ["role", "branch"])

    assert policies.can_insert_profile(SALES, SALES.user_id)
    assert not policies.can_insert_profile(SALES, OTHER.user_id)


def test_catalog_rules():
    assert policies.can_insert_customer(SALES)
    assert not policies.can_update_customer(SALES, None)
    assert policies.can_update_customer(ADMIN, None)
    assert policies.can_read_product(SALES, None)
    assert not policies.can_write_product(SALES)
    assert policies.can_write_product(ADMIN)
    assert not policies.can_write_product_branches(SALES)


def test_actor_for_user_reads_current_profile(admin_user, sales_user, db_session):
    assert policies.actor_for_user(admin_user).is_admin
    actor = policies.actor_for_user(sales_user)
    assert (actor.role, actor.branch) == ("sales", "JKP")

    sales_user.profile.role = "admin"
    db_session.commit()
    assert policies.actor_for_user(sales_user).is_admin


def test_actor_for_user_without_profile(sales_user, db_session):
    db_session.delete(sales_user.profile)
    db_session.commit()
    actor = policies.actor_for_user(sales_user)
    assert actor == Actor(user_id=sales_user.id, role="sales", branch="JKP")


def test_visible_order(customer, sales, other_sales, admin, db_session):
    order = Order(customer_id=customer.id, created_by=sales.user_id)
    db_session.add(order)
    db_session.commit()

    assert policies.visible_order(sales, order.id) is order
    assert policies.visible_order(admin, order.id) is order
    assert policies.visible_order(other_sales, order.id) is None
    assert policies.visible_order(sales, None) is None
