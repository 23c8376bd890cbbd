import pytest

from field_orders.models import Order, OrderStatusHistory
from field_orders.policies import PolicyError
from field_orders.services import order_service, status_service
from field_orders.services.status_service import StatusError


@pytest.fixture
def order(sales, customer, product):
    detail = order_service.save_order(sales, customer.id, [{"product_id": product.id, "qty": 2}])
    return detail["order"]["id"]


@pytest.mark.parametrize("raw,expected", [("new", "new"), (" Shipped ", "shipped"), ("CANCELLED", "cancelled")])
def test_validate_status_normalizes(raw, expected):
    assert status_service.validate_status(raw) == expected


@pytest.mark.parametrize("raw", ["delivered", "", None, 3])
def test_validate_status_rejects_unknown(raw):
    with pytest.raises(StatusError, match="Invalid status"):
        status_service.validate_status(raw)


def test_admin_change_writes_history(admin, order, db_session):
    result = status_service.change_status(admin, order, "shipped")
    assert result["order"]["status"] == "shipped"
    assert result["history"]["from_status"] == "new"
    assert result["history"]["to_status"] == "shipped"
    assert result["history"]["changed_by"] == admin.user_id
    assert db_session.get(Order, order).status == "shipped"


def test_same_status_is_still_recorded(admin, order, db_session):
    status_service.change_status(admin, order, "new")
    rows = db_session.query(OrderStatusHistory).filter_by(order_id=order).all()
    assert [(r.from_status, r.to_status) for r in rows] == [("new", "new")]


def test_sales_cannot_change_status(sales, order, db_session):
    with pytest.raises(PolicyError) as exc:
        status_service.change_status(sales, order, "shipped")
    assert str(exc.value) == 'row-level security policy for table "orders" does not allow UPDATE'
    assert db_session.get(Order, order).status == "new"
    assert db_session.query(OrderStatusHistory).count() == 0


def test_invisible_order_returns_none(other_sales, order):
    assert status_service.change_status(other_sales, order, "shipped") is None
    assert status_service.list_history(other_sales, order) is None


def test_bulk_change(admin, sales, customer, product, order, db_session):
    second = order_service.save_order(sales, customer.id, [{"product_id": product.id, "qty": 1}])["order"]["id"]
    status_service.change_status(admin, second, "cancelled")

    result = status_service.bulk_change_status(admin, [order, second, 9999, order], "shipped")
    assert result["updated"] == [order, second]
    assert result["missing"] == [9999]
    assert [(h["order_id"], h["from_status"]) for h in result["history"]] == [
        (order, "new"), (second, "cancelled"),
    ]


def test_bulk_change_requires_admin(sales, order):
    with pytest.raises(PolicyError):
        status_service.bulk_change_status(sales, [order], "shipped")


@pytest.mark.parametrize("ids", [[], None, ["x"]])
def test_bulk_change_rejects_bad_ids(admin, ids):
    with pytest.raises(StatusError):
        status_service.bulk_change_status(admin, ids, "shipped")


def test_cancel_and_history_newest_first(admin, sales, order):
    status_service.change_status(admin, order, "shipped")
    status_service.cancel_order(admin, order)

    history = status_service.list_history(sales, order)
    assert [h["to_status"] for h in history] == ["cancelled", "shipped"]
