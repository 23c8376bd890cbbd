import httpx
import pytest

from field_orders.client import ApiError, FieldOrdersClient
from field_orders.config import ConfigError

PASSWORD = "secret123"


@pytest.fixture
def make_client(app):
    clients = []

    def factory(api_key="test-api-key"):
        c = FieldOrdersClient("http://testserver", api_key, transport=httpx.WSGITransport(app=app))
        clients.append(c)
        return c

    yield factory
    for c in clients:
        c.close()


def test_from_env_requires_both_settings(monkeypatch):
    monkeypatch.delenv("FIELD_ORDERS_URL", raising=False)
    monkeypatch.delenv("FIELD_ORDERS_API_KEY", raising=False)
    with pytest.raises(ConfigError) as exc:
        FieldOrdersClient.from_env()
    assert "FIELD_ORDERS_URL" in str(exc.value)
    assert "FIELD_ORDERS_API_KEY" in str(exc.value)

    monkeypatch.setenv("FIELD_ORDERS_URL", "http://testserver")
    with pytest.raises(ConfigError, match="FIELD_ORDERS_API_KEY"):
        FieldOrdersClient.from_env()


def test_from_env(monkeypatch, app):
    monkeypatch.setenv("FIELD_ORDERS_URL", "http://testserver/")
    monkeypatch.setenv("FIELD_ORDERS_API_KEY", "test-api-key")
    with FieldOrdersClient.from_env(transport=httpx.WSGITransport(app=app)) as c:
        assert c.base_url == "http://testserver"
        assert c.api_key == "test-api-key"


def test_constructor_rejects_blank_settings():
    with pytest.raises(ConfigError):
        FieldOrdersClient("", "key")


def test_wrong_api_key_raises_api_error(make_client):
    c = make_client(api_key="nope")
    with pytest.raises(ApiError) as exc:
        c.me()
    assert exc.value.status == 401
    assert exc.value.message == "Invalid API key"


def test_sign_in_errors_are_verbatim(make_client, sales_user):
    c = make_client()
    with pytest.raises(ApiError) as exc:
        c.sign_in("sales@example.com", "wrong-password")
    assert exc.value.status == 400
    assert exc.value.message == "Invalid login credentials"


def test_draft_round_trip(make_client, admin_user, customer, product):
    rep = make_client()
    rep.sign_up("rep@example.com", PASSWORD, full_name="Rina Rep")
    assert rep.me()["profile"]["full_name"] == "Rina Rep"

    draft = rep.new_draft(customer_id=customer.id)
    line = draft.add_product(product.id)
    draft.set_qty(line.id, 12)
    draft.change_uom(line.id, 2)
    detail = rep.submit_draft(draft)
    assert draft.lines == []

    order = detail["order"]
    assert order["status"] == "new"
    assert order["total"] == pytest.approx(20000)
    assert order["submitted_by_name"] == "Rina Rep"
    assert detail["items"][0]["qty_base"] == pytest.approx(12)

    with pytest.raises(ApiError) as exc:
        rep.change_status(order["id"], "shipped")
    assert exc.value.status == 403

    boss = make_client()
    boss.sign_in("admin@example.com", PASSWORD)
    assert boss.change_status(order["id"], "shipped")["order"]["status"] == "shipped"
    assert boss.bulk_change_status([order["id"]], "cancelled")["updated"] == [order["id"]]

    listing = rep.list_orders(status="eq.cancelled")
    assert [o["id"] for o in listing["items"]] == [order["id"]]

    content, filename = rep.export_order_items(fmt="csv")
    assert filename.startswith("order-items-") and filename.endswith(".csv")
    assert b"Rina Rep" in content

    rep.sign_out()
    assert rep.token is None
    with pytest.raises(ApiError):
        rep.me()


def test_search_and_customers(make_client, sales_user, customer, product):
    c = make_client()
    c.sign_in("sales@example.com", PASSWORD)
    assert [p["sku"] for p in c.search_products("teh")] == ["HT001"]
    created = c.create_customer(name="Kedai Baru")
    assert created["branch"] == "JKP"
    assert {x["name"] for x in c.list_customers()} == {"Toko Maju", "Kedai Baru"}


def test_import_file(make_client, admin_user, tmp_path, db_session):
    path = tmp_path / "products.csv"
    path.write_text("sku,name,price\nZ9,Zebra Snack,12000\n", encoding="utf-8")

    c = make_client()
    c.sign_in("admin@example.com", PASSWORD)
    report = c.import_file("products", path)
    assert report["inserted"] == 1
    assert [p["sku"] for p in c.list_products()] == ["Z9"]
