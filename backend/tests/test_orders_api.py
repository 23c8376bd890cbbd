from decimal import Decimal

import pytest

from field_orders.models import Order, OrderItem, Product
from field_orders.services import order_service


def save(client, headers, customer, items, **extra):
    body = {"customer_id": customer.id, "items": items, **extra}
    return client.post("/api/orders", json=body, headers=headers)


@pytest.fixture
def saved_order(client, sales_headers, customer, product):
    resp = save(client, sales_headers, customer, [
        {"product_id": product.id, "qty": 2, "uom_level": 1},
        {"product_id": product.id, "qty": 3},
    ])
    assert resp.status_code == 201
    return resp.get_json()


def test_save_order_computes_totals(saved_order, sales_user):
    order = saved_order["order"]
    assert order["status"] == "new"
    assert order["created_by"] == sales_user.id
    # 2 CTN x 60 000 + 3 PCS x 1 666.67
    assert order["subtotal"] == pytest.approx(125000.01)
    assert order["total"] == pytest.approx(125000.01)
    assert order["customer_name"] == "Toko Maju"

    items = saved_order["items"]
    assert [i["uom_level"] for i in items] == [1, 3]
    assert items[0]["price"] == pytest.approx(60000)
    assert items[0]["qty_base"] == pytest.approx(72)
    assert items[1]["price"] == pytest.approx(1666.67)
    assert items[1]["line_total"] == pytest.approx(5000.01)
    assert items[1]["product"]["uom3_name"] == "PCS"
    assert saved_order["history"] == []


def test_save_order_normalizes_payment_terms(client, sales_headers, customer, product):
    resp = save(client, sales_headers, customer, [{"product_id": product.id, "qty": 1}], payment_terms="cash")
    assert resp.status_code == 201
    assert resp.get_json()["order"]["payment_terms"] == "CASH"

    resp = save(client, sales_headers, customer, [{"product_id": product.id, "qty": 1}], payment_terms="TEMPO")
    assert resp.status_code == 400


@pytest.mark.parametrize("items,message", [
    ([], "Add at least one item"),
    ([{"product_id": 9999, "qty": 1}], "All rows must have a product"),
    ([{"qty": 1}], "All rows must have a product"),
])
def test_save_order_rejects_before_writing(client, sales_headers, customer, items, message, db_session):
    resp = save(client, sales_headers, customer, items)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == message
    assert db_session.query(Order).count() == 0


def test_save_order_requires_customer(client, sales_headers, product):
    resp = client.post("/api/orders", json={"items": [{"product_id": product.id, "qty": 1}]}, headers=sales_headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Select a customer"


def test_item_failure_removes_header(client, sales_headers, customer, product, monkeypatch, db_session):
    def boom(*args, **kwargs):
        raise RuntimeError("items rejected")

    monkeypatch.setattr(order_service, "add_items", boom)
    resp = save(client, sales_headers, customer, [{"product_id": product.id, "qty": 1}])
    assert resp.status_code == 500
    assert db_session.query(Order).count() == 0
    assert db_session.query(OrderItem).count() == 0


def test_header_insert_for_someone_else_is_refused(client, sales_headers, customer, admin_user):
    resp = client.post(
        "/api/orders",
        json={"customer_id": customer.id, "created_by": admin_user.id},
        headers=sales_headers,
    )
    assert resp.status_code == 403
    assert resp.get_json()["error"] == 'new row violates row-level security policy for table "orders"'


def test_bare_header_defaults(client, sales_headers, customer):
    resp = client.post("/api/orders", json={"customer_id": customer.id}, headers=sales_headers)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["status"] == "created"
    assert body["total"] == 0


def test_orders_visible_to_creator_and_admin_only(client, saved_order, sales_headers, other_headers, admin_headers):
    order_id = saved_order["order"]["id"]
    assert client.get(f"/api/orders/{order_id}", headers=sales_headers).status_code == 200
    assert client.get(f"/api/orders/{order_id}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/orders/{order_id}", headers=other_headers).status_code == 404
    assert client.get(f"/api/orders/{order_id}/items", headers=other_headers).status_code == 404

    listing = client.get("/api/orders", headers=other_headers).get_json()
    assert listing["items"] == []
    listing = client.get("/api/orders", headers=admin_headers).get_json()
    assert [o["id"] for o in listing["items"]] == [order_id]


def test_add_items_to_invisible_order_is_refused(client, saved_order, other_headers, product):
    order_id = saved_order["order"]["id"]
    resp = client.post(
        f"/api/orders/{order_id}/items",
        json={"items": [{"product_id": product.id, "qty": 1}]},
        headers=other_headers,
    )
    assert resp.status_code == 403
    assert "order_items" in resp.get_json()["error"]


def test_add_items_to_bare_header_writes_totals(client, sales_headers, customer, product):
    header = client.post("/api/orders", json={"customer_id": customer.id}, headers=sales_headers).get_json()
    assert header["total"] == 0

    resp = client.post(
        f"/api/orders/{header['id']}/items",
        json={"items": [{"product_id": product.id, "qty": 2, "uom_level": 2}]},
        headers=sales_headers,
    )
    assert resp.status_code == 201
    assert resp.get_json()["items"][0]["line_total"] == pytest.approx(20000)

    order = client.get(f"/api/orders/{header['id']}", headers=sales_headers).get_json()["order"]
    assert order["subtotal"] == pytest.approx(20000)
    assert order["total"] == pytest.approx(20000)

    client.post(
        f"/api/orders/{header['id']}/items",
        json={"items": [{"product_id": product.id, "qty": 1, "uom_level": 1}]},
        headers=sales_headers,
    )
    order = client.get(f"/api/orders/{header['id']}", headers=sales_headers).get_json()["order"]
    assert order["total"] == pytest.approx(80000)


@pytest.mark.parametrize("uom_level", [True, "x", None])
def test_add_items_rejects_non_levels(client, saved_order, sales_headers, product, uom_level):
    order_id = saved_order["order"]["id"]
    resp = client.post(
        f"/api/orders/{order_id}/items",
        json={"items": [{"product_id": product.id, "qty": 1, "uom_level": uom_level}]},
        headers=sales_headers,
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"].startswith("Unknown UOM level")


def test_update_items_rewrites_totals(client, saved_order, admin_headers, sales_headers):
    order_id = saved_order["order"]["id"]
    first, second = saved_order["items"]

    resp = client.patch(
        f"/api/orders/{order_id}/items",
        json={"items": [{"id": first["id"], "qty": 1}, {"id": second["id"], "price": 2000}]},
        headers=sales_headers,
    )
    assert resp.status_code == 403

    resp = client.patch(
        f"/api/orders/{order_id}/items",
        json={"items": [{"id": first["id"], "qty": 1}, {"id": second["id"], "price": 2000}]},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["order"]["total"] == pytest.approx(66000)
    assert body["items"][0]["qty_base"] == pytest.approx(36)
    assert body["items"][1]["line_total"] == pytest.approx(6000)


def test_update_items_rejects_foreign_item(client, saved_order, admin_headers):
    order_id = saved_order["order"]["id"]
    resp = client.patch(
        f"/api/orders/{order_id}/items",
        json={"items": [{"id": 9999, "qty": 1}]},
        headers=admin_headers,
    )
    assert resp.status_code == 400


def test_change_item_uom_keeps_pieces(client, sales_headers, admin_headers, customer, product):
    detail = save(client, sales_headers, customer, [{"product_id": product.id, "qty": 12}]).get_json()
    item_id = detail["items"][0]["id"]

    resp = client.patch(f"/api/order-items/{item_id}/uom", json={"uom_level": 2}, headers=admin_headers)
    assert resp.status_code == 200
    item = resp.get_json()
    assert item["uom_level"] == 2
    assert item["qty"] == pytest.approx(2)
    assert item["qty_base"] == pytest.approx(12)
    assert item["price"] == pytest.approx(10000)
    assert item["line_total"] == pytest.approx(20000)

    order = client.get(f"/api/orders/{detail['order']['id']}", headers=admin_headers).get_json()["order"]
    assert order["total"] == pytest.approx(20000)

    resp = client.patch(f"/api/order-items/{item_id}/uom", json={"uom_level": 4}, headers=admin_headers)
    assert resp.status_code == 400
    resp = client.patch("/api/order-items/9999/uom", json={"uom_level": 1}, headers=admin_headers)
    assert resp.status_code == 404


@pytest.mark.parametrize("c12,c23,piece_price", [(24, 50, 100), (200, 100, 6)])
def test_change_item_uom_keeps_single_piece_of_large_carton(
    client, sales_headers, admin_headers, customer, db_session, c12, c23, piece_price
):
    big = Product(sku="BIG1", name="Big Carton", is_active=True, price=Decimal("120000"),
                  conv1_to_2=c12, conv2_to_3=c23)
    db_session.add(big)
    db_session.commit()

    detail = save(client, sales_headers, customer, [{"product_id": big.id, "qty": 1}]).get_json()
    item_id = detail["items"][0]["id"]
    assert detail["items"][0]["line_total"] == pytest.approx(piece_price)

    resp = client.patch(f"/api/order-items/{item_id}/uom", json={"uom_level": 1}, headers=admin_headers)
    assert resp.status_code == 200
    item = resp.get_json()
    assert item["qty"] == pytest.approx(1 / (c12 * c23))
    assert item["qty_base"] == pytest.approx(1)
    assert item["line_total"] == pytest.approx(piece_price)

    item = client.patch(f"/api/order-items/{item_id}/uom", json={"uom_level": 3}, headers=admin_headers).get_json()
    assert item["qty"] == pytest.approx(1)
    assert item["qty_base"] == pytest.approx(1)

    order = client.get(f"/api/orders/{detail['order']['id']}", headers=admin_headers).get_json()["order"]
    assert order["total"] == pytest.approx(piece_price)


def test_view_submitter_name_falls_back_to_creator(client, sales_headers, admin_headers, customer, product, admin_user):
    save(client, sales_headers, customer, [{"product_id": product.id, "qty": 1}])
    save(client, sales_headers, customer, [{"product_id": product.id, "qty": 1}], submitted_by=admin_user.id)

    rows = client.get("/api/orders/view?order=id.asc", headers=admin_headers).get_json()["items"]
    assert [r["submitted_by_name"] for r in rows] == ["Sam Sales", "Ada Admin"]
    assert rows[0]["submitted_by_id"] is None
    assert rows[1]["submitted_by_id"] == admin_user.id


def test_view_filters_and_status_counts(client, sales_headers, admin_headers, customer, product):
    ids = [
        save(client, sales_headers, customer, [{"product_id": product.id, "qty": 1}]).get_json()["order"]["id"]
        for _ in range(3)
    ]
    client.post(f"/api/orders/{ids[0]}/status", json={"status": "shipped"}, headers=admin_headers)

    body = client.get("/api/orders/view?status=eq.new", headers=sales_headers).get_json()
    assert sorted(r["id"] for r in body["items"]) == ids[1:]
    assert body["status_counts"]["new"] == 2
    assert body["status_counts"]["shipped"] == 1
    assert body["status_counts"]["all"] == 3

    body = client.get("/api/orders/view?status=in.(new,shipped)&limit=2", headers=sales_headers).get_json()
    assert body["count"] == 2
    assert body["pagination"]["total"] == 3

    resp = client.get("/api/orders/view?colour=eq.red", headers=sales_headers)
    assert resp.status_code == 400


def test_status_routes(client, saved_order, sales_headers, admin_headers):
    order_id = saved_order["order"]["id"]
    resp = client.post(f"/api/orders/{order_id}/status", json={"status": "shipped"}, headers=sales_headers)
    assert resp.status_code == 403

    resp = client.post(f"/api/orders/{order_id}/status", json={"status": "lost"}, headers=admin_headers)
    assert resp.status_code == 400

    resp = client.post(f"/api/orders/{order_id}/cancel", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()["order"]["status"] == "cancelled"

    resp = client.post("/api/orders/status", json={"ids": [order_id], "status": "new"}, headers=admin_headers)
    assert resp.get_json()["updated"] == [order_id]

    history = client.get(f"/api/orders/{order_id}/history", headers=sales_headers).get_json()
    assert history["count"] == 2


def test_delete_order(client, saved_order, sales_headers, other_headers, db_session):
    order_id = saved_order["order"]["id"]
    assert client.delete(f"/api/orders/{order_id}", headers=other_headers).status_code == 404
    assert client.delete(f"/api/orders/{order_id}", headers=sales_headers).status_code == 200
    assert client.delete(f"/api/orders/{order_id}", headers=sales_headers).status_code == 404
    assert db_session.query(OrderItem).count() == 0
