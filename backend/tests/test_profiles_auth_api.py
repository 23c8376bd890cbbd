import pytest

from field_orders.models import Profile, User
from field_orders.services import auth_service, session_service

PASSWORD = "secret123"
KEY = {"apikey": "test-api-key"}


def test_api_key_required(client, sales_user):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Invalid API key"

    resp = client.get("/api/auth/me", headers={"apikey": "wrong"})
    assert resp.status_code == 401


def test_health_needs_no_key(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "ok"
    assert body["database"]["status"] == "healthy"


def test_bearer_token_required(client):
    resp = client.get("/api/orders", headers=KEY)
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Authentication required"

    resp = client.get("/api/orders", headers={**KEY, "Authorization": "Bearer nope"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Invalid or expired token"


def test_signup_then_login(client, db_session):
    resp = client.post("/api/auth/signup", json={
        "email": " New.Rep@Example.com ", "password": PASSWORD, "full_name": "New Rep",
    }, headers=KEY)
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["user"]["email"] == "new.rep@example.com"
    assert body["profile"]["role"] == "sales"
    assert body["profile"]["branch"] == "JKP"
    assert body["token"]

    me = client.get("/api/auth/me", headers={**KEY, "Authorization": f"Bearer {body['token']}"})
    assert me.get_json()["profile"]["full_name"] == "New Rep"

    resp = client.post("/api/auth/login", json={"email": "new.rep@example.com", "password": PASSWORD}, headers=KEY)
    assert resp.status_code == 200
    user = db_session.query(User).filter_by(email="new.rep@example.com").one()
    assert user.last_login_at is not None


@pytest.mark.parametrize("payload,status,message", [
    ({"email": "sales@example.com", "password": PASSWORD}, 409, "User already registered"),
    ({"email": "short@example.com", "password": "abc"}, 400, "Password should be at least 6 characters"),
    ({"email": "not-an-email", "password": PASSWORD}, 400, "Unable to validate email address: invalid format"),
    ({"email": "x@example.com"}, 400, "email and password required"),
])
def test_signup_errors(client, sales_user, payload, status, message):
    resp = client.post("/api/auth/signup", json=payload, headers=KEY)
    assert resp.status_code == status
    assert resp.get_json()["error"] == message


def test_login_rejects_bad_password(client, sales_user):
    resp = client.post("/api/auth/login", json={"email": "sales@example.com", "password": "wrong-one"}, headers=KEY)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid login credentials"


def test_login_creates_missing_profile(client, sales_user, db_session):
    db_session.delete(db_session.get(Profile, sales_user.id))
    db_session.commit()

    resp = client.post("/api/auth/login", json={"email": "sales@example.com", "password": PASSWORD}, headers=KEY)
    assert resp.status_code == 200
    assert resp.get_json()["profile"]["role"] == "sales"
    assert db_session.get(Profile, sales_user.id) is not None


def test_logout_revokes_token(client, sales_headers):
    assert client.post("/api/auth/logout", headers=sales_headers).status_code == 200
    assert client.get("/api/auth/me", headers=sales_headers).status_code == 401


def test_deactivated_user_loses_session(client, sales_user, sales_headers):
    auth_service.set_active(sales_user.id, False)
    assert client.get("/api/auth/me", headers=sales_headers).status_code == 401
    with pytest.raises(ValueError):
        session_service.create_session(sales_user.id)


def test_profiles_visibility(client, sales_user, admin_user, sales_headers, admin_headers):
    body = client.get("/api/profiles", headers=sales_headers).get_json()
    assert [p["id"] for p in body["items"]] == [sales_user.id]

    body = client.get("/api/profiles", headers=admin_headers).get_json()
    assert body["pagination"]["total"] == 2

    assert client.get(f"/api/profiles/{admin_user.id}", headers=sales_headers).status_code == 404
    resp = client.get(f"/api/profiles/{sales_user.id}", headers=admin_headers)
    assert resp.get_json()["email"] == "sales@example.com"


def test_self_update_limited_to_full_name(client, sales_headers):
    resp = client.patch("/api/profiles/me", json={"full_name": "Samuel"}, headers=sales_headers)
    assert resp.status_code == 200
    assert resp.get_json()["full_name"] == "Samuel"

    resp = client.patch("/api/profiles/me", json={"role": "admin"}, headers=sales_headers)
    assert resp.status_code == 400


def test_admin_role_change_applies_on_next_request(client, sales_user, sales_headers, admin_headers):
    resp = client.put(f"/api/profiles/{sales_user.id}", json={"role": "admin"}, headers=sales_headers)
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "Admin role required"

    assert client.post("/api/products", json={"sku": "Z1", "name": "Z"}, headers=sales_headers).status_code == 403

    resp = client.put(f"/api/profiles/{sales_user.id}", json={"role": "admin", "branch": "bgr"},
                      headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()["branch"] == "BGR"

    # same token, new role
    assert client.post("/api/products", json={"sku": "Z1", "name": "Z"}, headers=sales_headers).status_code == 201


def test_admin_update_validates_role(client, sales_user, admin_headers):
    resp = client.put(f"/api/profiles/{sales_user.id}", json={"role": "manager"}, headers=admin_headers)
    assert resp.status_code == 400
    resp = client.put("/api/profiles/9999", json={"role": "sales"}, headers=admin_headers)
    assert resp.status_code == 404


def test_me_profile_reports_defaults_without_row(client, sales_user, sales_headers, db_session):
    db_session.delete(db_session.get(Profile, sales_user.id))
    db_session.commit()

    body = client.get("/api/profiles/me", headers=sales_headers).get_json()
    assert body["role"] == "sales"
    assert body["full_name"] is None
