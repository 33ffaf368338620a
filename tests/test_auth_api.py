from fastapi.testclient import TestClient

from conftest import FakeDB
from thriftshop.routes import api_auth, orders
from thriftshop.security import create_access_token, create_csrf_token, hash_password


USER_ID = "3f2b8c1e-9d4a-4b6e-8f2a-1c3d5e7f9a0b"
PRODUCT_UUID = "9a1b2c3d-4e5f-4a6b-9c8d-7e6f5a4b3c2d"


def _auth(user_id=USER_ID, role="customer"):
    return {"Authorization": f"Bearer {create_access_token(subject=user_id, role=role)}"}


def _checkout_body(**overrides):
    body = {
        "name": "Asha Kumar",
        "email": "Buyer@Example.com",
        "phone": "9876543210",
        "street": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
        "payment_method": "cod",
        "product_ids": [PRODUCT_UUID],
    }
    body.update(overrides)
    return body


def test_protected_routes_require_sign_in(api: TestClient):
    assert api.get("/api/auth/me").status_code == 401
    assert api.get("/api/orders").status_code == 401
    assert api.get("/api/addresses").status_code == 401
    assert api.get("/api/admin/dashboard").status_code == 401
    assert api.post("/api/orders", json=_checkout_body()).status_code == 401


def test_garbage_token_is_rejected(api: TestClient):
    r = api.get("/api/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid token"


def test_checkout_requires_csrf_token(api: TestClient):
    r = api.post("/api/orders", json=_checkout_body(), headers=_auth())
    assert r.status_code == 403

    headers = dict(_auth(), **{"X-CSRF-Token": create_csrf_token("someone-else")})
    assert api.post("/api/orders", json=_checkout_body(), headers=headers).status_code == 403


def test_checkout_validates_fields(api: TestClient):
    headers = dict(_auth(), **{"X-CSRF-Token": create_csrf_token(USER_ID)})
    for override in (
        {"phone": "12345"},
        {"pincode": "5600"},
        {"name": "A"},
        {"email": "nope"},
        {"payment_method": "card"},
        {"product_ids": []},
    ):
        r = api.post("/api/orders", json=_checkout_body(**override), headers=headers)
        assert r.status_code == 422, override


def test_checkout_rejects_sold_products(api: TestClient, monkeypatch):
    db = FakeDB(results=[[(PRODUCT_UUID, "Denim Jacket", 1200, "L", [], "sold")]])
    monkeypatch.setattr(orders, "get_conn", db.connect)
    headers = dict(_auth(), **{"X-CSRF-Token": create_csrf_token(USER_ID)})

    r = api.post("/api/orders", json=_checkout_body(), headers=headers)

    assert r.status_code == 409
    assert "already sold" in r.json()["detail"]
    assert db.commits == 0


def test_signup_enforces_password_and_name_rules(api: TestClient):
    r = api.post("/api/auth/signup", json={"email": "a@b.co", "password": "weakpass", "name": "Asha"})
    assert r.status_code == 422
    r = api.post("/api/auth/signup", json={"email": "a@b.co", "password": "Str0ng!pass", "name": "R2D2"})
    assert r.status_code == 422


def test_login_success_issues_token_and_csrf(api: TestClient, monkeypatch):
    stored = hash_password("Str0ng!pass")
    db = FakeDB(results=[[(USER_ID, stored)], [("admin",)]])
    monkeypatch.setattr(api_auth, "get_conn", db.connect)

    r = api.post(
        "/api/auth/login",
        json={"email": "Admin@Example.com", "password": "Str0ng!pass", "redirect": "https://evil.example.com"},
    )

    assert r.status_code == 200
    data = r.json()
    assert data["user_id"] == USER_ID
    assert data["email"] == "admin@example.com"
    assert data["role"] == "admin"
    assert data["csrf_token"] == create_csrf_token(USER_ID)
    assert data["redirect_to"] == "/"
    assert data["expires_in_seconds"] == 30 * 60

    me = api.get("/api/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.status_code != 401


def test_login_keeps_safe_redirect(api: TestClient, monkeypatch):
    db = FakeDB(results=[[(USER_ID, hash_password("Str0ng!pass"))], [("customer",)]])
    monkeypatch.setattr(api_auth, "get_conn", db.connect)
    r = api.post("/api/auth/login", json={"email": "a@b.co", "password": "Str0ng!pass", "redirect": "/orders"})
    assert r.json()["redirect_to"] == "/orders"


def test_login_attempts_are_limited_per_email(api: TestClient, monkeypatch):
    db = FakeDB()
    monkeypatch.setattr(api_auth, "get_conn", db.connect)
    body = {"email": "victim@example.com", "password": "guess"}

    for _ in range(5):
        r = api.post("/api/auth/login", json=body)
        assert r.status_code == 401
        assert r.json()["detail"] == "Invalid email or password"

    r = api.post("/api/auth/login", json=body)
    assert r.status_code == 429
    assert "Retry-After" in r.headers

    other = api.post("/api/auth/login", json={"email": "other@example.com", "password": "guess"})
    assert other.status_code == 401


def test_google_sign_in_needs_client_id(api: TestClient, monkeypatch):
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "")
    r = api.post("/api/auth/oauth/google", json={"id_token": "x" * 40})
    assert r.status_code == 500


def test_has_role_rejects_unknown_role(api: TestClient):
    r = api.get("/api/auth/has-role?role=superuser", headers=_auth())
    assert r.status_code == 400


def test_admin_routes_check_roles_table_not_token(api: TestClient, monkeypatch):
    from thriftshop.routes import api_admin

    db = FakeDB(results=[[(False,)]])
    monkeypatch.setattr(api_admin, "get_conn", db.connect)

    r = api.get("/api/admin/dashboard", headers=_auth(role="admin"))

    assert r.status_code == 403
    assert "thriftshop.has_role" in db.statements()[0]


def test_lookups_with_malformed_ids_are_not_found(api: TestClient):
    assert api.get("/api/products/not-a-uuid").status_code == 404
    assert api.get("/api/orders/not-a-uuid", headers=_auth()).status_code == 404
    r = api.post("/api/orders/lookup", json={"customer_email": "a@b.co", "order_id": "123"})
    assert r.status_code == 404
