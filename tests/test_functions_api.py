import psycopg
import pytest
from fastapi.testclient import TestClient

from conftest import FakeDB, sign_payment
from thriftshop.routes import functions


ORDER_UUID = "3f2b8c1e-9d4a-4b6e-8f2a-1c3d5e7f9a0b"
PRODUCT_UUID = "9a1b2c3d-4e5f-4a6b-9c8d-7e6f5a4b3c2d"
OTHER_ORDER_UUID = "5c6d7e8f-1a2b-4c3d-8e9f-0a1b2c3d4e5f"
RZP_ORDER = "order_ABCDEFGHIJKLMN"
RZP_PAYMENT = "pay_ABCDEFGHIJKLMN"
SECRET = "rzp_test_secret"


@pytest.fixture
def razorpay_env(monkeypatch):
    monkeypatch.setenv("RAZORPAY_KEY_ID", "rzp_test_key")
    monkeypatch.setenv("RAZORPAY_KEY_SECRET", SECRET)


def _verify_body(**overrides):
    body = {
        "razorpay_order_id": RZP_ORDER,
        "razorpay_payment_id": RZP_PAYMENT,
        "razorpay_signature": sign_payment(RZP_ORDER, RZP_PAYMENT, SECRET),
        "orderId": ORDER_UUID,
        "productIds": [PRODUCT_UUID],
    }
    body.update(overrides)
    return body


# create-razorpay-order


def test_create_order_rejects_bad_amount(api: TestClient, razorpay_env):
    for amount in (0, -100, 10.5, "500", None):
        r = api.post("/functions/create-razorpay-order", json={"amount": amount})
        assert r.status_code == 400
        assert r.json()["error"] == "Invalid amount. Must be a positive integer."


def test_create_order_rejects_unsupported_currency(api: TestClient, razorpay_env):
    r = api.post("/functions/create-razorpay-order", json={"amount": 50000, "currency": "JPY"})
    assert r.status_code == 400
    assert "Invalid currency" in r.json()["error"]


def test_create_order_without_credentials(api: TestClient, monkeypatch):
    monkeypatch.setenv("RAZORPAY_KEY_ID", "")
    monkeypatch.setenv("RAZORPAY_KEY_SECRET", "")
    r = api.post("/functions/create-razorpay-order", json={"amount": 50000})
    assert r.status_code == 500
    assert r.json() == {"error": "Payment service not configured"}


def test_create_order_success(api: TestClient, razorpay_env, monkeypatch):
    calls = []

    def fake_create(cfg, amount, currency, receipt):
        calls.append((amount, currency, receipt))
        return {"id": "order_NEW12345678901", "amount": amount, "currency": currency.upper()}

    monkeypatch.setattr(functions, "create_razorpay_order", fake_create)
    r = api.post(
        "/functions/create-razorpay-order",
        json={"amount": 129900, "currency": "inr", "receipt": "r" * 60},
        headers={"X-Forwarded-For": "198.51.100.1"},
    )
    assert r.status_code == 200
    assert r.json() == {
        "orderId": "order_NEW12345678901",
        "amount": 129900,
        "currency": "INR",
        "keyId": "rzp_test_key",
    }
    assert r.headers["X-RateLimit-Remaining"] == "9"
    assert r.headers["Cache-Control"] == "no-store"
    assert calls == [(129900, "inr", "r" * 40)]


def test_create_order_gateway_failure(api: TestClient, razorpay_env, monkeypatch):
    def boom(*args, **kwargs):
        raise functions.PaymentGatewayError("down")

    monkeypatch.setattr(functions, "create_razorpay_order", boom)
    r = api.post("/functions/create-razorpay-order", json={"amount": 100})
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to create payment order"}


def test_create_order_is_rate_limited_per_ip(api: TestClient, razorpay_env):
    headers = {"X-Forwarded-For": "203.0.113.9"}
    for _ in range(10):
        assert api.post("/functions/create-razorpay-order", json={"amount": 0}, headers=headers).status_code == 400
    r = api.post("/functions/create-razorpay-order", json={"amount": 0}, headers=headers)
    assert r.status_code == 429
    assert r.headers["X-RateLimit-Remaining"] == "0"
    assert int(r.headers["Retry-After"]) >= 1

    other = api.post("/functions/create-razorpay-order", json={"amount": 0}, headers={"X-Forwarded-For": "203.0.113.10"})
    assert other.status_code == 400


# verify-razorpay-payment


def test_verify_requires_all_parameters(api: TestClient, razorpay_env):
    r = api.post("/functions/verify-razorpay-payment", json={"orderId": ORDER_UUID})
    assert r.status_code == 400
    assert r.json() == {"error": "Missing required parameters", "verified": False}


@pytest.mark.parametrize(
    "override, message",
    [
        ({"razorpay_order_id": "order_bad"}, "Invalid order ID format"),
        ({"razorpay_payment_id": "payment_ABCDEFGHIJKLMN"}, "Invalid payment ID format"),
        ({"orderId": "not-a-uuid"}, "Invalid order ID"),
        ({"razorpay_signature": "xyz"}, "Invalid signature format"),
        ({"productIds": ["nope"]}, "Invalid product ID format"),
    ],
)
def test_verify_rejects_malformed_input(api: TestClient, razorpay_env, override, message):
    r = api.post("/functions/verify-razorpay-payment", json=_verify_body(**override))
    assert r.status_code == 400
    assert r.json() == {"error": message, "verified": False}


def test_verify_rejects_forged_signature(api: TestClient, razorpay_env, monkeypatch):
    db = FakeDB()
    monkeypatch.setattr(functions, "get_conn", db.connect)
    forged = sign_payment(RZP_ORDER, RZP_PAYMENT, "attacker-secret")
    r = api.post("/functions/verify-razorpay-payment", json=_verify_body(razorpay_signature=forged))
    assert r.status_code == 400
    assert r.json() == {"error": "Payment verification failed", "verified": False}
    assert db.executed == []


def test_verify_marks_order_paid_and_products_sold(api: TestClient, razorpay_env, monkeypatch):
    db = FakeDB(results=[[(ORDER_UUID,)]])
    monkeypatch.setattr(functions, "get_conn", db.connect)

    r = api.post("/functions/verify-razorpay-payment", json=_verify_body())

    assert r.status_code == 200
    assert r.json() == {"verified": True, "message": "Payment verified successfully", "paymentId": RZP_PAYMENT}
    order_sql, order_params = db.executed[0]
    assert "SET payment_status = 'paid'" in order_sql
    assert order_params == (RZP_ORDER, RZP_PAYMENT, ORDER_UUID)
    product_sql, product_params = db.executed[1]
    assert "UPDATE thriftshop.products SET status = 'sold'" in product_sql
    assert product_params == ([PRODUCT_UUID], ORDER_UUID)
    assert db.commits == 2


def test_verify_survives_product_update_failure(api: TestClient, razorpay_env, monkeypatch):
    db = FakeDB(results=[[(ORDER_UUID,)]], fail_on="UPDATE thriftshop.products")
    monkeypatch.setattr(functions, "get_conn", db.connect)

    r = api.post("/functions/verify-razorpay-payment", json=_verify_body())

    assert r.status_code == 200
    assert r.json()["verified"] is True
    assert db.rollbacks == 1


def test_verify_unknown_order(api: TestClient, razorpay_env, monkeypatch):
    db = FakeDB(results=[[]])
    monkeypatch.setattr(functions, "get_conn", db.connect)
    r = api.post("/functions/verify-razorpay-payment", json=_verify_body())
    assert r.status_code == 404
    assert r.json() == {"error": "Order not found", "verified": True}


def test_verify_refuses_order_not_awaiting_payment(api: TestClient, razorpay_env, monkeypatch):
    db = FakeDB(results=[[], [("paid",)]])
    monkeypatch.setattr(functions, "get_conn", db.connect)

    r = api.post("/functions/verify-razorpay-payment", json=_verify_body())

    assert r.status_code == 409
    assert r.json() == {"error": "Order is not awaiting payment", "verified": True}
    order_sql = db.statements()[0]
    assert "payment_method = 'upi'" in order_sql
    assert "payment_status = 'pending'" in order_sql
    assert not any("thriftshop.products" in sql for sql in db.statements())


def test_verify_refuses_payment_reused_for_another_order(api: TestClient, razorpay_env, monkeypatch):
    db = FakeDB(fail_on="UPDATE thriftshop.orders", fail_with=psycopg.errors.UniqueViolation)
    monkeypatch.setattr(functions, "get_conn", db.connect)

    r = api.post("/functions/verify-razorpay-payment", json=_verify_body(orderId=OTHER_ORDER_UUID))

    assert r.status_code == 409
    assert r.json() == {"error": "Payment already used for another order", "verified": True}
    assert db.commits == 0


def test_verify_is_rate_limited(api: TestClient, razorpay_env):
    for _ in range(5):
        api.post("/functions/verify-razorpay-payment", json={})
    r = api.post("/functions/verify-razorpay-payment", json={})
    assert r.status_code == 429


# send-order-confirmation


def _email_body(**overrides):
    body = {
        "customerEmail": "buyer@example.com",
        "customerName": "Asha <b>K</b>",
        "orderId": ORDER_UUID,
        "orderItems": [{"product_name": "Denim Jacket", "product_price": 1200, "product_size": "L"}],
        "subtotal": 1200,
        "shipping": 99,
        "total": 1299,
        "shippingAddress": {"street": "12 MG Road", "city": "Bengaluru", "state": "Karnataka", "pincode": "560001"},
    }
    body.update(overrides)
    return body


@pytest.mark.parametrize(
    "override, message",
    [
        ({"customerEmail": "nope"}, "Invalid email address"),
        ({"customerName": "  "}, "Customer name is required"),
        ({"orderId": ""}, "Order ID is required"),
        ({"orderItems": []}, "Order items are required"),
        ({"orderItems": [{"product_name": "X", "product_price": "free"}]}, "Invalid order item data"),
        ({"shippingAddress": {"street": "12 MG Road"}}, "Complete shipping address is required"),
    ],
)
def test_confirmation_validation(api: TestClient, override, message):
    r = api.post("/functions/send-order-confirmation", json=_email_body(**override))
    assert r.status_code == 400
    assert r.json() == {"error": message}


def test_confirmation_sends_escaped_email(api: TestClient, monkeypatch):
    sent = {}

    def fake_send(cfg, *, to, subject, html_body):
        sent.update(to=to, subject=subject, html=html_body)
        return {"id": "email_1"}

    monkeypatch.setattr(functions, "send_email", fake_send)
    r = api.post("/functions/send-order-confirmation", json=_email_body())

    assert r.status_code == 200
    assert r.json() == {"success": True, "data": {"id": "email_1"}}
    assert sent["to"] == "buyer@example.com"
    assert sent["subject"] == "Order Confirmation - 3F2B8C1E"
    assert "Asha &lt;b&gt;K&lt;/b&gt;" in sent["html"]
    assert "<b>K</b>" not in sent["html"]


def test_confirmation_without_email_service(api: TestClient, monkeypatch):
    monkeypatch.setenv("RESEND_API_KEY", "")
    r = api.post("/functions/send-order-confirmation", json=_email_body())
    assert r.status_code == 500
    assert r.json() == {"error": "Email service not configured"}
