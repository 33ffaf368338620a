import pytest
import razorpay

from conftest import sign_payment
from thriftshop import payments
from thriftshop.config import RazorpayConfig
from thriftshop.payments import (
    PaymentGatewayError,
    create_razorpay_order,
    is_valid_razorpay_id,
    is_valid_signature_format,
    razorpay_client,
    verify_signature,
)


SECRET = "rzp_test_secret"
ORDER_ID = "order_ABCDEFGHIJKLMN"
PAYMENT_ID = "pay_ABCDEFGHIJKLMN"
CFG = RazorpayConfig(key_id="rzp_test_key", key_secret=SECRET)


class FakeOrders:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def create(self, data):
        self.calls.append(data)
        if self.error is not None:
            raise self.error
        return self.response


class FakeClient:
    def __init__(self, orders):
        self.order = orders


def test_client_uses_configured_credentials():
    client = razorpay_client(CFG)
    assert client.auth == ("rzp_test_key", SECRET)


def test_verify_accepts_gateway_signature_and_rejects_others():
    good = sign_payment(ORDER_ID, PAYMENT_ID, SECRET)
    assert verify_signature(CFG, ORDER_ID, PAYMENT_ID, good)
    assert not verify_signature(RazorpayConfig(key_id="k", key_secret="other-secret"), ORDER_ID, PAYMENT_ID, good)
    assert not verify_signature(CFG, ORDER_ID, "pay_ZZZZZZZZZZZZZZ", good)
    assert not verify_signature(CFG, ORDER_ID, PAYMENT_ID, good.upper())
    assert not verify_signature(CFG, ORDER_ID, PAYMENT_ID, "")


def test_id_and_signature_formats():
    assert is_valid_razorpay_id(ORDER_ID, "order")
    assert is_valid_razorpay_id(PAYMENT_ID, "pay")
    assert not is_valid_razorpay_id("order_short", "order")
    assert not is_valid_razorpay_id(PAYMENT_ID, "order")
    assert not is_valid_razorpay_id(None, "pay")
    assert is_valid_signature_format("a" * 64)
    assert not is_valid_signature_format("a" * 63)
    assert not is_valid_signature_format("g" * 64)


def test_create_order_sends_amount_in_paise(monkeypatch):
    orders = FakeOrders(response={"id": "order_XYZ12345678901", "amount": 49900, "currency": "INR"})
    monkeypatch.setattr(payments, "razorpay_client", lambda cfg: FakeClient(orders))

    data = create_razorpay_order(CFG, 49900, "inr", "rcpt_1")

    assert data["id"] == "order_XYZ12345678901"
    assert orders.calls == [{"amount": 49900, "currency": "INR", "receipt": "rcpt_1", "payment_capture": 1}]


def test_create_order_raises_on_gateway_error(monkeypatch):
    orders = FakeOrders(error=razorpay.errors.BadRequestError("Authentication failed"))
    monkeypatch.setattr(payments, "razorpay_client", lambda cfg: FakeClient(orders))

    with pytest.raises(PaymentGatewayError):
        create_razorpay_order(CFG, 100, "INR", "")
