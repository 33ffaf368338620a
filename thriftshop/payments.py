from __future__ import annotations

import logging
import re
from typing import Any, Dict

import razorpay
import requests

from .config import RazorpayConfig


_log = logging.getLogger("thriftshop.payments")

SIGNATURE_RE = re.compile(r"^[a-f0-9]{64}$", re.IGNORECASE)

_GATEWAY_ERRORS = (
    razorpay.errors.BadRequestError,
    razorpay.errors.GatewayError,
    razorpay.errors.ServerError,
    requests.RequestException,
)


class PaymentGatewayError(RuntimeError):
    pass


def is_valid_razorpay_id(value: Any, prefix: str) -> bool:
    if not value or not isinstance(value, str):
        return False
    return re.fullmatch(rf"{re.escape(prefix)}_[a-zA-Z0-9]{{14,}}", value) is not None


def is_valid_signature_format(signature: Any) -> bool:
    return isinstance(signature, str) and SIGNATURE_RE.match(signature) is not None


def razorpay_client(cfg: RazorpayConfig) -> razorpay.Client:
    return razorpay.Client(auth=(cfg.key_id, cfg.key_secret))


def verify_signature(cfg: RazorpayConfig, order_id: str, payment_id: str, signature: str) -> bool:
    """True when ``signature`` is the gateway's HMAC of ``order_id|payment_id``."""

    client = razorpay_client(cfg)
    try:
        client.utility.verify_payment_signature(
            {
                "razorpay_order_id": order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature or "",
            }
        )
    except razorpay.errors.SignatureVerificationError:
        return False
    return True


def create_razorpay_order(cfg: RazorpayConfig, amount: int, currency: str, receipt: str) -> Dict[str, Any]:
    """Create an order with the Razorpay Orders API. ``amount`` is in paise."""

    client = razorpay_client(cfg)
    try:
        data = client.order.create(
            {
                "amount": int(amount),
                "currency": currency.upper(),
                "receipt": receipt,
                "payment_capture": 1,
            }
        )
    except _GATEWAY_ERRORS as exc:
        _log.error("Razorpay order create failed: %s", exc)
        raise PaymentGatewayError("Razorpay order create failed") from exc

    _log.info("Razorpay order created id=%s amount=%s currency=%s", data.get("id"), data.get("amount"), data.get("currency"))
    return data
