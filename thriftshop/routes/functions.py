"""Payment and email handlers: create-razorpay-order, verify-razorpay-payment,
send-order-confirmation. Each takes a JSON body and answers JSON of the form
``{"error": ...}`` on failure.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse
import psycopg

from ..config import EmailConfig, RazorpayConfig
from ..db import get_conn
from ..emails import ConfirmationItem, EmailDeliveryError, order_reference, render_order_confirmation, send_email
from ..payments import (
    PaymentGatewayError,
    create_razorpay_order,
    is_valid_razorpay_id,
    is_valid_signature_format,
    verify_signature,
)
from ..rate_limit import RateLimiter, RateLimitResult, client_ip
from ..validation import (
    SUPPORTED_CURRENCIES,
    is_valid_amount,
    is_valid_currency,
    is_valid_email,
    is_valid_uuid,
    sanitize_for_logging,
    sanitize_string,
)


router = APIRouter(prefix="/functions", tags=["functions"])

_log = logging.getLogger("thriftshop.functions")

LIMITERS: Dict[str, RateLimiter] = {
    "razorpay-order": RateLimiter(max_requests=10, window_seconds=60),
    "razorpay-verify": RateLimiter(max_requests=5, window_seconds=60),
    "email": RateLimiter(max_requests=5, window_seconds=60),
}


def _error(status: int, message: str, **extra: Any) -> JSONResponse:
    body: Dict[str, Any] = {"error": message}
    body.update(extra)
    return JSONResponse(status_code=status, content=body, headers={"Cache-Control": "no-store"})


def _rate_limited(result: RateLimitResult) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"error": "Too many requests. Please try again later.", "retryAfter": result.retry_after()},
        headers={"Retry-After": str(result.retry_after()), "X-RateLimit-Remaining": "0"},
    )


def _check(bucket: str, request: Request) -> RateLimitResult:
    ip = client_ip(request)
    result = LIMITERS[bucket].check(f"{bucket}:{ip}")
    if not result.allowed:
        _log.warning("Rate limit exceeded bucket=%s ip=%s", bucket, ip)
    return result


@router.post("/create-razorpay-order")
def create_payment_order(request: Request, payload: Dict[str, Any] = Body(...)):
    rate = _check("razorpay-order", request)
    if not rate.allowed:
        return _rate_limited(rate)

    amount = payload.get("amount")
    currency = payload.get("currency") or "INR"
    receipt = sanitize_string(payload.get("receipt"), 40)

    if not is_valid_amount(amount):
        _log.error("Invalid amount: %r", amount)
        return _error(400, "Invalid amount. Must be a positive integer.")
    if not is_valid_currency(currency):
        _log.error("Invalid currency: %r", currency)
        return _error(400, f"Invalid currency. Supported: {', '.join(SUPPORTED_CURRENCIES)}")

    cfg = RazorpayConfig()
    if not cfg.configured:
        _log.error("Razorpay credentials not configured")
        return _error(500, "Payment service not configured")

    _log.info("Creating Razorpay order amount=%s paise currency=%s", int(amount), currency.upper())
    try:
        data = create_razorpay_order(cfg, int(amount), currency, receipt)
    except PaymentGatewayError:
        return _error(500, "Failed to create payment order")

    return JSONResponse(
        content={
            "orderId": data.get("id"),
            "amount": data.get("amount"),
            "currency": data.get("currency"),
            "keyId": cfg.key_id,
        },
        headers={"X-RateLimit-Remaining": str(rate.remaining), "Cache-Control": "no-store"},
    )


@router.post("/verify-razorpay-payment")
def verify_payment(request: Request, payload: Dict[str, Any] = Body(...)):
    rate = _check("razorpay-verify", request)
    if not rate.allowed:
        return _rate_limited(rate)

    _log.info("verify payment request %s", sanitize_for_logging(payload))

    rzp_order_id = payload.get("razorpay_order_id")
    rzp_payment_id = payload.get("razorpay_payment_id")
    signature = payload.get("razorpay_signature")
    order_id = payload.get("orderId")
    product_ids = payload.get("productIds")

    if not rzp_order_id or not rzp_payment_id or not signature or not order_id:
        return _error(400, "Missing required parameters", verified=False)
    if not is_valid_razorpay_id(rzp_order_id, "order"):
        return _error(400, "Invalid order ID format", verified=False)
    if not is_valid_razorpay_id(rzp_payment_id, "pay"):
        return _error(400, "Invalid payment ID format", verified=False)
    if not is_valid_uuid(order_id):
        return _error(400, "Invalid order ID", verified=False)
    if not is_valid_signature_format(signature):
        return _error(400, "Invalid signature format", verified=False)
    if product_ids is not None:
        if not isinstance(product_ids, list) or not all(is_valid_uuid(p) for p in product_ids):
            return _error(400, "Invalid product ID format", verified=False)

    cfg = RazorpayConfig()
    if not cfg.key_secret:
        _log.error("Razorpay secret not configured")
        return _error(500, "Payment service not configured", verified=False)

    if not verify_signature(cfg, rzp_order_id, rzp_payment_id, signature):
        _log.error("Invalid payment signature for order %s", order_id)
        return _error(400, "Payment verification failed", verified=False)

    _log.info("Payment signature verified order=%s", order_id)

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE thriftshop.orders
                    SET payment_status = 'paid',
                        razorpay_order_id = %s,
                        razorpay_payment_id = %s,
                        updated_at = NOW()
                    WHERE id = %s
                      AND payment_method = 'upi'
                      AND payment_status = 'pending'
                    RETURNING id;
                    """,
                    (rzp_order_id, rzp_payment_id, order_id),
                )
                updated = cur.fetchone()
                if updated is None:
                    cur.execute("SELECT payment_status FROM thriftshop.orders WHERE id = %s;", (order_id,))
                    existing = cur.fetchone()
            conn.commit()

            if updated is None:
                if existing is None:
                    return _error(404, "Order not found", verified=True)
                _log.warning("Order %s is not awaiting online payment (payment_status=%s)", order_id, existing[0])
                return _error(409, "Order is not awaiting payment", verified=True)

            _mark_products_sold(conn, order_id, product_ids)
    except psycopg.errors.UniqueViolation:
        _log.warning("Payment %s already recorded against another order", rzp_payment_id)
        return _error(409, "Payment already used for another order", verified=True)
    except psycopg.Error:
        _log.exception("Error updating order %s after verification", order_id)
        return _error(500, "Failed to update order", verified=True)

    return JSONResponse(
        content={"verified": True, "message": "Payment verified successfully", "paymentId": rzp_payment_id},
        headers={"X-RateLimit-Remaining": str(rate.remaining), "Cache-Control": "no-store"},
    )


def _mark_products_sold(conn, order_id: str, product_ids: List[str] | None) -> None:
    """Mark the order's products sold. Failures are logged; the payment stays verified."""

    try:
        with conn.cursor() as cur:
            if product_ids:
                cur.execute(
                    """
                    UPDATE thriftshop.products SET status = 'sold', updated_at = NOW()
                    WHERE id = ANY(%s::uuid[])
                      AND id IN (SELECT product_id FROM thriftshop.order_items WHERE order_id = %s);
                    """,
                    (product_ids, order_id),
                )
            else:
                cur.execute(
                    """
                    UPDATE thriftshop.products SET status = 'sold', updated_at = NOW()
                    WHERE id IN (SELECT product_id FROM thriftshop.order_items WHERE order_id = %s);
                    """,
                    (order_id,),
                )
            count = cur.rowcount
        conn.commit()
        _log.info("Products marked as sold: %s", count)
    except psycopg.Error:
        conn.rollback()
        _log.exception("Error marking products sold for order %s", order_id)


@router.post("/send-order-confirmation")
def send_order_confirmation(request: Request, payload: Dict[str, Any] = Body(...)):
    rate = _check("email", request)
    if not rate.allowed:
        return _rate_limited(rate)

    email = payload.get("customerEmail")
    name = payload.get("customerName")
    order_id = payload.get("orderId")
    items = payload.get("orderItems")
    address = payload.get("shippingAddress")

    if not is_valid_email(email):
        return _error(400, "Invalid email address")
    if not isinstance(name, str) or not name.strip():
        return _error(400, "Customer name is required")
    if not order_id or not isinstance(order_id, str):
        return _error(400, "Order ID is required")
    if not isinstance(items, list) or not items:
        return _error(400, "Order items are required")

    parsed: List[ConfirmationItem] = []
    for item in items:
        price = item.get("product_price") if isinstance(item, dict) else None
        if (
            not isinstance(item, dict)
            or not item.get("product_name")
            or isinstance(price, bool)
            or not isinstance(price, (int, float))
        ):
            return _error(400, "Invalid order item data")
        parsed.append(
            ConfirmationItem(
                product_name=str(item["product_name"]),
                product_price=float(price),
                product_size=str(item.get("product_size") or ""),
            )
        )

    if not isinstance(address, dict) or not all(address.get(k) for k in ("street", "city", "state", "pincode")):
        return _error(400, "Complete shipping address is required")

    html_body = render_order_confirmation(
        customer_name=name,
        order_id=order_id,
        items=parsed,
        subtotal=payload.get("subtotal") or 0,
        shipping=payload.get("shipping") or 0,
        total=payload.get("total") or 0,
        address={k: str(address[k]) for k in ("street", "city", "state", "pincode")},
    )

    _log.info("Sending order confirmation order=%s", order_id)
    try:
        data = send_email(
            EmailConfig(),
            to=email,
            subject=f"Order Confirmation - {order_reference(order_id)}",
            html_body=html_body,
        )
    except EmailDeliveryError as exc:
        _log.error("Error sending order confirmation email: %s", exc)
        return _error(500, str(exc))

    return JSONResponse(content={"success": True, "data": data}, headers={"Cache-Control": "no-store"})
