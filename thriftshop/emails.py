from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List

import httpx

from .config import EmailConfig
from .validation import escape_html, sanitize_string


_log = logging.getLogger("thriftshop.emails")

RESEND_URL = "https://api.resend.com/emails"


class EmailDeliveryError(RuntimeError):
    pass


@dataclass(frozen=True)
class ConfirmationItem:
    product_name: str
    product_price: float
    product_size: str = ""


def order_reference(order_id: str) -> str:
    return escape_html(sanitize_string(order_id, 50))[:8].upper()


def format_rupees(amount: Any) -> str:
    try:
        value = max(0, math.floor(float(amount)))
    except (TypeError, ValueError):
        value = 0
    return f"₹{value:,}"


def render_order_confirmation(
    *,
    customer_name: str,
    order_id: str,
    items: List[ConfirmationItem],
    subtotal: float,
    shipping: float,
    total: float,
    address: Dict[str, str],
) -> str:
    safe_name = escape_html(sanitize_string(customer_name, 100))
    ref = order_reference(order_id)
    street = escape_html(sanitize_string(address.get("street"), 200))
    city = escape_html(sanitize_string(address.get("city"), 100))
    state = escape_html(sanitize_string(address.get("state"), 100))
    pincode = escape_html(sanitize_string(address.get("pincode"), 10))

    rows = "".join(
        "<tr>"
        f"<td style=\"padding: 12px; border-bottom: 1px solid #eee;\">{escape_html(sanitize_string(i.product_name, 200))}</td>"
        f"<td style=\"padding: 12px; border-bottom: 1px solid #eee;\">{escape_html(sanitize_string(i.product_size or 'N/A', 20))}</td>"
        f"<td style=\"padding: 12px; border-bottom: 1px solid #eee; text-align: right;\">{format_rupees(i.product_price)}</td>"
        "</tr>"
        for i in items
    )
    shipping_label = "Free" if not shipping else format_rupees(shipping)

    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        "<meta name=\"viewport\" content=\"width=device-width, initial-scale=1.0\"></head>"
        "<body style=\"font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; "
        "margin: 0; padding: 0; background-color: #f5f5f5;\">"
        "<div style=\"max-width: 600px; margin: 0 auto; background-color: #ffffff; padding: 40px;\">"
        f"<h1 style=\"color: #333; font-size: 24px;\">Thank you for your order, {safe_name}!</h1>"
        "<p style=\"color: #666; font-size: 16px;\">We've received your order and are getting it ready. "
        "You'll receive another email when your order ships.</p>"
        f"<div style=\"background-color: #f9f9f9; padding: 20px; border-radius: 8px;\"><p><strong>Order ID:</strong> {ref}</p></div>"
        "<h2 style=\"color: #333; font-size: 18px;\">Order Summary</h2>"
        "<table style=\"width: 100%; border-collapse: collapse;\"><thead><tr style=\"background-color: #f9f9f9;\">"
        "<th style=\"padding: 12px; text-align: left;\">Item</th>"
        "<th style=\"padding: 12px; text-align: left;\">Size</th>"
        "<th style=\"padding: 12px; text-align: right;\">Price</th>"
        f"</tr></thead><tbody>{rows}</tbody></table>"
        "<table style=\"width: 100%; margin-top: 24px;\">"
        f"<tr><td>Subtotal:</td><td style=\"text-align: right;\">{format_rupees(subtotal)}</td></tr>"
        f"<tr><td>Shipping:</td><td style=\"text-align: right;\">{shipping_label}</td></tr>"
        f"<tr style=\"font-size: 18px; font-weight: 600;\"><td>Total:</td><td style=\"text-align: right;\">{format_rupees(total)}</td></tr>"
        "</table>"
        "<h2 style=\"color: #333; font-size: 18px;\">Shipping Address</h2>"
        f"<p style=\"color: #666;\">{street}<br>{city}, {state} {pincode}</p>"
        "<p style=\"color: #999; font-size: 14px; text-align: center;\">"
        "If you have any questions, reply to this email or contact our support team.</p>"
        "</div></body></html>"
    )


def send_email(cfg: EmailConfig, *, to: str, subject: str, html_body: str) -> Dict[str, Any]:
    if not cfg.resend_api_key:
        raise EmailDeliveryError("Email service not configured")

    _log.info("[ORDER_EMAIL] using=resend from=%s to=%s", cfg.from_email, to)
    try:
        with httpx.Client(timeout=10.0) as client:
            resp = client.post(
                RESEND_URL,
                headers={"Authorization": f"Bearer {cfg.resend_api_key}"},
                json={"from": cfg.from_email, "to": [to], "subject": subject, "html": html_body},
            )
    except httpx.HTTPError as exc:
        _log.exception("Resend HTTP error")
        raise EmailDeliveryError("Failed to send email") from exc

    if resp.status_code >= 400:
        _log.error("Resend send failed status=%s body=%s", resp.status_code, resp.text)
        raise EmailDeliveryError(f"Failed to send email: {resp.text}")
    return resp.json()
