"""Input validation and sanitisation helpers shared by the API handlers."""

from __future__ import annotations

import html
import math
import re
from typing import Any, Dict
from urllib.parse import urlparse


EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)
NAME_RE = re.compile(r"^[a-zA-Z\s'-]+$")
INDIAN_PHONE_RE = re.compile(r"^[6-9]\d{9}$")
PINCODE_RE = re.compile(r"^\d{6}$")

SUPPORTED_CURRENCIES = ("INR", "USD", "EUR", "GBP")
# Paise; ten lakh rupees.
MAX_AMOUNT = 100_000_000

_SENSITIVE_FIELDS = ("password", "secret", "key", "token", "signature", "credit_card", "cvv")


def is_valid_email(email: Any) -> bool:
    if not email or not isinstance(email, str):
        return False
    if len(email) > 254:
        return False
    return EMAIL_RE.match(email) is not None


def is_valid_uuid(value: Any) -> bool:
    if not value or not isinstance(value, str):
        return False
    return UUID_RE.match(value) is not None


def is_valid_amount(amount: Any) -> bool:
    """Amounts are integer minor units (paise), strictly positive and capped."""

    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return False
    if isinstance(amount, float) and (not math.isfinite(amount) or not amount.is_integer()):
        return False
    return 0 < amount <= MAX_AMOUNT


def is_valid_currency(currency: Any) -> bool:
    return isinstance(currency, str) and currency.upper() in SUPPORTED_CURRENCIES


def is_valid_phone(phone: Any) -> bool:
    if not phone or not isinstance(phone, str):
        return False
    cleaned = re.sub(r"[\s\-()+.]", "", phone)
    return re.fullmatch(r"\d{10,15}", cleaned) is not None


def is_valid_pincode(pincode: Any) -> bool:
    if not pincode or not isinstance(pincode, str):
        return False
    return PINCODE_RE.match(pincode.strip()) is not None


def sanitize_string(value: Any, max_length: int = 1000) -> str:
    if not value or not isinstance(value, str):
        return ""
    return value.strip()[:max_length]


def sanitize_input(value: str) -> str:
    """Strip angle brackets, ``javascript:`` and inline event handlers from free text."""

    out = value.strip()
    out = re.sub(r"[<>]", "", out)
    out = re.sub(r"javascript:", "", out, flags=re.IGNORECASE)
    out = re.sub(r"on\w+=", "", out, flags=re.IGNORECASE)
    return out


def escape_html(value: Any) -> str:
    if not value or not isinstance(value, str):
        return ""
    return html.escape(value, quote=True).replace("&#x27;", "&#039;")


def sanitize_for_logging(obj: Dict[str, Any]) -> Dict[str, Any]:
    sanitized: Dict[str, Any] = {}
    for key, value in obj.items():
        lower_key = str(key).lower()
        if any(field in lower_key for field in _SENSITIVE_FIELDS):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_for_logging(value)
        else:
            sanitized[key] = value
    return sanitized


def password_problems(password: str) -> list[str]:
    pwd = password or ""
    problems = []
    if len(pwd) < 8:
        problems.append("Password must be at least 8 characters")
    if len(pwd) > 128:
        problems.append("Password is too long")
    if not re.search(r"[a-z]", pwd):
        problems.append("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", pwd):
        problems.append("Password must contain at least one uppercase letter")
    if not re.search(r"[0-9]", pwd):
        problems.append("Password must contain at least one number")
    if not re.search(r"[^a-zA-Z0-9]", pwd):
        problems.append("Password must contain at least one special character")
    return problems


def is_safe_redirect(url: str | None) -> bool:
    """Only same-origin relative paths are acceptable post-login redirects."""

    if not url or not isinstance(url, str):
        return False
    if not url.startswith("/") or url.startswith("//") or "\\" in url:
        return False
    parsed = urlparse(url)
    return not parsed.scheme and not parsed.netloc
