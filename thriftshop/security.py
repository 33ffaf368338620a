from __future__ import annotations

import base64
import hashlib
import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Header, HTTPException

from .config import AuthConfig


PBKDF2_ITERATIONS = 180_000


def _jwt_secret() -> str:
    secret = AuthConfig().jwt_secret
    if not secret:
        raise HTTPException(status_code=500, detail="JWT not configured")
    return secret


def create_access_token(*, subject: str, role: str, extra: Optional[Dict[str, Any]] = None) -> str:
    cfg = AuthConfig()
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": subject,
        "role": role,
        "iss": cfg.jwt_issuer,
        "aud": cfg.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=cfg.jwt_ttl_minutes)).timestamp()),
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, _jwt_secret(), algorithm="HS256")


def decode_access_token(token: str) -> Dict[str, Any]:
    cfg = AuthConfig()
    try:
        return jwt.decode(
            token,
            _jwt_secret(),
            algorithms=["HS256"],
            audience=cfg.jwt_audience,
            issuer=cfg.jwt_issuer,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Session expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def parse_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2:
        return None
    scheme, token = parts[0].strip().lower(), parts[1].strip()
    if scheme != "bearer" or not token:
        return None
    return token


def hash_password(password: str) -> str:
    salt = os.urandom(16)
    dk = hashlib.pbkdf2_hmac("sha256", (password or "").encode("utf-8"), salt, PBKDF2_ITERATIONS)

    return "pbkdf2_sha256$%d$%s$%s" % (
        PBKDF2_ITERATIONS,
        base64.urlsafe_b64encode(salt).decode("utf-8"),
        base64.urlsafe_b64encode(dk).decode("utf-8"),
    )


def verify_password(password: str, stored: str | None) -> bool:
    try:
        algo, it_s, salt_b64, dk_b64 = (stored or "").split("$", 3)
        if algo != "pbkdf2_sha256":
            return False
        iterations = int(it_s)
        salt = base64.urlsafe_b64decode(salt_b64.encode("utf-8"))
        expected = base64.urlsafe_b64decode(dk_b64.encode("utf-8"))
    except ValueError:
        return False
    actual = hashlib.pbkdf2_hmac("sha256", (password or "").encode("utf-8"), salt, iterations)
    return hmac.compare_digest(actual, expected)


def create_csrf_token(subject: str) -> str:
    """CSRF token bound to the session subject; stateless, derived from the JWT secret."""

    mac = hmac.new(_jwt_secret().encode("utf-8"), f"csrf|{subject}".encode("utf-8"), hashlib.sha256)
    return mac.hexdigest()


def verify_csrf_token(subject: str, token: Optional[str]) -> bool:
    if not token:
        return False
    return hmac.compare_digest(create_csrf_token(subject), token.strip())


def constant_time_compare(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def get_current_user(authorization: str | None = Header(None)) -> Dict[str, Any]:
    token = parse_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Sign in required")
    return decode_access_token(token)


def get_optional_user(authorization: str | None = Header(None)) -> Optional[Dict[str, Any]]:
    token = parse_bearer_token(authorization)
    if not token:
        return None
    return decode_access_token(token)


def require_csrf(payload: Dict[str, Any], csrf_token: Optional[str]) -> None:
    if not verify_csrf_token(str(payload.get("sub") or ""), csrf_token):
        raise HTTPException(status_code=403, detail="Invalid or missing CSRF token")


def has_role(conn, user_id: str, role: str) -> bool:
    with conn.cursor() as cur:
        cur.execute("SELECT thriftshop.has_role(%s, %s);", (user_id, role))
        row = cur.fetchone()
    return bool(row and row[0])


def require_admin(conn, payload: Dict[str, Any]) -> None:
    # user_roles is authoritative, not the token's role claim.
    if not has_role(conn, str(payload.get("sub") or ""), "admin"):
        raise HTTPException(status_code=403, detail="Admin access required")
