from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, Request
import httpx
import psycopg

from ..audit import log_admin_action
from ..config import AuthConfig
from ..db import db_unavailable, get_conn, schema_missing
from ..models import (
    AuthMeOut,
    AuthTokenOut,
    GoogleSignInIn,
    HasRoleOut,
    PasswordChangeIn,
    ProfileOut,
    ProfileUpdateIn,
    SignInIn,
    SignUpIn,
)
from ..rate_limit import RateLimiter, enforce
from ..security import (
    create_access_token,
    create_csrf_token,
    get_current_user,
    has_role,
    hash_password,
    verify_password,
)
from ..validation import is_safe_redirect


router = APIRouter(prefix="/api/auth", tags=["api_auth"])

_log = logging.getLogger("thriftshop.auth")

GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"

LOGIN_LIMITER = RateLimiter(max_requests=5, window_seconds=15 * 60)

ROLES = ("admin", "customer")


def _issue(user_id: str, email: str, role: str, redirect: Optional[str] = None) -> AuthTokenOut:
    cfg = AuthConfig()
    token = create_access_token(subject=user_id, role=role, extra={"email": email})
    return AuthTokenOut(
        access_token=token,
        expires_in_seconds=int(cfg.jwt_ttl_minutes) * 60,
        csrf_token=create_csrf_token(user_id),
        user_id=user_id,
        email=email,
        role=role,
        redirect_to=redirect if is_safe_redirect(redirect) else "/",
    )


def _role_of(cur, user_id: str) -> str:
    cur.execute("SELECT role FROM thriftshop.user_roles WHERE user_id = %s;", (user_id,))
    row = cur.fetchone()
    return str(row[0]) if row else "customer"


def _create_user(cur, *, email: str, name: str, password_hash: Optional[str], provider: str) -> str:
    cur.execute(
        """
        INSERT INTO thriftshop.users (email, password_hash, auth_provider)
        VALUES (%s, %s, %s)
        RETURNING id;
        """,
        (email, password_hash, provider),
    )
    user_id = str(cur.fetchone()[0])
    cur.execute(
        "INSERT INTO thriftshop.profiles (user_id, email, name) VALUES (%s, %s, %s);",
        (user_id, email, name),
    )
    cur.execute(
        "INSERT INTO thriftshop.user_roles (user_id, role) VALUES (%s, 'customer');",
        (user_id,),
    )
    return user_id


@router.post("/signup", response_model=AuthTokenOut, status_code=201)
def signup(req: SignUpIn) -> AuthTokenOut:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 FROM thriftshop.users WHERE email = %s;", (req.email,))
                if cur.fetchone() is not None:
                    raise HTTPException(status_code=409, detail="An account with this email already exists")
                user_id = _create_user(
                    cur,
                    email=req.email,
                    name=req.name,
                    password_hash=hash_password(req.password),
                    provider="email",
                )
            conn.commit()
    except psycopg.errors.UniqueViolation:
        raise HTTPException(status_code=409, detail="An account with this email already exists")
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.users")

    _log.info("signup user_id=%s", user_id)
    return _issue(user_id, req.email, "customer")


@router.post("/login", response_model=AuthTokenOut)
def login(req: SignInIn) -> AuthTokenOut:
    enforce(LOGIN_LIMITER, f"login:{req.email}")

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT id, password_hash FROM thriftshop.users WHERE email = %s;",
                    (req.email,),
                )
                row = cur.fetchone()
                if row is None or not verify_password(req.password, row[1]):
                    _log.warning("login failed email=%s", req.email)
                    raise HTTPException(status_code=401, detail="Invalid email or password")
                user_id = str(row[0])
                role = _role_of(cur, user_id)
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.users")

    LOGIN_LIMITER.reset(f"login:{req.email}")
    _log.info("login user_id=%s role=%s", user_id, role)
    return _issue(user_id, req.email, role, req.redirect)


def _google_claims(id_token: str) -> Dict[str, Any]:
    client_id = AuthConfig().google_client_id
    if not client_id:
        raise HTTPException(status_code=500, detail="Google sign-in not configured")

    try:
        with httpx.Client(timeout=10.0) as client:
            resp = client.get(GOOGLE_TOKENINFO_URL, params={"id_token": id_token})
    except httpx.HTTPError:
        _log.exception("Google tokeninfo request failed")
        raise HTTPException(status_code=502, detail="Google sign-in unavailable")

    if resp.status_code != 200:
        raise HTTPException(status_code=401, detail="Invalid Google token")

    claims = resp.json()
    if claims.get("aud") != client_id:
        raise HTTPException(status_code=401, detail="Invalid Google token")
    if str(claims.get("email_verified")).lower() != "true" or not claims.get("email"):
        raise HTTPException(status_code=401, detail="Google account email not verified")
    return claims


@router.post("/oauth/google", response_model=AuthTokenOut)
def google_sign_in(req: GoogleSignInIn) -> AuthTokenOut:
    claims = _google_claims(req.id_token)
    email = str(claims["email"]).strip().lower()
    name = str(claims.get("name") or email.split("@")[0])[:100]

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT id FROM thriftshop.users WHERE email = %s;", (email,))
                row = cur.fetchone()
                if row is None:
                    user_id = _create_user(cur, email=email, name=name, password_hash=None, provider="google")
                    _log.info("google signup user_id=%s", user_id)
                else:
                    user_id = str(row[0])
                role = _role_of(cur, user_id)
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.users")

    return _issue(user_id, email, role, req.redirect)


def _profile(cur, user_id: str) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    cur.execute(
        "SELECT email, name, phone FROM thriftshop.profiles WHERE user_id = %s;",
        (user_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None, None, None
    return row[0], row[1], row[2]


@router.get("/me", response_model=AuthMeOut)
def me(user: Dict[str, Any] = Depends(get_current_user)) -> AuthMeOut:
    user_id = str(user["sub"])
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                email, name, _ = _profile(cur, user_id)
                role = _role_of(cur, user_id)
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.profiles")

    return AuthMeOut(user_id=user_id, email=str(email or user.get("email") or ""), role=role, name=name)


@router.get("/profile", response_model=ProfileOut)
def get_profile(user: Dict[str, Any] = Depends(get_current_user)) -> ProfileOut:
    user_id = str(user["sub"])
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                email, name, phone = _profile(cur, user_id)
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.profiles")

    return ProfileOut(user_id=user_id, email=email, name=name, phone=phone)


@router.put("/profile", response_model=ProfileOut)
def update_profile(req: ProfileUpdateIn, user: Dict[str, Any] = Depends(get_current_user)) -> ProfileOut:
    user_id = str(user["sub"])
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE thriftshop.profiles
                    SET name = COALESCE(%s, name),
                        phone = COALESCE(%s, phone),
                        updated_at = NOW()
                    WHERE user_id = %s
                    RETURNING email, name, phone;
                    """,
                    (req.name, req.phone, user_id),
                )
                row = cur.fetchone()
                if row is None:
                    raise HTTPException(status_code=404, detail="Profile not found")
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.profiles")

    return ProfileOut(user_id=user_id, email=row[0], name=row[1], phone=row[2])


@router.post("/password")
def change_password(
    req: PasswordChangeIn,
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
):
    user_id = str(user["sub"])
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT password_hash FROM thriftshop.users WHERE id = %s;", (user_id,))
                row = cur.fetchone()
                if row is None or not verify_password(req.current_password, row[0]):
                    raise HTTPException(status_code=400, detail="Current password is incorrect")
                cur.execute(
                    "UPDATE thriftshop.users SET password_hash = %s WHERE id = %s;",
                    (hash_password(req.new_password), user_id),
                )
            log_admin_action(conn, user_id=user_id, action="password_changed", details={}, request=request)
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.users")

    return {"ok": True}


@router.get("/has-role", response_model=HasRoleOut)
def check_role(
    role: str = Query("admin"),
    user: Dict[str, Any] = Depends(get_current_user),
) -> HasRoleOut:
    if role not in ROLES:
        raise HTTPException(status_code=400, detail=f"Unknown role: {role}")
    try:
        with get_conn() as conn:
            ok = has_role(conn, str(user["sub"]), role)
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName, psycopg.errors.UndefinedFunction):
        raise schema_missing("thriftshop.has_role")

    return HasRoleOut(role=role, has_role=ok)


@router.post("/refresh", response_model=AuthTokenOut)
def refresh(user: Dict[str, Any] = Depends(get_current_user)) -> AuthTokenOut:
    """Re-issue a token while the current one is still valid."""

    user_id = str(user["sub"])
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                role = _role_of(cur, user_id)
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.user_roles")

    return _issue(user_id, str(user.get("email") or ""), role)
