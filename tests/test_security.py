import jwt
import pytest
from fastapi import HTTPException

from thriftshop.orders import is_valid_status_transition
from thriftshop.security import (
    create_access_token,
    create_csrf_token,
    decode_access_token,
    hash_password,
    parse_bearer_token,
    require_csrf,
    verify_csrf_token,
    verify_password,
)


USER_ID = "3f2b8c1e-9d4a-4b6e-8f2a-1c3d5e7f9a0b"


def test_token_round_trip_carries_claims():
    token = create_access_token(subject=USER_ID, role="customer", extra={"email": "a@b.co"})
    payload = decode_access_token(token)
    assert payload["sub"] == USER_ID
    assert payload["role"] == "customer"
    assert payload["email"] == "a@b.co"
    assert payload["exp"] > payload["iat"]


def test_expired_token_is_rejected(monkeypatch):
    monkeypatch.setenv("JWT_TTL_MINUTES", "-1")
    token = create_access_token(subject=USER_ID, role="customer")
    with pytest.raises(HTTPException) as exc:
        decode_access_token(token)
    assert exc.value.status_code == 401
    assert exc.value.detail == "Session expired"


def test_token_for_another_audience_is_rejected():
    forged = jwt.encode(
        {"sub": USER_ID, "role": "admin", "aud": "someone-else", "iss": "thriftshop"},
        "thriftshop-test-secret",
        algorithm="HS256",
    )
    with pytest.raises(HTTPException) as exc:
        decode_access_token(forged)
    assert exc.value.status_code == 401


def test_missing_secret_is_a_server_error(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "")
    with pytest.raises(HTTPException) as exc:
        create_access_token(subject=USER_ID, role="customer")
    assert exc.value.status_code == 500


def test_password_hash_round_trip():
    stored = hash_password("Str0ng!pass")
    assert stored.startswith("pbkdf2_sha256$")
    assert verify_password("Str0ng!pass", stored)
    assert not verify_password("wrong", stored)
    assert not verify_password("Str0ng!pass", None)
    assert not verify_password("Str0ng!pass", "md5$1$x$y")
    assert not verify_password("Str0ng!pass", "pbkdf2_sha256$notanumber$x$y")


def test_csrf_token_is_bound_to_subject():
    token = create_csrf_token(USER_ID)
    assert verify_csrf_token(USER_ID, token)
    assert not verify_csrf_token("someone-else", token)
    assert not verify_csrf_token(USER_ID, None)
    require_csrf({"sub": USER_ID}, token)
    with pytest.raises(HTTPException) as exc:
        require_csrf({"sub": USER_ID}, "bogus")
    assert exc.value.status_code == 403


def test_parse_bearer_token():
    assert parse_bearer_token("Bearer abc.def") == "abc.def"
    assert parse_bearer_token("bearer   abc") == "abc"
    assert parse_bearer_token("Basic abc") is None
    assert parse_bearer_token("Bearer") is None
    assert parse_bearer_token(None) is None


def test_status_transitions_stay_inside_enum():
    assert is_valid_status_transition("pending", "confirmed")
    assert is_valid_status_transition("shipped", "delivered")
    assert is_valid_status_transition("pending", "cancelled")
    assert not is_valid_status_transition("pending", "refunded")
    assert not is_valid_status_transition("lost", "pending")
