import re

from fastapi.testclient import TestClient

from thriftshop import main
from thriftshop.config import AppConfig


def test_allowed_origin_is_echoed(api: TestClient):
    origin = main._cfg.allowed_origins[0]
    r = api.get("/health", headers={"Origin": origin})
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == origin
    assert r.headers["access-control-allow-credentials"] == "true"


def test_preview_origin_is_allowed_outside_production(api: TestClient):
    origin = "https://feature-x.lovable.app"
    r = api.get("/health", headers={"Origin": origin})
    assert r.headers["access-control-allow-origin"] == origin

    r = api.options(
        "/api/orders",
        headers={
            "Origin": "https://abc123.lovableproject.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "authorization, x-csrf-token",
        },
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "https://abc123.lovableproject.com"


def test_foreign_origin_gets_no_cors_headers(api: TestClient):
    for origin in ("https://evil.example.com", "https://lovable.app.evil.example.com"):
        r = api.get("/health", headers={"Origin": origin})
        assert "access-control-allow-origin" not in r.headers

    r = api.options(
        "/api/orders",
        headers={"Origin": "https://evil.example.com", "Access-Control-Request-Method": "POST"},
    )
    assert r.status_code == 400


def test_preview_origins_are_not_trusted_in_production():
    assert main.cors_origin_regex(AppConfig(environment="production")) is None
    pattern = main.cors_origin_regex(AppConfig(environment="development"))
    assert re.fullmatch(pattern, "https://shop.lovable.app")
    assert not re.fullmatch(pattern, "http://shop.lovable.app")


def test_request_id_is_echoed(api: TestClient):
    r = api.get("/health", headers={"X-Request-ID": "checkout-42"})
    assert r.headers["X-Request-ID"] == "checkout-42"


def test_request_id_is_minted_when_missing(api: TestClient):
    first = api.get("/health").headers["X-Request-ID"]
    second = api.get("/health").headers["X-Request-ID"]
    assert re.fullmatch(r"[0-9a-f]{12}", first)
    assert first != second
