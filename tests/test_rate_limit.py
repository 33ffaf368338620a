import pytest
from fastapi import HTTPException
from starlette.requests import Request

from thriftshop.rate_limit import RateLimiter, client_ip, enforce


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_denies_request_past_limit_then_recovers():
    clock = Clock()
    limiter = RateLimiter(max_requests=3, window_seconds=60, clock=clock)

    results = [limiter.check("email:1.2.3.4") for _ in range(3)]
    assert [r.allowed for r in results] == [True, True, True]
    assert [r.remaining for r in results] == [2, 1, 0]

    denied = limiter.check("email:1.2.3.4")
    assert not denied.allowed
    assert denied.remaining == 0
    assert denied.retry_after(now=clock.now) == 60

    clock.now += 61
    assert limiter.check("email:1.2.3.4").allowed


def test_window_slides_per_hit():
    clock = Clock()
    limiter = RateLimiter(max_requests=2, window_seconds=10, clock=clock)
    limiter.check("k")
    clock.now += 5
    limiter.check("k")
    clock.now += 4
    assert not limiter.check("k").allowed
    clock.now += 2
    assert limiter.check("k").allowed


def test_keys_are_independent_and_resettable():
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=Clock())
    assert limiter.check("a").allowed
    assert limiter.check("b").allowed
    assert not limiter.check("a").allowed
    limiter.reset("a")
    assert limiter.check("a").allowed


def test_enforce_raises_429_with_headers():
    limiter = RateLimiter(max_requests=1, window_seconds=60, clock=Clock())
    enforce(limiter, "login:a@example.com")
    with pytest.raises(HTTPException) as exc:
        enforce(limiter, "login:a@example.com")
    assert exc.value.status_code == 429
    assert exc.value.headers["X-RateLimit-Remaining"] == "0"
    assert int(exc.value.headers["Retry-After"]) >= 1


def _request(headers):
    return Request({"type": "http", "headers": [(k.encode(), v.encode()) for k, v in headers.items()]})


def test_client_ip_uses_first_forwarded_address():
    assert client_ip(_request({"x-forwarded-for": "203.0.113.7, 10.0.0.1"})) == "203.0.113.7"
    assert client_ip(_request({})) == "unknown"


def test_idle_keys_are_dropped_after_the_window():
    clock = Clock()
    limiter = RateLimiter(max_requests=5, window_seconds=60, clock=clock)
    for i in range(10000):
        limiter.check(f"razorpay-order:10.0.{i // 256}.{i % 256}")
    assert len(limiter) == 10000

    clock.now += 30
    limiter.check("razorpay-order:198.51.100.1")
    assert len(limiter) == 10001

    clock.now += 61
    assert limiter.check("razorpay-order:198.51.100.2").allowed
    assert len(limiter) == 1


def test_sweep_keeps_keys_with_recent_hits():
    clock = Clock()
    limiter = RateLimiter(max_requests=2, window_seconds=60, clock=clock)
    limiter.check("old")
    clock.now += 50
    limiter.check("recent")
    limiter.check("recent")
    clock.now += 20
    limiter.check("new")
    assert len(limiter) == 2
    assert not limiter.check("recent").allowed
