import hashlib
import hmac
import os
from contextlib import contextmanager

os.environ.setdefault("JWT_SECRET", "thriftshop-test-secret")
os.environ.setdefault("ENVIRONMENT", "test")

import psycopg
import pytest
from fastapi.testclient import TestClient

from thriftshop.main import app
from thriftshop.routes import api_admin, api_auth, functions


class FakeCursor:
    def __init__(self, db: "FakeDB"):
        self.db = db
        self.rowcount = 0
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        flat = " ".join(sql.split())
        self.db.executed.append((flat, params))
        if self.db.fail_on and self.db.fail_on in flat:
            raise self.db.fail_with("simulated failure")
        self._rows = list(self.db.results.pop(0)) if self.db.results else []
        self.rowcount = len(self._rows) or 1

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)


class FakeConn:
    def __init__(self, db: "FakeDB"):
        self.db = db

    def cursor(self):
        return FakeCursor(self.db)

    def execute(self, sql, params=None, prepare=None):
        self.db.executed.append((" ".join(sql.split()), params))

    def commit(self):
        self.db.commits += 1

    def rollback(self):
        self.db.rollbacks += 1


class FakeDB:
    """Stands in for get_conn; each execute pops the next queued result set."""

    def __init__(self, results=None, fail_on=None, fail_with=psycopg.Error):
        self.results = list(results or [])
        self.fail_on = fail_on
        self.fail_with = fail_with
        self.executed = []
        self.commits = 0
        self.rollbacks = 0

    @contextmanager
    def connect(self, cfg=None):
        yield FakeConn(self)

    def statements(self):
        return [sql for sql, _ in self.executed]


def sign_payment(order_id, payment_id, secret):
    """The signature Razorpay Checkout hands back for a successful payment."""
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


@pytest.fixture
def api():
    with TestClient(app) as c:
        yield c


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    for limiter in functions.LIMITERS.values():
        limiter.reset()
    api_auth.LOGIN_LIMITER.reset()
    api_admin.UPLOAD_LIMITER.reset()
    yield
