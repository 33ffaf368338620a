from __future__ import annotations

from contextlib import contextmanager

import psycopg
from fastapi import HTTPException

from .config import PostgresConfig


SCHEMA = "thriftshop"


@contextmanager
def get_conn(cfg: PostgresConfig | None = None):
    conn = psycopg.connect((cfg or PostgresConfig()).dsn())
    try:
        yield conn
    finally:
        conn.close()


def db_unavailable() -> HTTPException:
    return HTTPException(
        status_code=503,
        detail=(
            "PostgreSQL connection failed. Set PGHOST/PGPORT/PGDATABASE/PGUSER/PGPASSWORD in .env "
            "and ensure PostgreSQL is running."
        ),
    )


def schema_missing(what: str = "thriftshop schema/tables") -> HTTPException:
    return HTTPException(
        status_code=500,
        detail=f"Store tables not found (missing {what}). Run: python -m thriftshop.run_sql --sql sql/schema.sql",
    )


def ts(x) -> str | None:
    if x is None:
        return None
    if hasattr(x, "isoformat"):
        return x.isoformat()
    return str(x)
