from __future__ import annotations

from fastapi import APIRouter
import psycopg

from ..db import db_unavailable, get_conn, schema_missing
from ..models import PublicStoreOut
from ..store import fetch_settings

router = APIRouter(prefix="/api", tags=["config"])


@router.get("/store", response_model=PublicStoreOut)
def public_store_info() -> PublicStoreOut:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT store_name FROM thriftshop.get_public_store_info();")
                row = cur.fetchone()
                settings = fetch_settings(cur)
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName, psycopg.errors.UndefinedFunction):
        raise schema_missing("thriftshop.get_public_store_info")

    return PublicStoreOut(
        store_name=str(row[0]) if row else settings.store_name,
        shipping_charge=settings.shipping_charge,
        free_shipping_threshold=settings.free_shipping_threshold,
    )
