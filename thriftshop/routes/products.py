from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query
import psycopg

from ..catalog import PRODUCT_COLUMNS, filter_products, product_from_row, split_by_status
from ..db import db_unavailable, get_conn, schema_missing
from ..models import CatalogOut, ProductOut
from ..validation import is_valid_uuid


router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("", response_model=CatalogOut)
def list_products(
    category: Optional[str] = Query(None),
    size: Optional[str] = Query(None),
    condition: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
):
    sql = f"""
        SELECT {PRODUCT_COLUMNS}
        FROM thriftshop.products
        ORDER BY created_at DESC;
    """

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(sql)
                rows = cur.fetchall()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.products")

    products = filter_products(
        [product_from_row(r) for r in rows],
        category=category,
        size=size,
        condition=condition,
        min_price=min_price,
        max_price=max_price,
    )
    available, sold = split_by_status(products)
    return CatalogOut(available=available, sold=sold, total=len(products))


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str):
    if not is_valid_uuid(product_id):
        raise HTTPException(status_code=404, detail="Product not found")

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {PRODUCT_COLUMNS} FROM thriftshop.products WHERE id = %s;",
                    (product_id,),
                )
                row = cur.fetchone()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.products")

    if row is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product_from_row(row)
