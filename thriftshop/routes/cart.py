from __future__ import annotations

import logging
from typing import Dict, List

from fastapi import APIRouter
import psycopg

from ..cart import cart_total, item_count, revalidate_cart, shipping_for, validate_cart_item
from ..db import db_unavailable, get_conn, schema_missing
from ..models import CartValidateIn, CartValidateOut
from ..store import fetch_settings
from ..validation import is_valid_uuid


router = APIRouter(prefix="/api/cart", tags=["cart"])

_log = logging.getLogger("thriftshop.cart")


def live_products(cur, product_ids: List[str]) -> Dict[str, dict]:
    ids = [pid for pid in product_ids if is_valid_uuid(pid)]
    if not ids:
        return {}
    cur.execute(
        "SELECT id, price, status FROM thriftshop.products WHERE id = ANY(%s::uuid[]);",
        (ids,),
    )
    return {str(r[0]): {"price": float(r[1]), "status": str(r[2])} for r in cur.fetchall()}


@router.post("/validate", response_model=CartValidateOut)
def validate_cart(req: CartValidateIn):
    """Re-check a stored cart against live prices and availability."""

    structurally_ok = [i for i in req.items if validate_cart_item(i)]
    malformed = len(req.items) - len(structurally_ok)
    if malformed:
        _log.info("cart validate dropped %s malformed item(s)", malformed)

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                live = live_products(cur, [i["product"]["id"] for i in structurally_ok])
                settings = fetch_settings(cur)
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing("thriftshop.products")

    items, removed, repriced = revalidate_cart(structurally_ok, live)
    subtotal = cart_total(items)
    shipping = shipping_for(subtotal, settings.shipping_charge, settings.free_shipping_threshold)

    return CartValidateOut(
        items=items,
        removed=removed,
        repriced=repriced,
        item_count=item_count(items),
        subtotal=subtotal,
        shipping=shipping,
        total=round(subtotal + shipping, 2),
    )
