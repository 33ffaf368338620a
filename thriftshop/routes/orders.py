from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Header, HTTPException, Query
import psycopg

from ..cart import shipping_for
from ..db import db_unavailable, get_conn, schema_missing, ts
from ..models import (
    CheckoutIn,
    GuestOrderLookupIn,
    GuestOrderOut,
    OrderCreatedOut,
    OrderOut,
)
from ..orders import ORDER_COLUMNS, fetch_items, order_from_row
from ..security import get_current_user, require_csrf
from ..store import fetch_settings
from ..validation import is_valid_uuid


router = APIRouter(prefix="/api/orders", tags=["orders"])

_log = logging.getLogger("thriftshop.orders")


@router.post("", response_model=OrderCreatedOut)
def create_order(
    req: CheckoutIn,
    user: Dict[str, Any] = Depends(get_current_user),
    csrf_token: str | None = Header(None, alias="X-CSRF-Token"),
):
    require_csrf(user, csrf_token)

    bad = [pid for pid in req.product_ids if not is_valid_uuid(pid)]
    if bad:
        raise HTTPException(status_code=400, detail=f"Invalid product ids: {bad}")

    user_id = str(user["sub"])

    try:
        with get_conn() as conn:
            conn.execute("SET TIME ZONE 'UTC';", prepare=False)
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT id, name, price, size, images, status
                    FROM thriftshop.products
                    WHERE id = ANY(%s::uuid[])
                    FOR UPDATE;
                    """,
                    (req.product_ids,),
                )
                prod = {str(r[0]): r for r in cur.fetchall()}

                missing = [pid for pid in req.product_ids if pid not in prod]
                if missing:
                    raise HTTPException(status_code=409, detail=f"Products no longer exist: {missing}")
                sold = [pid for pid in req.product_ids if str(prod[pid][5]) != "available"]
                if sold:
                    raise HTTPException(status_code=409, detail=f"Products already sold: {sold}")

                settings = fetch_settings(cur)
                subtotal = round(sum(float(prod[pid][2]) for pid in req.product_ids), 2)
                shipping = shipping_for(subtotal, settings.shipping_charge, settings.free_shipping_threshold)
                total = round(subtotal + shipping, 2)

                cur.execute(
                    f"""
                    INSERT INTO thriftshop.orders (
                        user_id, customer_email, shipping_name, shipping_phone, shipping_street,
                        shipping_city, shipping_state, shipping_pincode, payment_method,
                        payment_status, subtotal, shipping, total, status
                    )
                    VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s,'pending',%s,%s,%s,'pending')
                    RETURNING {ORDER_COLUMNS};
                    """,
                    (
                        user_id,
                        req.email,
                        req.name,
                        req.phone,
                        req.street,
                        req.city,
                        req.state,
                        req.pincode,
                        req.payment_method,
                        subtotal,
                        shipping,
                        total,
                    ),
                )
                order = order_from_row(cur.fetchone())

                cur.executemany(
                    """
                    INSERT INTO thriftshop.order_items (
                        order_id, product_id, product_name, product_price, product_size, product_image
                    )
                    VALUES (%s,%s,%s,%s,%s,%s);
                    """,
                    [
                        (
                            order.id,
                            pid,
                            str(prod[pid][1]),
                            float(prod[pid][2]),
                            str(prod[pid][3]),
                            (list(prod[pid][4] or []) or [None])[0],
                        )
                        for pid in req.product_ids
                    ],
                )

                if req.payment_method == "cod":
                    cur.execute(
                        "UPDATE thriftshop.products SET status = 'sold', updated_at = NOW() WHERE id = ANY(%s::uuid[]);",
                        (req.product_ids,),
                    )

                order.items = fetch_items(cur, [order.id])[order.id]
            conn.commit()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing()

    _log.info(
        "order created id=%s user_id=%s method=%s items=%s total=%s",
        order.id,
        user_id,
        req.payment_method,
        len(req.product_ids),
        order.total,
    )
    return OrderCreatedOut(
        order=order,
        product_ids=req.product_ids,
        next_action="confirm" if req.payment_method == "cod" else "pay",
    )


@router.get("", response_model=List[OrderOut])
def my_orders(
    limit: int = Query(50, ge=1, le=200),
    user: Dict[str, Any] = Depends(get_current_user),
):
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    SELECT {ORDER_COLUMNS}
                    FROM thriftshop.orders
                    WHERE user_id = %s
                    ORDER BY created_at DESC
                    LIMIT %s;
                    """,
                    (str(user["sub"]), int(limit)),
                )
                orders = [order_from_row(r) for r in cur.fetchall()]
                items = fetch_items(cur, [o.id for o in orders])
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing()

    for o in orders:
        o.items = items.get(o.id, [])
        o.item_count = len(o.items)
    return orders


@router.get("/{order_id}", response_model=OrderOut)
def order_detail(order_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    if not is_valid_uuid(order_id):
        raise HTTPException(status_code=404, detail="Order not found")

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {ORDER_COLUMNS} FROM thriftshop.orders WHERE id = %s AND user_id = %s;",
                    (order_id, str(user["sub"])),
                )
                row = cur.fetchone()
                if row is None:
                    raise HTTPException(status_code=404, detail="Order not found")
                order = order_from_row(row)
                order.items = fetch_items(cur, [order.id])[order.id]
                order.item_count = len(order.items)
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName):
        raise schema_missing()

    return order


@router.post("/lookup", response_model=GuestOrderOut)
def lookup_guest_order(req: GuestOrderLookupIn):
    if not is_valid_uuid(req.order_id):
        raise HTTPException(status_code=404, detail="Order not found")

    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT id, status, payment_status, total_amount, created_at FROM thriftshop.lookup_guest_order(%s, %s);",
                    (req.customer_email, req.order_id),
                )
                row = cur.fetchone()
    except psycopg.OperationalError:
        raise db_unavailable()
    except (psycopg.errors.UndefinedTable, psycopg.errors.InvalidSchemaName, psycopg.errors.UndefinedFunction):
        raise schema_missing("thriftshop.lookup_guest_order")

    if row is None:
        raise HTTPException(status_code=404, detail="Order not found")

    return GuestOrderOut(
        id=str(row[0]),
        status=str(row[1]),
        payment_status=str(row[2]),
        total_amount=float(row[3]),
        created_at=ts(row[4]),
    )
