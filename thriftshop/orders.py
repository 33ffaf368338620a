from __future__ import annotations

from typing import Dict, List, Sequence

from .db import ts
from .models import ORDER_STATUSES, OrderItemOut, OrderOut


ORDER_COLUMNS = (
    "id, user_id, customer_email, shipping_name, shipping_phone, shipping_street, shipping_city, "
    "shipping_state, shipping_pincode, payment_method, payment_status, subtotal, shipping, total, "
    "status, created_at, updated_at"
)

ACTIVE_STATUSES = ("pending", "confirmed", "processing", "shipped")


def is_valid_status_transition(old: str, new: str) -> bool:
    """Admins may move an order to any status in the enum, and only there."""

    return old in ORDER_STATUSES and new in ORDER_STATUSES


def order_from_row(r: Sequence) -> OrderOut:
    return OrderOut(
        id=str(r[0]),
        user_id=str(r[1]) if r[1] is not None else None,
        customer_email=str(r[2]),
        shipping_name=str(r[3]),
        shipping_phone=str(r[4]),
        shipping_street=str(r[5]),
        shipping_city=str(r[6]),
        shipping_state=str(r[7]),
        shipping_pincode=str(r[8]),
        payment_method=str(r[9]),
        payment_status=str(r[10]),
        subtotal=float(r[11]),
        shipping=float(r[12]),
        total=float(r[13]),
        status=str(r[14]),
        created_at=ts(r[15]),
        updated_at=ts(r[16]),
    )


def fetch_items(cur, order_ids: List[str]) -> Dict[str, List[OrderItemOut]]:
    items: Dict[str, List[OrderItemOut]] = {oid: [] for oid in order_ids}
    if not order_ids:
        return items

    cur.execute(
        """
        SELECT order_id, id, product_id, product_name, product_price, product_size, product_image
        FROM thriftshop.order_items
        WHERE order_id = ANY(%s::uuid[])
        ORDER BY order_id, created_at, id;
        """,
        (order_ids,),
    )
    for r in cur.fetchall():
        items.setdefault(str(r[0]), []).append(
            OrderItemOut(
                id=str(r[1]),
                product_id=str(r[2]) if r[2] is not None else None,
                product_name=str(r[3]),
                product_price=float(r[4]),
                product_size=str(r[5]),
                product_image=r[6],
            )
        )
    return items
