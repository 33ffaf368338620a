from __future__ import annotations

from typing import Sequence

from fastapi import HTTPException

from .db import ts
from .models import StoreSettingsOut


SETTINGS_COLUMNS = (
    "id, store_name, contact_email, contact_phone, shipping_charge, free_shipping_threshold, "
    "new_order_notifications, low_stock_alerts, customer_messages, updated_at"
)


def settings_from_row(r: Sequence) -> StoreSettingsOut:
    return StoreSettingsOut(
        id=str(r[0]),
        store_name=str(r[1]),
        contact_email=str(r[2] or ""),
        contact_phone=str(r[3] or ""),
        shipping_charge=float(r[4]),
        free_shipping_threshold=float(r[5]),
        new_order_notifications=bool(r[6]),
        low_stock_alerts=bool(r[7]),
        customer_messages=bool(r[8]),
        updated_at=ts(r[9]),
    )


def fetch_settings(cur) -> StoreSettingsOut:
    cur.execute(f"SELECT {SETTINGS_COLUMNS} FROM thriftshop.store_settings ORDER BY created_at LIMIT 1;")
    row = cur.fetchone()
    if row is None:
        raise HTTPException(status_code=500, detail="No store settings found")
    return settings_from_row(row)
