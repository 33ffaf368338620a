"""Cart rules. The cart lives on the client; the server only checks and reprices it."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Tuple


class CartError(ValueError):
    pass


def validate_cart_item(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    product = item.get("product")
    if not isinstance(product, dict):
        return False
    pid = product.get("id")
    if not pid or not isinstance(pid, str):
        return False
    price = product.get("price")
    if isinstance(price, bool) or not isinstance(price, (int, float)) or price < 0:
        return False
    qty = item.get("quantity")
    if isinstance(qty, bool) or not isinstance(qty, (int, float)) or qty < 1:
        return False
    return True


def add_to_cart(items: List[Dict[str, Any]], product: Mapping[str, Any]) -> List[Dict[str, Any]]:
    if product.get("status") == "sold":
        raise CartError("This item has already been sold")
    if any(i["product"]["id"] == product["id"] for i in items):
        return items
    return items + [{"product": dict(product), "quantity": 1}]


def remove_from_cart(items: List[Dict[str, Any]], product_id: str) -> List[Dict[str, Any]]:
    return [i for i in items if i["product"]["id"] != product_id]


def cart_total(items: Iterable[Mapping[str, Any]]) -> float:
    return round(sum(float(i["product"]["price"]) * int(i["quantity"]) for i in items), 2)


def item_count(items: List[Mapping[str, Any]]) -> int:
    return len(items)


def revalidate_cart(
    items: Iterable[Mapping[str, Any]],
    live: Mapping[str, Mapping[str, Any]],
) -> Tuple[List[Dict[str, Any]], List[str], List[str]]:
    """Drop items that are gone or sold and reprice the rest from ``live``.

    ``live`` maps product id to ``{"price": ..., "status": ...}``. Returns the kept
    items plus the ids that were removed and the ids whose price changed.
    """

    kept: List[Dict[str, Any]] = []
    removed: List[str] = []
    repriced: List[str] = []
    seen: set = set()

    for item in items:
        pid = item["product"]["id"]
        row = live.get(pid)
        if row is None or row.get("status") != "available" or pid in seen:
            removed.append(pid)
            continue
        seen.add(pid)

        product = dict(item["product"])
        live_price = float(row["price"])
        if float(product["price"]) != live_price:
            product["price"] = live_price
            repriced.append(pid)
        # One-off stock: quantity is always 1.
        kept.append({"product": product, "quantity": 1})

    return kept, removed, repriced


def shipping_for(subtotal: float, shipping_charge: float, free_shipping_threshold: float) -> float:
    if subtotal <= 0:
        return 0.0
    if free_shipping_threshold > 0 and subtotal >= free_shipping_threshold:
        return 0.0
    return round(float(shipping_charge), 2)
