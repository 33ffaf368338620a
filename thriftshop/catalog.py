"""Catalog constants and the client-side style filtering over a full product fetch."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

from .db import ts
from .models import ProductOut


CATEGORIES = (
    # Winter wear
    "Hoodies", "Sweatshirts", "Sweaters", "Cardigans", "Winter Jackets", "Coats", "Thermals", "Scarves", "Beanies",
    # Summer wear
    "T-Shirts", "Tank Tops", "Polo Shirts", "Shorts", "Summer Dresses", "Sleeveless Shirts",
    # All season
    "Jeans", "Trousers", "Chinos", "Casual Pants", "Joggers", "Track Pants", "Shirts", "Casual Shirts",
    "Formal Shirts", "Denim Jackets", "Blazers", "Suits", "Kurtas", "Ethnic Wear",
    # Footwear
    "Sneakers", "Formal Shoes", "Boots", "Sandals", "Slippers", "Sports Shoes",
    # Accessories
    "Belts", "Watches", "Bags", "Wallets", "Sunglasses", "Caps", "Socks", "Ties", "Bow Ties",
)

SIZES = (
    "XS", "S", "M", "L", "XL", "XXL", "2XL", "3XL", "4XL",
    "6", "7", "8", "9", "10", "11", "12", "One Size",
)

CONDITIONS = ("new", "like-new", "good", "fair")
PRODUCT_STATUSES = ("available", "sold")

DEFAULT_MIN_PRICE = 0.0
DEFAULT_MAX_PRICE = 10000.0

PRODUCT_COLUMNS = (
    "id, name, description, category, size, condition, price, original_price, "
    "images, measurements, status, created_at, updated_at"
)


def product_from_row(r: Sequence) -> ProductOut:
    """Build a ProductOut from a row selected with PRODUCT_COLUMNS."""

    return ProductOut(
        id=str(r[0]),
        name=str(r[1]),
        description=r[2],
        category=str(r[3]),
        size=str(r[4]),
        condition=str(r[5]),
        price=float(r[6]),
        original_price=float(r[7]) if r[7] is not None else None,
        images=list(r[8] or []),
        measurements=r[9],
        status=str(r[10]),
        created_at=ts(r[11]),
        updated_at=ts(r[12]),
    )


def filter_products(
    products: Iterable[ProductOut],
    category: Optional[str] = None,
    size: Optional[str] = None,
    condition: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
) -> List[ProductOut]:
    lo = DEFAULT_MIN_PRICE if not min_price else float(min_price)
    hi = DEFAULT_MAX_PRICE if not max_price else float(max_price)

    out: List[ProductOut] = []
    for p in products:
        if category and p.category != category:
            continue
        if size and p.size != size:
            continue
        if condition and p.condition != condition:
            continue
        if p.price < lo or p.price > hi:
            continue
        out.append(p)
    return out


def split_by_status(products: Iterable[ProductOut]) -> Tuple[List[ProductOut], List[ProductOut]]:
    available: List[ProductOut] = []
    sold: List[ProductOut] = []
    for p in products:
        (sold if p.status == "sold" else available).append(p)
    return available, sold


def search_products(products: Iterable[ProductOut], query: Optional[str]) -> List[ProductOut]:
    q = (query or "").strip().lower()
    if not q:
        return list(products)
    return [p for p in products if q in p.name.lower() or q in p.category.lower()]


def product_field_errors(
    category: Optional[str] = None,
    size: Optional[str] = None,
    condition: Optional[str] = None,
    status: Optional[str] = None,
) -> List[str]:
    errors: List[str] = []
    if category is not None and category not in CATEGORIES:
        errors.append(f"Unknown category: {category}")
    if size is not None and size not in SIZES:
        errors.append(f"Unknown size: {size}")
    if condition is not None and condition not in CONDITIONS:
        errors.append(f"Condition must be one of: {', '.join(CONDITIONS)}")
    if status is not None and status not in PRODUCT_STATUSES:
        errors.append(f"Status must be one of: {', '.join(PRODUCT_STATUSES)}")
    return errors
