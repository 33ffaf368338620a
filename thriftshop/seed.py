from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, List

from psycopg.types.json import Jsonb

from .config import PostgresConfig
from .db import get_conn


_log = logging.getLogger("thriftshop.seed")

_IMG = "https://images.unsplash.com/photo-{}?w=800&auto=format&fit=crop&q=80"

DEMO_PRODUCTS: List[Dict[str, Any]] = [
    {
        "name": "Wool Blend Overcoat",
        "description": "Classic camel wool blend overcoat. Minimal wear, professionally dry cleaned. Perfect for layering.",
        "category": "Coats",
        "size": "M",
        "condition": "like-new",
        "price": 2400,
        "original_price": 8500,
        "measurements": {"chest": '42"', "length": '38"', "shoulders": '18"'},
        "images": [_IMG.format("1544022613-e87ca75a784a"), _IMG.format("1539533018447-63fcce2678e3")],
    },
    {
        "name": "Linen Button-Down Shirt",
        "description": "Relaxed fit white linen shirt. Some minor fading, adds to the character.",
        "category": "Casual Shirts",
        "size": "L",
        "condition": "good",
        "price": 650,
        "original_price": 2200,
        "measurements": {"chest": '44"', "length": '30"', "shoulders": '19"'},
        "images": [_IMG.format("1596755094514-f87e34085b2c")],
    },
    {
        "name": "Slim Fit Chinos",
        "description": "Navy blue chinos in excellent condition. Tailored fit with slight stretch.",
        "category": "Chinos",
        "size": "S",
        "condition": "like-new",
        "price": 800,
        "original_price": 2800,
        "measurements": {"waist": '32"', "length": '32"'},
        "images": [_IMG.format("1473966968600-fa801b869a1a")],
    },
    {
        "name": "Leather Chelsea Boots",
        "description": "Premium brown leather Chelsea boots. Well-maintained with natural patina.",
        "category": "Boots",
        "size": "10",
        "condition": "good",
        "price": 2800,
        "original_price": 9500,
        "images": [_IMG.format("1542840410-3092f99611a3")],
    },
    {
        "name": "Cashmere V-Neck Sweater",
        "description": "Soft grey cashmere sweater. Minimal pilling, excellent warmth.",
        "category": "Sweaters",
        "size": "M",
        "condition": "like-new",
        "price": 1500,
        "original_price": 5200,
        "images": [_IMG.format("1576566588028-4147f3842f27")],
    },
    {
        "name": "Denim Jacket",
        "description": "Classic blue denim jacket with vintage fade. Authentic lived-in look.",
        "category": "Denim Jackets",
        "size": "L",
        "condition": "good",
        "price": 1200,
        "original_price": 4200,
        "images": [_IMG.format("1551028719-00167b16eac5")],
    },
    {
        "name": "Oxford Dress Shoes",
        "description": "Black cap-toe oxfords. Minimal creasing, excellent for formal occasions.",
        "category": "Formal Shoes",
        "size": "9",
        "condition": "like-new",
        "price": 3200,
        "original_price": 12000,
        "images": [_IMG.format("1614252369475-531eba835eb1")],
    },
    {
        "name": "Wool Scarf",
        "description": "Charcoal grey merino wool scarf. Soft texture, versatile styling.",
        "category": "Scarves",
        "size": "One Size",
        "condition": "like-new",
        "price": 450,
        "original_price": 1500,
        "images": [_IMG.format("1520903920243-00d872a2d1c9")],
    },
    {
        "name": "Tailored Blazer",
        "description": "Navy wool blazer with subtle texture. Single-breasted, two-button.",
        "category": "Blazers",
        "size": "M",
        "condition": "like-new",
        "price": 2200,
        "original_price": 7800,
        "images": [_IMG.format("1507679799987-c73779587ccf")],
    },
    {
        "name": "Canvas Sneakers",
        "description": "White canvas low-tops. Clean and minimal design.",
        "category": "Sneakers",
        "size": "10",
        "condition": "good",
        "price": 900,
        "original_price": 2800,
        "images": [_IMG.format("1525966222134-fcfa99b8ae77")],
    },
]


def seed(force: bool = False) -> int:
    cfg = PostgresConfig()
    with get_conn(cfg) as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM thriftshop.products;")
            existing = int(cur.fetchone()[0])
            if existing and not force:
                _log.info("products table already has %s rows; use --force to add demo products anyway", existing)
                return 0

            cur.executemany(
                """
                INSERT INTO thriftshop.products (
                    name, description, category, size, condition, price, original_price, images, measurements
                )
                VALUES (%s,%s,%s,%s,%s,%s,%s,%s,%s);
                """,
                [
                    (
                        p["name"],
                        p["description"],
                        p["category"],
                        p["size"],
                        p["condition"],
                        p["price"],
                        p["original_price"],
                        p["images"],
                        Jsonb(p["measurements"]) if p.get("measurements") else None,
                    )
                    for p in DEMO_PRODUCTS
                ],
            )
            cur.execute(
                """
                UPDATE thriftshop.store_settings
                SET contact_email = 'contact@wizthrift.com', contact_phone = '+1-555-0123'
                WHERE contact_email = '';
                """
            )
        conn.commit()

    _log.info("Inserted %s demo products into %s/%s", len(DEMO_PRODUCTS), cfg.host, cfg.database)
    return len(DEMO_PRODUCTS)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Insert demo products")
    parser.add_argument("--force", action="store_true", help="Insert even when products already exist")
    args = parser.parse_args()

    seed(force=args.force)


if __name__ == "__main__":
    main()
