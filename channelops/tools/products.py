from __future__ import annotations

import logging
from collections import defaultdict

from channelops.db import sql_rows
from channelops.models import Product, ProductVariant
from channelops.util import to_float, to_int


logger = logging.getLogger(__name__)


def _optional_float(value) -> float | None:
    return None if value is None else to_float(value)


def list_products(db_path: str, shop_name: str) -> list[Product]:
    """Products of a shop ordered by name, each with its variants ordered by title."""
    products = sql_rows(
        db_path,
        "SELECT id, shopify_shop, name, product_type FROM shopify_products WHERE shopify_shop = ? ORDER BY name, id",
        [shop_name],
    )
    if not products:
        logger.info("No products for shop=%s", shop_name)
        return []

    ids = [to_int(p["id"]) for p in products]
    variants = sql_rows(
        db_path,
        f"""
        SELECT id, shopify_product, title, price, cost
        FROM shopify_product_variants
        WHERE shopify_product IN ({', '.join('?' for _ in ids)})
        ORDER BY title, id
        """,
        ids,
    )
    by_product: dict[int, list[ProductVariant]] = defaultdict(list)
    for v in variants:
        by_product[to_int(v["shopify_product"])].append(
            ProductVariant(
                id=str(v["id"]),
                title=v.get("title"),
                price=_optional_float(v.get("price")),
                cost=_optional_float(v.get("cost")),
                shopify_product=str(v["shopify_product"]),
            )
        )

    logger.info("Fetched %d products with %d variants shop=%s", len(products), len(variants), shop_name)
    return [
        Product(
            id=str(p["id"]),
            name=p.get("name"),
            product_type=p.get("product_type"),
            shopify_shop=str(p["shopify_shop"]),
            variants=tuple(by_product.get(to_int(p["id"]), ())),
        )
        for p in products
    ]
