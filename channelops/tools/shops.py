from __future__ import annotations

from dataclasses import dataclass

from channelops.db import sql_rows
from channelops.errors import ShopNotFound
from channelops.util import to_bool


@dataclass(frozen=True)
class Shop:
    account_id: str
    shop_name: str
    timezone: str
    currency: str
    ignore_vat: bool


def _shop_from_row(r: dict) -> Shop:
    return Shop(
        account_id=str(r.get("account_id") or ""),
        shop_name=str(r["shop_name"]),
        timezone=str(r.get("timezone") or "UTC"),
        currency=str(r.get("currency") or "USD"),
        ignore_vat=to_bool(r.get("ignore_vat")),
    )


def resolve_shop(db_path: str, account_id: str) -> Shop:
    rows = sql_rows(
        db_path,
        "SELECT account_id, shop_name, timezone, currency, ignore_vat FROM shopify_shops WHERE account_id = ? LIMIT 1",
        [account_id],
    )
    if not rows:
        raise ShopNotFound(f"No shop for account {account_id!r}", {"account_id": account_id})
    return _shop_from_row(rows[0])


def get_shop(db_path: str, shop_name: str) -> Shop:
    rows = sql_rows(
        db_path,
        "SELECT account_id, shop_name, timezone, currency, ignore_vat FROM shopify_shops WHERE shop_name = ? LIMIT 1",
        [shop_name],
    )
    if not rows:
        raise ShopNotFound(f"Unknown shop {shop_name!r}", {"shop_name": shop_name})
    return _shop_from_row(rows[0])
