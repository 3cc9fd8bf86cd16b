from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from channelops.errors import StorageError


logger = logging.getLogger(__name__)

ATTRIBUTION_COLUMNS = """
    row_id INTEGER PRIMARY KEY,
    shopify_shop TEXT, order_id TEXT, order_number TEXT, order_timestamp TEXT,
    attribution_window TEXT, channel TEXT, campaign TEXT,
    platform_ad_campaign_id TEXT, platform_ad_set_id TEXT, platform_ad_id TEXT,
    ad_campaign_pk INTEGER, ad_set_pk INTEGER, ad_pk INTEGER,
    attribution_weight REAL, attributed_revenue REAL, attributed_cogs REAL,
    attributed_payment_fees REAL, attributed_tax REAL,
    is_first_customer_order INTEGER
"""

ATTRIBUTION_TABLES = (
    "int_order_attribution_first_click",
    "int_order_attribution_last_click",
    "int_order_attribution_last_paid_click",
    "int_order_attribution_linear_all",
    "int_order_attribution_linear_paid",
    "int_order_attribution_all_clicks",
)

SCHEMA = (
    """CREATE TABLE IF NOT EXISTS shopify_shops (
        account_id TEXT, shop_name TEXT, timezone TEXT, currency TEXT,
        ignore_vat INTEGER DEFAULT 0
    );""",
    *(f"CREATE TABLE IF NOT EXISTS {t} ({ATTRIBUTION_COLUMNS});" for t in ATTRIBUTION_TABLES),
    """CREATE TABLE IF NOT EXISTS int_event_metadata (
        row_id INTEGER PRIMARY KEY,
        shopify_shop TEXT, order_id TEXT, order_number TEXT, order_timestamp TEXT, event_id TEXT,
        event_timestamp TEXT, channel TEXT, campaign TEXT,
        platform_ad_campaign_id TEXT, platform_ad_set_id TEXT, platform_ad_id TEXT,
        ad_campaign_pk INTEGER, ad_set_pk INTEGER, ad_pk INTEGER,
        total_price REAL, total_cogs REAL, payment_fees REAL, total_tax REAL,
        is_first_customer_order INTEGER, is_paid_channel INTEGER,
        is_first_event_overall INTEGER, is_last_event_overall INTEGER,
        is_last_paid_event_overall INTEGER, has_any_paid_events INTEGER
    );""",
    """CREATE TABLE IF NOT EXISTS int_ad_spend (
        shop_name TEXT, date_time TEXT, channel TEXT,
        platform_ad_campaign_id TEXT, platform_ad_set_id TEXT, platform_ad_id TEXT,
        ad_campaign_pk INTEGER, ad_set_pk INTEGER, ad_pk INTEGER,
        spend REAL, impressions INTEGER, clicks INTEGER, conversions INTEGER
    );""",
    """CREATE TABLE IF NOT EXISTS int_order_enriched (
        order_id TEXT, shopify_shop TEXT, customer_id TEXT, order_timestamp TEXT,
        total_price REAL, total_tax REAL, total_refund_amount REAL,
        net_revenue REAL, total_cogs REAL, payment_fees REAL
    );""",
    """CREATE TABLE IF NOT EXISTS int_order_line_items (
        order_id TEXT, product_id INTEGER, variant_id INTEGER
    );""",
    """CREATE TABLE IF NOT EXISTS shopify_products (
        id INTEGER, shopify_shop TEXT, name TEXT, product_type TEXT
    );""",
    """CREATE TABLE IF NOT EXISTS shopify_product_variants (
        id INTEGER, shopify_product INTEGER, title TEXT, price REAL, cost REAL
    );""",
    """CREATE TABLE IF NOT EXISTS events (
        id INTEGER, type TEXT, ad_id TEXT, page_url TEXT, domain TEXT,
        timestamp TEXT, page_title TEXT, referrer TEXT, source TEXT
    );""",
    """CREATE TABLE IF NOT EXISTS events_orders (
        event_id INTEGER, order_id TEXT
    );""",
    """CREATE TABLE IF NOT EXISTS ad_campaigns (
        pk INTEGER, ad_campaign_id TEXT, name TEXT, active INTEGER,
        budget REAL, ad_account_id TEXT
    );""",
    """CREATE TABLE IF NOT EXISTS ad_sets (
        pk INTEGER, ad_set_id TEXT, campaign_pk INTEGER, name TEXT,
        active INTEGER, budget REAL
    );""",
    """CREATE TABLE IF NOT EXISTS ads (
        pk INTEGER, ad_id TEXT, ad_set_pk INTEGER, name TEXT,
        active INTEGER, image_url TEXT
    );""",
)


@dataclass(frozen=True)
class QueryResult:
    rows: list[dict[str, Any]]
    columns: list[str]
    row_count: int
    sql: str
    params: Mapping[str, Any] | None
    db_path: str


def connect(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def _require_db(db_path: str) -> None:
    if not Path(db_path).exists():
        raise StorageError(f"SQLite db not found: {db_path}", {"db_path": db_path})


def query(db_path: str, sql: str, params: Mapping[str, Any] | None = None) -> QueryResult:
    _require_db(db_path)
    started = time.monotonic()
    try:
        with connect(db_path) as conn:
            cur = conn.execute(sql, dict(params or {}))
            rows = [dict(r) for r in cur.fetchall()]
            columns = [d[0] for d in (cur.description or [])]
    except sqlite3.Error as exc:
        logger.error("Warehouse query failed db=%s error=%s", db_path, exc)
        raise StorageError(str(exc), {"db_path": db_path, "sql": sql, "params": dict(params or {})}) from exc
    logger.debug("Warehouse query returned %d rows in %.1fms", len(rows), (time.monotonic() - started) * 1000)
    return QueryResult(
        rows=rows,
        columns=columns,
        row_count=len(rows),
        sql=sql,
        params=params,
        db_path=db_path,
    )


def sql_rows(db_path: str, sql: str, params: Any = None) -> list[dict[str, Any]]:
    """Simple query returning just a list of row dicts. Accepts list or dict params."""
    _require_db(db_path)
    try:
        with connect(db_path) as conn:
            cur = conn.execute(sql, params or [])
            return [dict(r) for r in cur.fetchall()]
    except sqlite3.Error as exc:
        logger.error("Warehouse query failed db=%s error=%s", db_path, exc)
        raise StorageError(str(exc), {"db_path": db_path, "sql": sql}) from exc


def init_schema(db_path: str) -> None:
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with connect(db_path) as conn:
        conn.execute("PRAGMA journal_mode=WAL;")
        for ddl in SCHEMA:
            conn.execute(ddl)
        conn.commit()


def insert_rows(db_path: str, table: str, rows: Iterable[Mapping[str, Any]]) -> int:
    rows = list(rows)
    if not rows:
        return 0
    columns = list(rows[0].keys())
    placeholders = ", ".join(f":{c}" for c in columns)
    sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
    try:
        with connect(db_path) as conn:
            conn.executemany(sql, [{c: r.get(c) for c in columns} for r in rows])
            conn.commit()
    except sqlite3.Error as exc:
        raise StorageError(str(exc), {"db_path": db_path, "table": table}) from exc
    return len(rows)
