"""Shop-level dashboard totals.

Orders are bucketed by the shop's local hour (single-day ranges) or local day.
A customer counts as new in a bucket when their first order overall falls in
that same bucket.
"""
from __future__ import annotations

import logging
import time
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any

from channelops.db import sql_rows
from channelops.models import DashboardPoint
from channelops.tools.shops import Shop
from channelops.util import local_datetime, ratio, round_money, shop_zone, to_float


logger = logging.getLogger(__name__)


def _bucket(dt: datetime, hourly: bool) -> str:
    if hourly:
        return dt.strftime("%Y-%m-%d %H:00:00")
    return dt.date().isoformat()


def _empty() -> dict[str, Any]:
    return {
        "orders": 0,
        "revenue": 0.0,
        "refunds": 0.0,
        "cogs": 0.0,
        "vat": 0.0,
        "fees": 0.0,
        "spend": 0.0,
        "new_customers": set(),
        "new_revenue": 0.0,
    }


def _point(key: str, a: dict[str, Any], ignore_vat: bool) -> DashboardPoint:
    vat = 0.0 if ignore_vat else a["vat"]
    profit = a["revenue"] - vat - a["spend"] - a["cogs"] - a["fees"] - a["refunds"]
    new_count = len(a["new_customers"])
    return DashboardPoint(
        timestamp=key,
        total_orders=a["orders"],
        total_revenue=round_money(a["revenue"]),
        total_refunds=round_money(a["refunds"]),
        total_cogs=round_money(a["cogs"]),
        total_vat=round_money(a["vat"]),
        total_payment_fees=round_money(a["fees"]),
        total_ad_spend=round_money(a["spend"]),
        profit=round_money(profit),
        roas=float(f"{ratio(a['revenue'], a['spend']):.4f}"),
        new_customer_count=new_count,
        new_customer_revenue=round_money(a["new_revenue"]),
        new_customer_roas=float(f"{ratio(a['new_revenue'], a['spend']):.4f}"),
        cac=round_money(ratio(a["spend"], new_count)),
    )


def compute_dashboard(db_path: str, shop: Shop, start_date: date, end_date: date) -> tuple[str, list[DashboardPoint]]:
    """Return ``(aggregation_level, points)`` with points in ascending time order."""
    started = time.monotonic()
    zone = shop_zone(shop.timezone)
    hourly = start_date == end_date
    # Widen the UTC window by a day each side; local dates are checked below.
    lo = (start_date - timedelta(days=1)).isoformat()
    hi = (end_date + timedelta(days=2)).isoformat()

    orders = sql_rows(
        db_path,
        """
        SELECT order_id, customer_id, order_timestamp, total_price, total_tax,
               total_refund_amount, total_cogs, payment_fees
        FROM int_order_enriched
        WHERE shopify_shop = ? AND order_timestamp >= ? AND order_timestamp < ?
        """,
        [shop.shop_name, lo, hi],
    )
    first_bucket = {
        str(r["customer_id"]): _bucket(local_datetime(r["first_ts"], zone), hourly)
        for r in sql_rows(
            db_path,
            """
            SELECT customer_id, MIN(order_timestamp) AS first_ts
            FROM int_order_enriched
            WHERE shopify_shop = ? AND COALESCE(customer_id, '') <> ''
            GROUP BY customer_id
            """,
            [shop.shop_name],
        )
    }
    spend_rows = sql_rows(
        db_path,
        "SELECT date_time, spend FROM int_ad_spend WHERE shop_name = ? AND date_time >= ? AND date_time < ?",
        [shop.shop_name, lo, hi],
    )

    agg: dict[str, dict[str, Any]] = defaultdict(_empty)
    for o in orders:
        dt = local_datetime(o["order_timestamp"], zone)
        if not start_date <= dt.date() <= end_date:
            continue
        key = _bucket(dt, hourly)
        a = agg[key]
        price = to_float(o.get("total_price"))
        a["orders"] += 1
        a["revenue"] += price
        a["refunds"] += to_float(o.get("total_refund_amount"))
        a["cogs"] += to_float(o.get("total_cogs"))
        a["vat"] += to_float(o.get("total_tax"))
        a["fees"] += to_float(o.get("payment_fees"))
        ck = str(o.get("customer_id") or "")
        if ck and first_bucket.get(ck) == key:
            a["new_customers"].add(ck)
            a["new_revenue"] += price

    for s in spend_rows:
        dt = local_datetime(s["date_time"], zone)
        if start_date <= dt.date() <= end_date:
            agg[_bucket(dt, hourly)]["spend"] += to_float(s.get("spend"))

    points = [_point(key, agg[key], shop.ignore_vat) for key in sorted(agg)]
    level = "hourly" if hourly else "daily"
    logger.info(
        "Computed %d %s dashboard points shop=%s in %.1fms",
        len(points),
        level,
        shop.shop_name,
        (time.monotonic() - started) * 1000,
    )
    return level, points
