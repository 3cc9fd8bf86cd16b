#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import random
import sys
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable

from channelops.db import ATTRIBUTION_TABLES, init_schema, insert_rows
from channelops.tools.attribution import credit_events


UTC = timezone.utc

SHOP = "demo-store.myshopify.com"
ACCOUNT_ID = "acct_demo_001"

WINDOW_DAYS = {"1_day": 1, "7_day": 7, "14_day": 14, "28_day": 28, "90_day": 90, "lifetime": None}

# Credit rule per pre-aggregated table; all_clicks credits every click in full.
TABLE_RULES = {
    "int_order_attribution_first_click": "first",
    "int_order_attribution_last_click": "last",
    "int_order_attribution_last_paid_click": "last_paid",
    "int_order_attribution_linear_all": "linear",
    "int_order_attribution_linear_paid": "linear_paid",
    "int_order_attribution_all_clicks": "all",
}

PAID_CHANNELS = ("meta-ads", "google-ads", "taboola")
ORGANIC_CHANNELS = ("organic-search", "email", "direct")
ORGANIC_CAMPAIGNS = {"organic-search": ["brand", "nonbrand"], "email": ["newsletter", "winback"], "direct": [""]}
PAGES = ["/", "/products/widget", "/products/gizmo", "/cart", "/checkout"]

PRODUCTS = [
    {"id": 101, "shopify_shop": SHOP, "name": "Widget", "product_type": "hardware"},
    {"id": 102, "shopify_shop": SHOP, "name": "Gizmo", "product_type": "hardware"},
]
PRODUCT_VARIANTS = [
    {"id": 1, "shopify_product": 101, "title": "Small", "price": 19.0, "cost": 7.5},
    {"id": 2, "shopify_product": 101, "title": "Large", "price": 29.0, "cost": 11.0},
    {"id": 3, "shopify_product": 102, "title": "Default", "price": 49.0, "cost": 20.0},
    {"id": 4, "shopify_product": 102, "title": "Pro", "price": 79.0, "cost": None},
]
VARIANTS = {p["id"]: [v["id"] for v in PRODUCT_VARIANTS if v["shopify_product"] == p["id"]] for p in PRODUCTS}


def _ts(dt: datetime) -> str:
    return dt.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S")


def _daterange(start: date, end: date) -> Iterable[date]:
    if end < start:
        raise ValueError("end_date must be >= start_date")
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def _rand_time(rng: random.Random) -> time:
    return time(hour=rng.randint(0, 23), minute=rng.randint(0, 59), second=rng.randint(0, 59))


def _build_structure() -> dict[str, list[dict[str, Any]]]:
    campaigns, ad_sets, ads = [], [], []
    pk = 0
    for channel in PAID_CHANNELS:
        prefix = channel.split("-")[0]
        for c in range(1, 3):
            pk += 1
            campaign_pk = pk
            campaigns.append(
                {
                    "pk": campaign_pk,
                    "ad_campaign_id": f"{prefix}_camp_{c:02d}",
                    "name": f"{prefix.title()} Campaign {c}",
                    "active": 1,
                    "budget": 100.0 * c,
                    "ad_account_id": f"act_{prefix}_001",
                    "channel": channel,
                }
            )
            for s in range(1, 3):
                ad_set_pk = campaign_pk * 10 + s
                ad_sets.append(
                    {
                        "pk": ad_set_pk,
                        "ad_set_id": f"{prefix}_camp_{c:02d}_as_{s:02d}",
                        "campaign_pk": campaign_pk,
                        "name": f"{prefix.title()} Ad Set {c}.{s}",
                        "active": 1,
                        "budget": 50.0,
                    }
                )
                for a in range(1, 3):
                    ads.append(
                        {
                            "pk": ad_set_pk * 10 + a,
                            "ad_id": f"{prefix}_camp_{c:02d}_as_{s:02d}_ad_{a:02d}",
                            "ad_set_pk": ad_set_pk,
                            "name": f"{prefix.title()} Ad {c}.{s}.{a}",
                            "active": 1,
                            "image_url": None,
                            "channel": channel,
                            "campaign_pk": campaign_pk,
                            "campaign_id": f"{prefix}_camp_{c:02d}",
                            "ad_set_id": f"{prefix}_camp_{c:02d}_as_{s:02d}",
                        }
                    )
    return {"campaigns": campaigns, "ad_sets": ad_sets, "ads": ads}


def _flag(events: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Copies of ``events`` (oldest first) with first/last/last-paid flags set."""
    out = [dict(e) for e in events]
    paid = [i for i, e in enumerate(out) if e["is_paid_channel"]]
    for i, e in enumerate(out):
        e["is_first_event_overall"] = int(i == 0)
        e["is_last_event_overall"] = int(i == len(out) - 1)
        e["is_last_paid_event_overall"] = int(bool(paid) and i == paid[-1])
        e["has_any_paid_events"] = int(bool(paid))
    return out


def _credit(rule: str, events: list[dict[str, Any]]) -> list[tuple[dict[str, Any], float]]:
    if rule == "all":
        return [(e, 1.0) for e in events]
    return credit_events(rule, events)


def generate_dummy_data(*, start_date: date, end_date: date, seed: int, sqlite_path: Path) -> dict[str, Any]:
    rng = random.Random(seed)
    structure = _build_structure()
    ads = structure["ads"]

    if sqlite_path.exists():
        sqlite_path.unlink()
    init_schema(str(sqlite_path))

    spend_rows = []
    for day in _daterange(start_date, end_date):
        for ad in ads:
            clicks = rng.randint(4, 28)
            spend_rows.append(
                {
                    "shop_name": SHOP,
                    "date_time": day.isoformat(),
                    "channel": ad["channel"],
                    "platform_ad_campaign_id": ad["campaign_id"],
                    "platform_ad_set_id": ad["ad_set_id"],
                    "platform_ad_id": ad["ad_id"],
                    "ad_campaign_pk": ad["campaign_pk"],
                    "ad_set_pk": ad["ad_set_pk"],
                    "ad_pk": ad["pk"],
                    "spend": round(clicks * max(0.2, rng.gauss(1.4, 0.3)), 2),
                    "impressions": clicks * rng.randint(60, 240),
                    "clicks": clicks,
                    "conversions": 0,
                }
            )

    customers = [f"cust_{i:04d}" for i in range(1, 301)]
    seen_customers: set[str] = set()
    orders, line_items, raw_events, event_links, event_meta = [], [], [], [], []
    attribution: dict[str, list[dict[str, Any]]] = {t: [] for t in ATTRIBUTION_TABLES}
    event_id = 0
    order_no = 1000

    for day in _daterange(start_date, end_date):
        for _ in range(rng.randint(3, 9)):
            order_no += 1
            order_id = f"ord_{order_no}"
            customer = rng.choice(customers)
            first_order = customer not in seen_customers
            seen_customers.add(customer)
            order_ts = datetime.combine(day, _rand_time(rng), tzinfo=UTC)
            price = round(rng.uniform(25, 180), 2)
            tax = round(price * 0.08, 2)
            cogs = round(price * rng.uniform(0.25, 0.4), 2)
            fees = round(price * 0.029 + 0.3, 2)
            refund = price if rng.random() < 0.04 else 0.0
            orders.append(
                {
                    "order_id": order_id,
                    "shopify_shop": SHOP,
                    "customer_id": customer,
                    "order_timestamp": _ts(order_ts),
                    "total_price": price,
                    "total_tax": tax,
                    "total_refund_amount": refund,
                    "net_revenue": round(price - tax - refund, 2),
                    "total_cogs": cogs,
                    "payment_fees": fees,
                }
            )
            product_id = rng.choice(list(VARIANTS))
            line_items.append({"order_id": order_id, "product_id": product_id, "variant_id": rng.choice(VARIANTS[product_id])})

            touches = []
            for k in range(rng.randint(1, 4)):
                ev_ts = order_ts - timedelta(days=rng.choice([0, 0, 1, 3, 10, 40]), minutes=5 * (k + 1))
                if rng.random() < 0.6:
                    ad = rng.choice(ads)
                    channel, campaign = ad["channel"], None
                else:
                    ad = None
                    channel = rng.choice(ORGANIC_CHANNELS)
                    campaign = rng.choice(ORGANIC_CAMPAIGNS[channel]) or None
                event_id += 1
                raw_events.append(
                    {
                        "id": event_id,
                        "type": "page_view",
                        "ad_id": ad["ad_id"] if ad else None,
                        "page_url": rng.choice(PAGES),
                        "domain": "https://demo-store.example",
                        "timestamp": _ts(ev_ts),
                        "page_title": None,
                        "referrer": None,
                        "source": channel,
                    }
                )
                event_links.append({"event_id": event_id, "order_id": order_id})
                touches.append(
                    {
                        "shopify_shop": SHOP,
                        "order_id": order_id,
                        "order_number": str(order_no),
                        "order_timestamp": _ts(order_ts),
                        "event_id": str(event_id),
                        "event_timestamp": _ts(ev_ts),
                        "event_dt": ev_ts,
                        "channel": channel,
                        "campaign": campaign,
                        "platform_ad_campaign_id": ad["campaign_id"] if ad else None,
                        "platform_ad_set_id": ad["ad_set_id"] if ad else None,
                        "platform_ad_id": ad["ad_id"] if ad else None,
                        "ad_campaign_pk": ad["campaign_pk"] if ad else None,
                        "ad_set_pk": ad["ad_set_pk"] if ad else None,
                        "ad_pk": ad["pk"] if ad else None,
                        "total_price": price,
                        "total_cogs": cogs,
                        "payment_fees": fees,
                        "total_tax": tax,
                        "is_first_customer_order": int(first_order),
                        "is_paid_channel": int(ad is not None),
                    }
                )
            touches.sort(key=lambda t: t["event_dt"])

            for e in _flag(touches):
                event_meta.append({k: v for k, v in e.items() if k != "event_dt"})

            for window, days in WINDOW_DAYS.items():
                in_window = [t for t in touches if days is None or order_ts - t["event_dt"] <= timedelta(days=days)]
                if not in_window:
                    continue
                flagged = _flag(in_window)
                for table, rule in TABLE_RULES.items():
                    for e, w in _credit(rule, flagged):
                        attribution[table].append(
                            {
                                "shopify_shop": SHOP,
                                "order_id": order_id,
                                "order_number": str(order_no),
                                "order_timestamp": _ts(order_ts),
                                "attribution_window": window,
                                "channel": e["channel"],
                                "campaign": e["campaign"],
                                "platform_ad_campaign_id": e["platform_ad_campaign_id"],
                                "platform_ad_set_id": e["platform_ad_set_id"],
                                "platform_ad_id": e["platform_ad_id"],
                                "ad_campaign_pk": e["ad_campaign_pk"],
                                "ad_set_pk": e["ad_set_pk"],
                                "ad_pk": e["ad_pk"],
                                "attribution_weight": w,
                                "attributed_revenue": round(price * w, 4),
                                "attributed_cogs": round(cogs * w, 4),
                                "attributed_payment_fees": round(fees * w, 4),
                                "attributed_tax": round(tax * w, 4),
                                "is_first_customer_order": int(first_order),
                            }
                        )

    db = str(sqlite_path)
    counts = {
        "shopify_shops": insert_rows(
            db,
            "shopify_shops",
            [{"account_id": ACCOUNT_ID, "shop_name": SHOP, "timezone": "America/New_York", "currency": "USD", "ignore_vat": 0}],
        ),
        "ad_campaigns": insert_rows(db, "ad_campaigns", [{k: v for k, v in c.items() if k != "channel"} for c in structure["campaigns"]]),
        "ad_sets": insert_rows(db, "ad_sets", structure["ad_sets"]),
        "ads": insert_rows(
            db,
            "ads",
            [{k: a[k] for k in ("pk", "ad_id", "ad_set_pk", "name", "active", "image_url")} for a in ads],
        ),
        "int_ad_spend": insert_rows(db, "int_ad_spend", spend_rows),
        "int_order_enriched": insert_rows(db, "int_order_enriched", orders),
        "int_order_line_items": insert_rows(db, "int_order_line_items", line_items),
        "shopify_products": insert_rows(db, "shopify_products", PRODUCTS),
        "shopify_product_variants": insert_rows(db, "shopify_product_variants", PRODUCT_VARIANTS),
        "events": insert_rows(db, "events", raw_events),
        "events_orders": insert_rows(db, "events_orders", event_links),
        "int_event_metadata": insert_rows(db, "int_event_metadata", event_meta),
    }
    for table, rows in attribution.items():
        counts[table] = insert_rows(db, table, rows)

    return {
        "seed": seed,
        "date_range": {"start": start_date.isoformat(), "end": end_date.isoformat()},
        "account_id": ACCOUNT_ID,
        "shop_name": SHOP,
        "sqlite": db,
        "row_counts": counts,
        "notes": ["All data is synthetic (dummy) and not business truth."],
    }


def main(argv: list[str]) -> int:
    parser = argparse.ArgumentParser(description="Generate a synthetic channelops warehouse (SQLite).")
    parser.add_argument("--start-date", type=str, default="", help="YYYY-MM-DD (default: 30 days ago)")
    parser.add_argument("--end-date", type=str, default="", help="YYYY-MM-DD (default: today)")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--sqlite-path", type=str, default="data/dummy/channelops_demo.sqlite")
    args = parser.parse_args(argv)

    today = date.today()
    start = today - timedelta(days=30) if not args.start_date else date.fromisoformat(args.start_date)
    end = today if not args.end_date else date.fromisoformat(args.end_date)

    result = generate_dummy_data(start_date=start, end_date=end, seed=args.seed, sqlite_path=Path(args.sqlite_path))
    print(json.dumps(result, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
