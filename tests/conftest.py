"""Shared fixtures: a small seeded SQLite warehouse."""
from __future__ import annotations

import pytest

from channelops.config import ChannelConfig
from channelops.db import init_schema, insert_rows


SHOP = "test-shop"
ACCOUNT = "acct_1"


def _attr(order_id, ts, channel, *, window="28_day", campaign=None, pks=(None, None, None),
          weight=1.0, revenue=0.0, cogs=0.0, fees=0.0, tax=0.0, first=0, shop=SHOP):
    return {
        "shopify_shop": shop,
        "order_id": order_id,
        "order_number": order_id.upper(),
        "order_timestamp": ts,
        "attribution_window": window,
        "channel": channel,
        "campaign": campaign,
        "ad_campaign_pk": pks[0],
        "ad_set_pk": pks[1],
        "ad_pk": pks[2],
        "attribution_weight": weight,
        "attributed_revenue": revenue,
        "attributed_cogs": cogs,
        "attributed_payment_fees": fees,
        "attributed_tax": tax,
        "is_first_customer_order": first,
    }


def _event(order_id, order_ts, event_id, ts, channel, *, ad=None, campaign=None, paid=0,
           first=0, last=0, last_paid=0, has_paid=0, price=0.0, cogs=0.0, fees=0.0, tax=0.0, first_order=0):
    pks = ad or (None, None, None, None)
    return {
        "shopify_shop": SHOP,
        "order_id": order_id,
        "order_number": order_id.upper(),
        "order_timestamp": order_ts,
        "event_id": str(event_id),
        "event_timestamp": ts,
        "channel": channel,
        "campaign": campaign,
        "platform_ad_id": pks[3],
        "ad_campaign_pk": pks[0],
        "ad_set_pk": pks[1],
        "ad_pk": pks[2],
        "total_price": price,
        "total_cogs": cogs,
        "payment_fees": fees,
        "total_tax": tax,
        "is_first_customer_order": first_order,
        "is_paid_channel": paid,
        "is_first_event_overall": first,
        "is_last_event_overall": last,
        "is_last_paid_event_overall": last_paid,
        "has_any_paid_events": has_paid,
    }


def _spend(date_time, channel, pks, spend, impressions, clicks, shop=SHOP):
    return {
        "shop_name": shop,
        "date_time": date_time,
        "channel": channel,
        "ad_campaign_pk": pks[0],
        "ad_set_pk": pks[1],
        "ad_pk": pks[2],
        "spend": spend,
        "impressions": impressions,
        "clicks": clicks,
        "conversions": 0,
    }


def _order(order_id, customer, ts, price, net, cogs, shop, tax=0.0, refund=0.0, fees=0.0):
    return {
        "order_id": order_id,
        "shopify_shop": shop,
        "customer_id": customer,
        "order_timestamp": ts,
        "total_price": price,
        "total_tax": tax,
        "total_refund_amount": refund,
        "net_revenue": net,
        "total_cogs": cogs,
        "payment_fees": fees,
    }


META_AD = (1, 11, 111, "m_ad_111")


def _seed(db: str) -> None:
    insert_rows(db, "shopify_shops", [
        {"account_id": ACCOUNT, "shop_name": SHOP, "timezone": "UTC", "currency": "USD", "ignore_vat": 0},
        {"account_id": "acct_vat", "shop_name": "vat-shop", "timezone": "UTC", "currency": "EUR", "ignore_vat": 1},
        {"account_id": "acct_2", "shop_name": "cohort-shop", "timezone": "UTC", "currency": "USD", "ignore_vat": 0},
        {"account_id": "acct_dash", "shop_name": "dash-shop", "timezone": "America/New_York", "currency": "USD", "ignore_vat": 0},
    ])

    insert_rows(db, "int_order_attribution_first_click", [
        _attr("o1", "2024-01-10 12:00:00", "meta-ads", pks=(1, 11, 111), revenue=100, cogs=30, fees=3, tax=8, first=1),
        _attr("o2", "2024-01-15 09:00:00", "meta-ads", pks=(1, 12, 121), revenue=50, cogs=15, fees=2, tax=4),
        _attr("o3", "2024-01-20 18:00:00", "google-ads", pks=(2, 21, 211), revenue=80, cogs=20, fees=2, tax=6, first=1),
        _attr("o4", "2024-01-12 08:00:00", "organic-search", campaign="brand", revenue=40, cogs=10, fees=1, tax=3, first=1),
        _attr("o5", "2024-01-31 23:30:00", "meta-ads", pks=(1, 11, 111), revenue=20, cogs=5, fees=1, tax=2),
        _attr("o6", "2024-02-01 00:00:00", "meta-ads", pks=(1, 11, 111), revenue=999),
        _attr("o1", "2024-01-10 12:00:00", "meta-ads", window="7_day", pks=(1, 11, 111), revenue=555),
        _attr("o8", "2024-01-11 10:00:00", "email", campaign="newsletter", revenue=30, cogs=5, fees=1, tax=2),
        _attr("v1", "2024-01-10 10:00:00", "meta-ads", pks=(1, 11, 111), revenue=100, cogs=30, fees=3, tax=8, shop="vat-shop"),
    ])
    insert_rows(db, "int_order_attribution_linear_all", [
        _attr("o7", "2024-01-05 10:00:00", "meta-ads", pks=(1, 11, 111), weight=0.5, revenue=60, cogs=10, fees=1, tax=4),
        _attr("o7", "2024-01-05 10:00:00", "email", campaign="newsletter", weight=0.5, revenue=60, cogs=10, fees=1, tax=4),
    ])

    insert_rows(db, "int_event_metadata", [
        _event("e1", "2024-01-10 12:00:00", 1, "2024-01-08 09:00:00", "meta-ads", ad=META_AD, paid=1, first=1,
               has_paid=1, price=100, cogs=30, fees=3, tax=8, first_order=1),
        _event("e1", "2024-01-10 12:00:00", 2, "2024-01-09 09:00:00", "email", campaign="newsletter",
               has_paid=1, price=100, cogs=30, fees=3, tax=8, first_order=1),
        _event("e1", "2024-01-10 12:00:00", 3, "2024-01-10 10:00:00", "meta-ads", ad=META_AD, paid=1, last=1,
               last_paid=1, has_paid=1, price=100, cogs=30, fees=3, tax=8, first_order=1),
        _event("e2", "2024-01-11 15:00:00", 4, "2024-01-11 14:00:00", "organic-search", campaign="brand",
               first=1, last=1, price=40, cogs=10, fees=1, tax=3),
    ])

    insert_rows(db, "int_ad_spend", [
        _spend("2024-01-10", "meta-ads", (1, 11, 111), 40, 1000, 50),
        _spend("2024-01-15", "meta-ads", (1, 12, 121), 10, 500, 10),
        _spend("2024-01-20", "google-ads", (2, 21, 211), 20, 400, 20),
        _spend("2024-01-05", "taboola", (3, 31, 311), 5, 100, 5),
        _spend("2024-02-01", "meta-ads", (1, 11, 111), 70, 700, 7),
        _spend("2024-01-10", "meta-ads", (1, 11, 111), 50, 100, 10, shop="vat-shop"),
    ])

    insert_rows(db, "ad_campaigns", [
        {"pk": 1, "ad_campaign_id": "m_c1", "name": "Meta Prospecting", "active": 1, "budget": 200.0, "ad_account_id": "act_123"},
        {"pk": 2, "ad_campaign_id": "g_c2", "name": "Google Brand", "active": 0, "budget": 50.0, "ad_account_id": "456"},
        {"pk": 3, "ad_campaign_id": "t_c3", "name": "Taboola Native", "active": 1, "budget": 30.0, "ad_account_id": None},
    ])
    insert_rows(db, "ad_sets", [
        {"pk": 11, "ad_set_id": "m_s11", "campaign_pk": 1, "name": "Lookalike", "active": 1, "budget": 100.0},
        {"pk": 12, "ad_set_id": "m_s12", "campaign_pk": 1, "name": "Retargeting", "active": 1, "budget": 100.0},
        {"pk": 21, "ad_set_id": "g_s21", "campaign_pk": 2, "name": "Exact Match", "active": 1, "budget": None},
    ])
    insert_rows(db, "ads", [
        {"pk": 111, "ad_id": "m_ad_111", "ad_set_pk": 11, "name": "Video A", "active": 1, "image_url": "https://img/a.png"},
        {"pk": 121, "ad_id": "m_ad_121", "ad_set_pk": 12, "name": "Carousel B", "active": 1, "image_url": None},
        {"pk": 211, "ad_id": "g_ad_211", "ad_set_pk": 21, "name": "Text C", "active": 1, "image_url": None},
    ])

    insert_rows(db, "int_order_enriched", [
        _order("o1", "c1", "2024-01-10 12:00:00", 100, 92, 30, SHOP),
        _order("o2", "c2", "2024-01-11 12:00:00", 50, 46, 15, SHOP),
        # cohort-shop customers
        _order("k1", "c1", "2024-01-05 10:00:00", 100, 90, 30, "cohort-shop"),
        _order("k2", "c1", "2024-02-10 10:00:00", 50, 45, 15, "cohort-shop"),
        _order("k3", "c1", "2024-03-03 10:00:00", 60, 54, 20, "cohort-shop"),
        _order("k4", "c2", "2024-01-20 10:00:00", 80, 72, 20, "cohort-shop"),
        _order("k5", "c3", "2024-02-02 10:00:00", 40, 36, 10, "cohort-shop"),
        _order("k6", "c3", "2024-02-25 10:00:00", 40, 36, 10, "cohort-shop"),
        _order("k7", "c4", "2023-12-20 10:00:00", 70, 63, 20, "cohort-shop"),
        _order("k8", "c4", "2024-01-15 10:00:00", 70, 63, 20, "cohort-shop"),
        # dash-shop (America/New_York, UTC-5 in early March)
        _order("d0", "r1", "2024-02-20 12:00:00", 40, 36, 10, "dash-shop", tax=4),
        _order("d1", "n1", "2024-03-01 15:00:00", 100, 85, 30, "dash-shop", tax=10, refund=5, fees=3),
        _order("d2", "n1", "2024-03-02 03:30:00", 50, 45, 10, "dash-shop", tax=5, fees=2),
        _order("d3", "r1", "2024-03-02 14:00:00", 80, 72, 20, "dash-shop", tax=8, fees=2),
    ])
    insert_rows(db, "int_order_line_items", [
        {"order_id": oid, "product_id": 101 if oid == "k2" else 102, "variant_id": 1}
        for oid in ("k1", "k2", "k3", "k4", "k5", "k6", "k7", "k8")
    ])
    insert_rows(db, "int_ad_spend", [
        _spend("2024-01-03", "meta-ads", (1, 11, 111), 130, 0, 0, shop="cohort-shop"),
        _spend("2024-02-05", "meta-ads", (1, 11, 111), 30, 0, 0, shop="cohort-shop"),
        _spend("2024-03-10", "meta-ads", (1, 11, 111), 50, 0, 0, shop="cohort-shop"),
        _spend("2024-03-01", "meta-ads", (1, 11, 111), 40, 0, 0, shop="dash-shop"),
        _spend("2024-03-02", "meta-ads", (1, 11, 111), 20, 0, 0, shop="dash-shop"),
        _spend("2024-03-03", "meta-ads", (1, 11, 111), 99, 0, 0, shop="dash-shop"),
    ])

    insert_rows(db, "shopify_products", [
        {"id": 101, "shopify_shop": "cohort-shop", "name": "Blue Mug", "product_type": "mug"},
        {"id": 102, "shopify_shop": "cohort-shop", "name": "Arc Lamp", "product_type": "lamp"},
        {"id": 201, "shopify_shop": SHOP, "name": "Other Shop Item", "product_type": None},
    ])
    insert_rows(db, "shopify_product_variants", [
        {"id": 1, "shopify_product": 101, "title": "Large", "price": 20.0, "cost": 8.0},
        {"id": 2, "shopify_product": 101, "title": "Default", "price": 15.0, "cost": 6.0},
        {"id": 3, "shopify_product": 102, "title": "Default", "price": 90.0, "cost": None},
        {"id": 4, "shopify_product": 201, "title": "Default", "price": 5.0, "cost": 1.0},
    ])

    insert_rows(db, "events", [
        {"id": 1, "type": "page_view", "ad_id": None, "page_url": "/cart", "domain": "https://shop.example",
         "timestamp": "2024-01-10 10:00:00", "page_title": "Cart", "referrer": None, "source": "direct"},
        {"id": 2, "type": "page_view", "ad_id": None, "page_url": "/cart", "domain": "https://shop.example",
         "timestamp": "2024-01-10 10:05:00", "page_title": "Cart", "referrer": None, "source": "direct"},
        {"id": 3, "type": "page_view", "ad_id": "m_ad_111", "page_url": "/checkout", "domain": "https://shop.example",
         "timestamp": "2024-01-10 10:10:00", "page_title": "Checkout", "referrer": None, "source": "meta-ads"},
        {"id": 4, "type": "page_view", "ad_id": None, "page_url": "/a", "domain": "https://shop.example",
         "timestamp": "2024-01-08 09:00:00", "page_title": None, "referrer": None, "source": None},
        {"id": 5, "type": "page_view", "ad_id": "missing_ad", "page_url": "/b", "domain": "https://shop.example",
         "timestamp": "2024-01-11 12:00:00", "page_title": None, "referrer": None, "source": None},
        {"id": 6, "type": "page_view", "ad_id": None, "page_url": "/a", "domain": "https://shop.example",
         "timestamp": "2024-01-09 09:00:00", "page_title": None, "referrer": None, "source": None},
    ])
    insert_rows(db, "events_orders", [
        {"event_id": 1, "order_id": "o1"},
        {"event_id": 2, "order_id": "o1"},
        {"event_id": 3, "order_id": "o1"},
        {"event_id": 4, "order_id": "o2"},
        {"event_id": 5, "order_id": "o2"},
        {"event_id": 6, "order_id": "o2"},
    ])


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("CHANNELOPS_AD_SPEND_CHANNELS", "CHANNELOPS_MANAGED_CHANNELS", "CHANNELOPS_DB_PATH"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def empty_db(tmp_path) -> str:
    path = str(tmp_path / "warehouse.sqlite")
    init_schema(path)
    return path


@pytest.fixture
def db(empty_db) -> str:
    _seed(empty_db)
    return empty_db


@pytest.fixture
def channel_config() -> ChannelConfig:
    return ChannelConfig(
        ad_spend=frozenset({"meta-ads", "google-ads", "taboola", "tiktok-ads"}),
        managed=frozenset({"meta-ads", "google-ads"}),
    )
