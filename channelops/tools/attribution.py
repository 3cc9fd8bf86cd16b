from __future__ import annotations

import logging
import time
from collections import defaultdict
from typing import Any

from channelops.config import ChannelConfig
from channelops.db import query
from channelops.models import (
    AdHierarchyResult,
    AdNode,
    AdSetNode,
    AttributedOrder,
    BreakdownResult,
    CampaignListResult,
    CampaignNode,
    PerformanceRow,
)
from channelops.tools.ads import EntityMeta, ad_manager_url, fetch_entity_metadata, fetch_spend
from channelops.tools.channels import ChannelClass, is_ad_spend_channel, normalize_channel
from channelops.tools.filters import FilterSet, time_column
from channelops.tools.routing import EVENT_SOURCE, resolve_event_rule, resolve_source
from channelops.util import parse_iso_ts, ratio, round_money, to_bool, to_float, to_int


logger = logging.getLogger(__name__)

GROUPINGS = ("channel", "campaign", "ad_set", "ad")
BUCKETS = (None, "hour", "day")

_CREDITED_COLUMNS = """
    row_id, shopify_shop, order_id, order_number, order_timestamp, channel, campaign,
    platform_ad_campaign_id, platform_ad_set_id, platform_ad_id,
    ad_campaign_pk, ad_set_pk, ad_pk, is_first_customer_order,
    attribution_weight AS weight, attributed_revenue AS revenue, attributed_cogs AS cogs,
    attributed_payment_fees AS fees, attributed_tax AS tax
"""


def _ratio4(n: float, d: float) -> float:
    return float(f"{ratio(n, d):.4f}")


# --- credit assignment -------------------------------------------------------


def _linear_credit(events: list[dict[str, Any]]) -> list[tuple[dict[str, Any], float]]:
    # 1/channels, then 1/ads within the channel, then 1/events on the ad.
    tree: dict[str, dict[str, list[dict[str, Any]]]] = defaultdict(lambda: defaultdict(list))
    for e in events:
        tree[normalize_channel(str(e.get("channel") or ""))][str(e.get("platform_ad_id") or "")].append(e)
    out = []
    for ads in tree.values():
        for evs in ads.values():
            w = 1.0 / len(tree) / len(ads) / len(evs)
            out.extend((e, w) for e in evs)
    return out


def credit_events(rule: str, events: list[dict[str, Any]]) -> list[tuple[dict[str, Any], float]]:
    if rule == "first":
        return [(e, 1.0) for e in events if to_bool(e.get("is_first_event_overall"))]
    if rule == "last":
        return [(e, 1.0) for e in events if to_bool(e.get("is_last_event_overall"))]
    if rule == "last_paid":
        # Orders without any paid touchpoint fall back to their last event.
        return [
            (e, 1.0)
            for e in events
            if (to_bool(e.get("is_last_paid_event_overall")) and to_bool(e.get("has_any_paid_events")))
            or (to_bool(e.get("is_last_event_overall")) and not to_bool(e.get("has_any_paid_events")))
        ]
    if rule == "linear":
        return _linear_credit(events)
    if rule == "linear_paid":
        paid = [e for e in events if to_bool(e.get("is_paid_channel"))]
        return _linear_credit(paid or events)
    raise ValueError(f"unhandled credit rule: {rule}")


def _event_credited_rows(db_path: str, filters: FilterSet, model: str) -> list[dict[str, Any]]:
    rule = resolve_event_rule(model)
    # Linear weights span every in-range event of an order, so only the scope goes to SQL.
    where, params = filters.only("shop", "date_from", "date_to").to_sql()
    events = query(
        db_path,
        f"""
        SELECT *
        FROM {EVENT_SOURCE}
        WHERE {where}
        ORDER BY event_timestamp DESC, order_id, row_id
        """,
        params,
    ).rows

    by_order: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for e in events:
        by_order[str(e["order_id"])].append(e)

    out = []
    for order_events in by_order.values():
        for e, w in credit_events(rule, order_events):
            row = dict(e)
            row["weight"] = w
            row["revenue"] = to_float(e.get("total_price")) * w
            row["cogs"] = to_float(e.get("total_cogs")) * w
            row["fees"] = to_float(e.get("payment_fees")) * w
            row["tax"] = to_float(e.get("total_tax")) * w
            if filters.matches(row):
                out.append(row)
    return out


def fetch_credited_rows(db_path: str, filters: FilterSet, model: str, basis: str = "order") -> list[dict[str, Any]]:
    """Credited touchpoint rows for a request.

    Each row carries ``weight`` and the weighted ``revenue``, ``cogs``, ``fees``
    and ``tax`` alongside its order, channel and ad hierarchy keys.
    """
    started = time.monotonic()
    if basis == "event":
        rows = _event_credited_rows(db_path, filters, model)
        source = EVENT_SOURCE
    else:
        source = resolve_source(model)
        where, params = filters.to_sql()
        rows = query(
            db_path,
            f"""
            SELECT {_CREDITED_COLUMNS}
            FROM {source}
            WHERE {where}
            ORDER BY order_timestamp DESC, row_id
            """,
            params,
        ).rows
    logger.info(
        "Fetched %d credited rows source=%s shop=%s channel=%s in %.1fms",
        len(rows),
        source,
        filters.get("shop"),
        filters.get("channel") or "all",
        (time.monotonic() - started) * 1000,
    )
    return rows


# --- summarisation -----------------------------------------------------------


def _group_key(row: dict[str, Any], grouping: str, config: ChannelConfig | None) -> str | int:
    channel = normalize_channel(str(row.get("channel") or ""))
    if grouping == "channel":
        return channel
    if grouping == "campaign":
        if is_ad_spend_channel(channel, config):
            return to_int(row.get("ad_campaign_pk"))
        return str(row.get("campaign") or "")
    if grouping == "ad_set":
        return to_int(row.get("ad_set_pk"))
    return to_int(row.get("ad_pk"))


def _period(ts: Any, bucket: str | None) -> str | None:
    if bucket is None:
        return None
    dt = parse_iso_ts(str(ts))
    if bucket == "hour":
        return dt.strftime("%Y-%m-%d %H:00:00")
    return dt.date().isoformat()


def _empty_acc() -> dict[str, Any]:
    return {
        "orders": 0.0,
        "revenue": 0.0,
        "cogs": 0.0,
        "fees": 0.0,
        "tax": 0.0,
        "order_ids": set(),
        "spend": 0.0,
        "impressions": 0,
        "clicks": 0,
        "ftc_orders": 0.0,
        "ftc_revenue": 0.0,
    }


def _sort_rows(rows: list[PerformanceRow]) -> list[PerformanceRow]:
    rows = sorted(rows, key=lambda r: (r.channel, str(r.key)))
    rows.sort(key=lambda r: r.attributed_revenue, reverse=True)
    rows.sort(key=lambda r: r.period or "", reverse=True)
    return rows


def summarize(
    rows: list[dict[str, Any]],
    spend_rows: list[dict[str, Any]],
    *,
    grouping: str = "channel",
    bucket: str | None = None,
    ignore_vat: bool = False,
    config: ChannelConfig | None = None,
    ts_column: str = "order_timestamp",
) -> list[PerformanceRow]:
    if grouping not in GROUPINGS:
        raise ValueError(f"grouping must be one of: {', '.join(GROUPINGS)}")
    if bucket not in BUCKETS:
        raise ValueError("bucket must be one of: hour, day")

    agg: dict[tuple[str, str | int, str | None], dict[str, Any]] = defaultdict(_empty_acc)

    for r in rows:
        channel = normalize_channel(str(r.get("channel") or ""))
        a = agg[(channel, _group_key(r, grouping, config), _period(r[ts_column], bucket))]
        w = to_float(r.get("weight"))
        revenue = to_float(r.get("revenue"))
        a["orders"] += w
        a["revenue"] += revenue
        a["cogs"] += to_float(r.get("cogs"))
        a["fees"] += to_float(r.get("fees"))
        a["tax"] += to_float(r.get("tax"))
        a["order_ids"].add(str(r.get("order_id")))
        if to_bool(r.get("is_first_customer_order")):
            a["ftc_orders"] += w
            a["ftc_revenue"] += revenue

    for s in spend_rows:
        channel = normalize_channel(str(s.get("channel") or ""))
        a = agg[(channel, _group_key(s, grouping, config), _period(s["date_time"], bucket))]
        a["spend"] += to_float(s.get("spend"))
        a["impressions"] += to_int(s.get("impressions"))
        a["clicks"] += to_int(s.get("clicks"))

    out = []
    for (channel, key, period), a in agg.items():
        # Ratios come from the sums, never from per-row values.
        net_profit = a["revenue"] - (0.0 if ignore_vat else a["tax"]) - a["cogs"] - a["fees"] - a["spend"]
        out.append(
            PerformanceRow(
                dimension=grouping,
                key=key,
                channel=channel,
                period=period,
                attributed_orders=float(f"{a['orders']:.4f}"),
                attributed_revenue=round_money(a["revenue"]),
                distinct_orders_touched=len(a["order_ids"]),
                attributed_cogs=round_money(a["cogs"]),
                attributed_payment_fees=round_money(a["fees"]),
                attributed_tax=round_money(a["tax"]),
                ad_spend=round_money(a["spend"]),
                impressions=a["impressions"],
                clicks=a["clicks"],
                roas=_ratio4(a["revenue"], a["spend"]),
                net_profit=round_money(net_profit),
                profit_margin=_ratio4(net_profit, a["revenue"]),
                first_time_customer_orders=float(f"{a['ftc_orders']:.4f}"),
                first_time_customer_revenue=round_money(a["ftc_revenue"]),
                first_time_customer_roas=_ratio4(a["ftc_revenue"], a["spend"]),
                cpc=_ratio4(a["spend"], a["clicks"]),
                ctr=_ratio4(a["clicks"], a["impressions"]),
            )
        )
    return _sort_rows(out)


def aggregate(
    db_path: str,
    filters: FilterSet,
    *,
    model: str,
    basis: str = "order",
    grouping: str = "channel",
    bucket: str | None = None,
    ignore_vat: bool = False,
    config: ChannelConfig | None = None,
) -> list[PerformanceRow]:
    rows = fetch_credited_rows(db_path, filters, model, basis)
    spend_rows = fetch_spend(db_path, filters)
    return summarize(
        rows,
        spend_rows,
        grouping=grouping,
        bucket=bucket,
        ignore_vat=ignore_vat,
        config=config,
        ts_column=time_column(basis),
    )


def list_attributed_orders(db_path: str, filters: FilterSet, *, model: str, basis: str = "order") -> list[AttributedOrder]:
    by_order: dict[str, dict[str, Any]] = {}
    for r in fetch_credited_rows(db_path, filters, model, basis):
        oid = str(r["order_id"])
        if oid not in by_order:
            by_order[oid] = {
                "order_number": str(r.get("order_number") or ""),
                "order_timestamp": str(r.get("order_timestamp") or ""),
                "first": to_bool(r.get("is_first_customer_order")),
                "revenue": 0.0,
                "weight": 0.0,
            }
        by_order[oid]["revenue"] += to_float(r.get("revenue"))
        by_order[oid]["weight"] += to_float(r.get("weight"))

    orders = [
        AttributedOrder(
            order_id=oid,
            order_number=o["order_number"],
            order_timestamp=o["order_timestamp"],
            is_first_customer_order=o["first"],
            attributed_revenue=round_money(o["revenue"]),
            attribution_weight=float(f"{o['weight']:.4f}"),
        )
        for oid, o in by_order.items()
    ]
    orders.sort(key=lambda o: o.order_id)
    orders.sort(key=lambda o: o.order_timestamp, reverse=True)
    return orders


# --- breakdowns --------------------------------------------------------------


def _parent_links(rows: list[dict[str, Any]]) -> tuple[dict[int, int], dict[int, int]]:
    ad_parent: dict[int, int] = {}
    ad_set_parent: dict[int, int] = {}
    for r in rows:
        ad_parent.setdefault(to_int(r.get("ad_pk")), to_int(r.get("ad_set_pk")))
        ad_set_parent.setdefault(to_int(r.get("ad_set_pk")), to_int(r.get("ad_campaign_pk")))
    return ad_parent, ad_set_parent


def _hierarchy(
    db_path: str,
    cls: ChannelClass,
    rows: list[dict[str, Any]],
    spend_rows: list[dict[str, Any]],
    ignore_vat: bool,
    config: ChannelConfig | None,
) -> AdHierarchyResult:
    channel = cls.channel
    kw = {"ignore_vat": ignore_vat, "config": config}
    campaigns = summarize(rows, spend_rows, grouping="campaign", **kw)
    ad_sets = summarize(rows, spend_rows, grouping="ad_set", **kw)
    ads = summarize(rows, spend_rows, grouping="ad", **kw)

    meta = fetch_entity_metadata(
        db_path,
        campaign_pks=[r.key for r in campaigns],
        ad_set_pks=[r.key for r in ad_sets],
        ad_pks=[r.key for r in ads],
    )
    ad_parent, ad_set_parent = _parent_links(rows + spend_rows)
    for pk, m in meta["ads"].items():
        if m.parent_pk is not None:
            ad_parent.setdefault(pk, m.parent_pk)
    for pk, m in meta["ad_sets"].items():
        if m.parent_pk is not None:
            ad_set_parent.setdefault(pk, m.parent_pk)

    account_by_campaign = {pk: m.ad_account_id for pk, m in meta["campaigns"].items()}

    def status(m: EntityMeta | None) -> tuple[bool | None, float | None]:
        # Status and budget are only meaningful where the platform is managed.
        if m is None or not cls.is_managed:
            return None, None
        return m.active, m.budget

    ads_by_set: dict[int, list[AdNode]] = defaultdict(list)
    for r in ads:
        m = meta["ads"].get(r.key)
        set_pk = ad_parent.get(r.key, 0)
        account = account_by_campaign.get(ad_set_parent.get(set_pk, 0))
        ads_by_set[set_pk].append(
            AdNode(
                pk=r.key,
                name=m.name if m else str(r.key),
                active=status(m)[0],
                url=ad_manager_url(channel, "ad", m.platform_id if m else None, account),
                image_url=m.image_url if m else None,
                metrics=r,
            )
        )

    sets_by_campaign: dict[int, list[AdSetNode]] = defaultdict(list)
    for r in ad_sets:
        m = meta["ad_sets"].get(r.key)
        campaign_pk = ad_set_parent.get(r.key, 0)
        active, budget = status(m)
        sets_by_campaign[campaign_pk].append(
            AdSetNode(
                pk=r.key,
                name=m.name if m else str(r.key),
                active=active,
                budget=budget,
                url=ad_manager_url(channel, "ad_set", m.platform_id if m else None, account_by_campaign.get(campaign_pk)),
                metrics=r,
                ads=tuple(ads_by_set.get(r.key, ())),
            )
        )

    nodes = []
    for r in campaigns:
        m = meta["campaigns"].get(r.key)
        active, budget = status(m)
        nodes.append(
            CampaignNode(
                pk=r.key,
                name=m.name if m else str(r.key),
                active=active,
                budget=budget,
                url=ad_manager_url(channel, "campaign", m.platform_id if m else None, m.ad_account_id if m else None),
                metrics=r,
                ad_sets=tuple(sets_by_campaign.get(r.key, ())),
            )
        )
    return AdHierarchyResult(channel=channel, campaigns=tuple(nodes), managed=cls.is_managed)


def breakdown(
    db_path: str,
    filters: FilterSet,
    *,
    model: str,
    basis: str = "order",
    ignore_vat: bool = False,
    config: ChannelConfig | None = None,
) -> BreakdownResult:
    """Campaign-level breakdown of one channel.

    Ad-spend channels get the campaign / ad set / ad tree with spend; every
    other channel gets a flat list keyed by the free-text campaign.
    """
    if filters.channel is None:
        raise ValueError("breakdown requires a channel-scoped filter set")
    rows = fetch_credited_rows(db_path, filters, model, basis)
    channel = filters.channel.channel
    if filters.channel.is_ad_spend:
        spend_rows = fetch_spend(db_path, filters)
        return _hierarchy(db_path, filters.channel, rows, spend_rows, ignore_vat, config)
    campaigns = summarize(rows, [], grouping="campaign", ignore_vat=ignore_vat, config=config)
    return CampaignListResult(channel=channel, campaigns=tuple(campaigns))
