"""Per-order touchpoint timeline.

Events are newest first. Consecutive events on the same resolved page collapse
into the most recent one, so rapid repeat pageviews show once.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any

from channelops.db import sql_rows
from channelops.errors import OrderNotFound
from channelops.models import EventsByDay, TimelineEvent
from channelops.tools.ads import lookup_ad_names
from channelops.util import iso_ts, parse_iso_ts, shop_zone, to_int


logger = logging.getLogger(__name__)


def _resolved_url(e: dict[str, Any]) -> str:
    return f"{e.get('domain') or ''}{e.get('page_url') or ''}"


def collapse_repeats(events: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop events whose resolved URL equals the previous kept event's. Input must be newest first."""
    out: list[dict[str, Any]] = []
    for e in events:
        if out and _resolved_url(out[-1]) == _resolved_url(e):
            continue
        out.append(e)
    return out


def group_by_day(events: list[TimelineEvent]) -> list[EventsByDay]:
    days: dict[str, list[TimelineEvent]] = defaultdict(list)
    for e in events:
        days[e.timestamp[:10]].append(e)
    return [EventsByDay(day=d, events=tuple(days[d])) for d in sorted(days, reverse=True)]


def merge_timeline(db_path: str, order_id: str, shop_name: str, timezone: str = "UTC") -> list[EventsByDay]:
    owned = sql_rows(
        db_path,
        "SELECT order_id FROM int_order_enriched WHERE order_id = ? AND shopify_shop = ? LIMIT 1",
        [str(order_id), shop_name],
    )
    if not owned:
        logger.warning("Timeline requested for unknown order=%s shop=%s", order_id, shop_name)
        raise OrderNotFound(order_id, shop_name)

    rows = sql_rows(
        db_path,
        """
        SELECT e.id, e.type, e.ad_id, e.page_url, e.domain, e.timestamp,
               e.page_title, e.referrer, e.source
        FROM events e
        JOIN events_orders eo ON eo.event_id = e.id
        WHERE eo.order_id = ?
        """,
        [str(order_id)],
    )
    for r in rows:
        r["_ts"] = parse_iso_ts(str(r["timestamp"]))
    fetched = len(rows)
    rows.sort(key=lambda r: (r["_ts"], to_int(r.get("id"))), reverse=True)
    rows = collapse_repeats(rows)

    names = lookup_ad_names(db_path, (r.get("ad_id") for r in rows))
    zone = shop_zone(timezone)

    events = []
    for r in rows:
        ad = names.get(str(r.get("ad_id") or ""))
        events.append(
            TimelineEvent(
                id=to_int(r.get("id")),
                type=str(r.get("type") or ""),
                page_url=_resolved_url(r),
                timestamp=iso_ts(r["_ts"]),
                time=r["_ts"].astimezone(zone).strftime("%H:%M"),
                page_title=r.get("page_title"),
                referrer=r.get("referrer"),
                source=r.get("source"),
                ad_id=r.get("ad_id"),
                ad_name=ad.ad_name if ad else None,
                ad_set_name=ad.ad_set_name if ad else None,
                campaign_name=ad.campaign_name if ad else None,
            )
        )
    logger.info("Merged %d of %d events for order=%s shop=%s", len(events), fetched, order_id, shop_name)
    return group_by_day(events)
