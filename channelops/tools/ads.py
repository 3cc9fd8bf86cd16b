from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from channelops.db import query, sql_rows
from channelops.tools.filters import FilterSet
from channelops.util import to_bool, to_float, to_int


logger = logging.getLogger(__name__)

NOT_SET = "Not Set"


@dataclass(frozen=True)
class AdNames:
    ad_id: str
    ad_name: str | None
    ad_set_name: str | None
    campaign_name: str | None


@dataclass(frozen=True)
class EntityMeta:
    pk: int
    platform_id: str
    name: str
    active: bool | None = None
    budget: float | None = None
    ad_account_id: str | None = None
    parent_pk: int | None = None
    image_url: str | None = None


def ad_manager_url(channel: str, entity_type: str, platform_id: str | None, ad_account_id: str | None = None) -> str | None:
    if not platform_id:
        return None
    if channel == "meta-ads":
        act = (ad_account_id or "").replace("act_", "")
        if not act:
            return None
        if entity_type == "campaign":
            return (
                f"https://www.facebook.com/adsmanager/manage/campaigns?act={act}"
                f"&filter_set=SEARCH_BY_CAMPAIGN_GROUP_ID-STRING%1EEQUAL%1E%22{platform_id}%22"
                f"&selected_campaign_ids={platform_id}"
            )
        if entity_type == "ad_set":
            return (
                f"https://www.facebook.com/adsmanager/manage/adsets?act={act}"
                f"&filter_set=SEARCH_BY_CAMPAIGN_ID-STRING%1EEQUAL%1E%22{platform_id}%22"
                f"&selected_adset_ids={platform_id}"
            )
        if entity_type == "ad":
            return (
                f"https://www.facebook.com/adsmanager/manage/ads?act={act}"
                f"&filter_set=SEARCH_BY_ADGROUP_IDS-STRING_SET%1EANY%1E%5B%22{platform_id}%22%5D"
                f"&selected_ad_ids={platform_id}"
            )
        return None
    # Google Ads and Taboola only link at campaign level.
    if channel == "google-ads" and entity_type == "campaign":
        return f"https://ads.google.com/aw/campaigns?campaignId={platform_id}"
    if channel == "taboola" and entity_type == "campaign":
        return f"https://ads.taboola.com/campaigns?campaignId={platform_id}"
    return None


def fetch_spend(db_path: str, filters: FilterSet) -> list[dict[str, Any]]:
    """Ad spend rows matching the request scope.

    Non-ad-spend channels have no spend by definition, so no query is issued.
    """
    if filters.channel is not None and not filters.channel.is_ad_spend:
        return []
    spend_filters = filters.for_spend()
    where, params = spend_filters.to_sql()
    started = time.monotonic()
    rows = query(
        db_path,
        f"""
        SELECT shop_name, date_time, channel,
               platform_ad_campaign_id, platform_ad_set_id, platform_ad_id,
               ad_campaign_pk, ad_set_pk, ad_pk,
               spend, impressions, clicks, conversions
        FROM {spend_filters.source}
        WHERE {where}
        """,
        params,
    ).rows
    logger.info(
        "Fetched %d spend rows shop=%s channel=%s in %.1fms",
        len(rows),
        filters.get("shop"),
        filters.get("channel") or "all",
        (time.monotonic() - started) * 1000,
    )
    return rows


def _in_clause(values: list[Any]) -> str:
    return ", ".join("?" for _ in values)


def lookup_ad_names(db_path: str, ad_ids: Iterable[str]) -> dict[str, AdNames]:
    """Names for the given platform ad ids. Ids with no ad row are omitted."""
    ids = sorted({str(a) for a in ad_ids if a})
    if not ids:
        return {}
    rows = sql_rows(
        db_path,
        f"""
        SELECT a.ad_id AS ad_id, a.name AS ad_name, s.name AS ad_set_name, c.name AS campaign_name
        FROM ads a
        LEFT JOIN ad_sets s ON s.pk = a.ad_set_pk
        LEFT JOIN ad_campaigns c ON c.pk = s.campaign_pk
        WHERE a.ad_id IN ({_in_clause(ids)})
        """,
        ids,
    )
    out: dict[str, AdNames] = {}
    for r in rows:
        ad_id = str(r["ad_id"])
        if ad_id not in out:
            out[ad_id] = AdNames(
                ad_id=ad_id,
                ad_name=r.get("ad_name"),
                ad_set_name=r.get("ad_set_name"),
                campaign_name=r.get("campaign_name"),
            )
    return out


def _meta_rows(db_path: str, sql: str, pks: set[int]) -> list[dict[str, Any]]:
    wanted = sorted(pk for pk in pks if pk)
    if not wanted:
        return []
    return sql_rows(db_path, sql.format(placeholders=_in_clause(wanted)), wanted)


def fetch_entity_metadata(
    db_path: str,
    *,
    campaign_pks: Iterable[int] = (),
    ad_set_pks: Iterable[int] = (),
    ad_pks: Iterable[int] = (),
) -> dict[str, dict[int, EntityMeta]]:
    campaign_pks = {to_int(p) for p in campaign_pks}
    ad_set_pks = {to_int(p) for p in ad_set_pks}
    ad_pks = {to_int(p) for p in ad_pks}

    campaigns = {
        to_int(r["pk"]): EntityMeta(
            pk=to_int(r["pk"]),
            platform_id=str(r.get("ad_campaign_id") or ""),
            name=str(r.get("name") or NOT_SET),
            active=to_bool(r.get("active")) if r.get("active") is not None else None,
            budget=to_float(r.get("budget")) if r.get("budget") is not None else None,
            ad_account_id=r.get("ad_account_id"),
        )
        for r in _meta_rows(
            db_path,
            "SELECT pk, ad_campaign_id, name, active, budget, ad_account_id FROM ad_campaigns WHERE pk IN ({placeholders})",
            campaign_pks,
        )
    }
    ad_sets = {
        to_int(r["pk"]): EntityMeta(
            pk=to_int(r["pk"]),
            platform_id=str(r.get("ad_set_id") or ""),
            name=str(r.get("name") or NOT_SET),
            active=to_bool(r.get("active")) if r.get("active") is not None else None,
            budget=to_float(r.get("budget")) if r.get("budget") is not None else None,
            parent_pk=to_int(r.get("campaign_pk")),
        )
        for r in _meta_rows(
            db_path,
            "SELECT pk, ad_set_id, campaign_pk, name, active, budget FROM ad_sets WHERE pk IN ({placeholders})",
            ad_set_pks,
        )
    }
    ads = {
        to_int(r["pk"]): EntityMeta(
            pk=to_int(r["pk"]),
            platform_id=str(r.get("ad_id") or ""),
            name=str(r.get("name") or NOT_SET),
            active=to_bool(r.get("active")) if r.get("active") is not None else None,
            parent_pk=to_int(r.get("ad_set_pk")),
            image_url=r.get("image_url"),
        )
        for r in _meta_rows(
            db_path,
            "SELECT pk, ad_id, ad_set_pk, name, active, image_url FROM ads WHERE pk IN ({placeholders})",
            ad_pks,
        )
    }

    # pk 0 collects rows the platform never tied to an entity.
    for table, wanted in ((campaigns, campaign_pks), (ad_sets, ad_set_pks), (ads, ad_pks)):
        if 0 in wanted:
            table[0] = EntityMeta(pk=0, platform_id="", name=NOT_SET)
    return {"campaigns": campaigns, "ad_sets": ad_sets, "ads": ads}
