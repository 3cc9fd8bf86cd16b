"""Cohort analysis: group customers by acquisition period and track their economics.

A customer's cohort is the period containing their first order overall, in the
shop's local timezone. Orders are then bucketed by how many calendar periods
after the cohort period they were placed. Cumulative metrics are running sums
of the incremental ones and every ratio is derived from those sums.
"""
from __future__ import annotations

import logging
import time
from collections import defaultdict
from datetime import date, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from channelops.db import sql_rows
from channelops.models import CohortData, CohortMetrics, CohortPeriodData, CumulativeCohortMetrics
from channelops.schemas import CohortRequest
from channelops.util import local_datetime, ratio, round_money, shop_zone, to_float


logger = logging.getLogger(__name__)


def _r4(value: float) -> float:
    return float(f"{value:.4f}")


def _local_date(ts: Any, zone: ZoneInfo) -> date:
    return local_datetime(ts, zone).date()


def period_start(d: date, cohort_type: str) -> date:
    if cohort_type == "week":
        return d - timedelta(days=d.weekday())
    if cohort_type == "month":
        return d.replace(day=1)
    if cohort_type == "quarter":
        return date(d.year, 3 * ((d.month - 1) // 3) + 1, 1)
    if cohort_type == "year":
        return date(d.year, 1, 1)
    raise ValueError("cohort_type must be one of: week, month, quarter, year")


def periods_between(start: date, later: date, cohort_type: str) -> int:
    """Whole calendar periods from the period holding ``start`` to the one holding ``later``."""
    a = period_start(start, cohort_type)
    b = period_start(later, cohort_type)
    if cohort_type == "week":
        return (b - a).days // 7
    if cohort_type == "month":
        return (b.year - a.year) * 12 + (b.month - a.month)
    if cohort_type == "quarter":
        return (b.year - a.year) * 4 + ((b.month - 1) // 3 - (a.month - 1) // 3)
    return b.year - a.year


def _net_revenue(o: dict[str, Any]) -> float:
    if o.get("net_revenue") is not None:
        return to_float(o["net_revenue"])
    return to_float(o.get("total_price")) - to_float(o.get("total_tax")) - to_float(o.get("total_refund_amount"))


def _filtered_order_ids(db_path: str, shop_name: str, product_id: int | None, variant_id: int | None) -> set[str] | None:
    if product_id is None and variant_id is None:
        return None
    clauses = ["o.shopify_shop = ?"]
    params: list[Any] = [shop_name]
    if product_id is not None:
        clauses.append("li.product_id = ?")
        params.append(product_id)
    if variant_id is not None:
        clauses.append("li.variant_id = ?")
        params.append(variant_id)
    rows = sql_rows(
        db_path,
        f"""
        SELECT DISTINCT li.order_id AS order_id
        FROM int_order_line_items li
        JOIN int_order_enriched o ON o.order_id = li.order_id
        WHERE {' AND '.join(clauses)}
        """,
        params,
    )
    return {str(r["order_id"]) for r in rows}


def _period_metrics(bucket: dict[str, Any], size: int, spend: float, period: int) -> tuple[CohortMetrics, float]:
    cm1 = bucket["net_revenue"] - bucket["cogs"]
    cm3 = cm1 - (spend if period == 0 else 0.0)
    metrics = CohortMetrics(
        active_customers=len(bucket["customers"]),
        active_customers_percentage=_r4(ratio(len(bucket["customers"]), size) * 100),
        orders=bucket["orders"],
        revenue=round_money(bucket["revenue"]),
        net_revenue=round_money(bucket["net_revenue"]),
        cogs=round_money(bucket["cogs"]),
        contribution_margin_one=round_money(cm1),
        contribution_margin_three=round_money(cm3),
        average_order_value=round_money(ratio(bucket["revenue"], bucket["orders"])),
    )
    return metrics, cm3


def _empty_bucket() -> dict[str, Any]:
    return {"customers": set(), "orders": 0, "revenue": 0.0, "net_revenue": 0.0, "cogs": 0.0}


def _build_periods(
    buckets: dict[int, dict[str, Any]],
    size: int,
    spend: float,
    cac: float,
    n_periods: int,
) -> tuple[CohortPeriodData, ...]:
    periods = []
    seen: set[str] = set()
    run = {"orders": 0, "revenue": 0.0, "net_revenue": 0.0, "cogs": 0.0, "cm1": 0.0, "cm3": 0.0}
    paid_back = False
    for p in range(n_periods):
        bucket = buckets.get(p) or _empty_bucket()
        incremental, cm3 = _period_metrics(bucket, size, spend, p)

        seen |= bucket["customers"]
        run["orders"] += bucket["orders"]
        run["revenue"] += bucket["revenue"]
        run["net_revenue"] += bucket["net_revenue"]
        run["cogs"] += bucket["cogs"]
        run["cm1"] += bucket["net_revenue"] - bucket["cogs"]
        run["cm3"] += cm3

        ltv = ratio(run["net_revenue"], size)
        net_ltv = ratio(run["cm1"], size)
        paid_back = paid_back or (size > 0 and net_ltv >= cac)

        cumulative = CumulativeCohortMetrics(
            active_customers=len(seen),
            active_customers_percentage=_r4(ratio(len(seen), size) * 100),
            orders=run["orders"],
            revenue=round_money(run["revenue"]),
            net_revenue=round_money(run["net_revenue"]),
            cogs=round_money(run["cogs"]),
            contribution_margin_one=round_money(run["cm1"]),
            contribution_margin_three=round_money(run["cm3"]),
            average_order_value=round_money(ratio(run["revenue"], run["orders"])),
            ltv_to_date=round_money(ltv),
            gross_ltv_to_date=round_money(ratio(run["revenue"], size)),
            net_ltv_to_date=round_money(net_ltv),
            ltv_to_cac_ratio=_r4(ratio(ltv, cac)),
            net_ltv_to_cac_ratio=_r4(ratio(net_ltv, cac)),
            contribution_margin_three_per_customer=round_money(ratio(run["cm3"], size)),
            is_payback_achieved=paid_back,
        )
        periods.append(CohortPeriodData(period=p, incremental=incremental, cumulative=cumulative))
    return tuple(periods)


def compute_cohorts(db_path: str, request: CohortRequest, timezone: str = "UTC") -> list[CohortData]:
    started = time.monotonic()
    zone = shop_zone(timezone)
    cohort_type = request.cohort_type
    start_d = request.start_date
    end_d = request.effective_end_date
    max_periods = request.effective_max_periods

    orders = sql_rows(
        db_path,
        """
        SELECT order_id, customer_id, order_timestamp, total_price, total_tax,
               total_refund_amount, net_revenue, total_cogs
        FROM int_order_enriched
        WHERE shopify_shop = ? AND COALESCE(customer_id, '') <> ''
        ORDER BY order_timestamp, order_id
        """,
        [request.shop_name],
    )

    # Membership comes from the first order overall, before any product filter.
    first_order: dict[str, date] = {}
    for o in orders:
        ck = str(o["customer_id"])
        if ck not in first_order:
            first_order[ck] = _local_date(o["order_timestamp"], zone)

    members: dict[date, set[str]] = defaultdict(set)
    customer_cohort: dict[str, date] = {}
    for ck, first_d in first_order.items():
        if start_d <= first_d <= end_d:
            key = period_start(first_d, cohort_type)
            members[key].add(ck)
            customer_cohort[ck] = key

    spend_rows = sql_rows(
        db_path,
        "SELECT date_time, spend FROM int_ad_spend WHERE shop_name = ? AND date_time >= ? AND date_time < ?",
        [request.shop_name, (start_d - timedelta(days=1)).isoformat(), (end_d + timedelta(days=2)).isoformat()],
    )
    cohort_spend: dict[date, float] = defaultdict(float)
    for s in spend_rows:
        d = _local_date(s["date_time"], zone)
        if start_d <= d <= end_d:
            cohort_spend[period_start(d, cohort_type)] += to_float(s.get("spend"))

    allowed = _filtered_order_ids(db_path, request.shop_name, request.filter_product_id, request.filter_variant_id)

    buckets: dict[date, dict[int, dict[str, Any]]] = defaultdict(dict)
    last_offset = -1
    for o in orders:
        ck = str(o["customer_id"])
        key = customer_cohort.get(ck)
        if key is None:
            continue
        if allowed is not None and str(o["order_id"]) not in allowed:
            continue
        offset = periods_between(key, _local_date(o["order_timestamp"], zone), cohort_type)
        if offset < 0 or offset >= max_periods:
            continue
        b = buckets[key].setdefault(offset, _empty_bucket())
        b["customers"].add(ck)
        b["orders"] += 1
        b["revenue"] += to_float(o.get("total_price"))
        b["net_revenue"] += _net_revenue(o)
        b["cogs"] += to_float(o.get("total_cogs"))
        last_offset = max(last_offset, offset)

    n_periods = last_offset + 1
    cohorts = []
    for key in sorted(set(members) | set(cohort_spend)):
        size = len(members.get(key, ()))
        spend = cohort_spend.get(key, 0.0)
        cac = ratio(spend, size)
        cohorts.append(
            CohortData(
                cohort=key.isoformat(),
                cohort_size=size,
                cohort_ad_spend=round_money(spend),
                cac_per_customer=round_money(cac),
                periods=_build_periods(buckets.get(key, {}), size, spend, cac, n_periods),
            )
        )

    logger.info(
        "Computed %d %s cohorts shop=%s periods=%d in %.1fms",
        len(cohorts),
        cohort_type,
        request.shop_name,
        n_periods,
        (time.monotonic() - started) * 1000,
    )
    return cohorts
