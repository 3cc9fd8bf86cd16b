"""Request-level operations.

Each function takes a validated request object and returns a JSON-ready payload
``{"data": ..., "metadata": ...}``, or raises a ``ChannelOpsError`` subclass.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel

from channelops.config import ChannelConfig
from channelops.errors import OrderNotFound, ShopNotFound
from channelops.schemas import (
    AttributionRequest,
    ChannelPerformanceRequest,
    CohortRequest,
    DashboardRequest,
    ProductsRequest,
    TimelineRequest,
    TimeseriesRequest,
)
from channelops.tools.attribution import aggregate, breakdown, list_attributed_orders
from channelops.tools.cohorts import compute_cohorts
from channelops.tools.dashboard import compute_dashboard
from channelops.tools.filters import FilterSet, build_filters, build_scope_filters
from channelops.tools.products import list_products
from channelops.tools.shops import Shop, get_shop, resolve_shop
from channelops.tools.timeline import merge_timeline
from channelops.util import UTC, iso_ts


def _metadata(request: BaseModel, **extra: Any) -> dict[str, Any]:
    meta = request.model_dump(mode="json")
    meta.update(extra)
    meta["query_timestamp"] = iso_ts(datetime.now(UTC))
    return meta


def _shop_meta(shop: Shop, filters: FilterSet) -> dict[str, Any]:
    return {"shop_name": shop.shop_name, "currency": shop.currency, "source": filters.source}


def get_channel_performance(db_path: str, request: ChannelPerformanceRequest, config: ChannelConfig | None = None) -> dict[str, Any]:
    shop = resolve_shop(db_path, request.account_id)
    filters = build_scope_filters(request, shop.shop_name)
    rows = aggregate(
        db_path,
        filters,
        model=request.attribution_model,
        basis=request.attribution_basis,
        grouping="channel",
        ignore_vat=shop.ignore_vat,
        config=config,
    )
    return {"data": [r.to_dict() for r in rows], "metadata": _metadata(request, **_shop_meta(shop, filters))}


def get_channel_breakdown(db_path: str, request: AttributionRequest, config: ChannelConfig | None = None) -> dict[str, Any]:
    shop = resolve_shop(db_path, request.account_id)
    filters = build_filters(request, shop.shop_name, config)
    result = breakdown(
        db_path,
        filters,
        model=request.attribution_model,
        basis=request.attribution_basis,
        ignore_vat=shop.ignore_vat,
        config=config,
    )
    return {"data": result.to_dict(), "metadata": _metadata(request, **_shop_meta(shop, filters))}


def resolve_bucket(request: TimeseriesRequest) -> str:
    if request.bucket != "auto":
        return request.bucket
    # A single day is shown by hour.
    return "hour" if request.start_date == request.end_date else "day"


def get_timeseries(db_path: str, request: TimeseriesRequest, config: ChannelConfig | None = None) -> dict[str, Any]:
    shop = resolve_shop(db_path, request.account_id)
    if request.channel is None:
        filters = build_scope_filters(request, shop.shop_name)
    else:
        filters = build_filters(request, shop.shop_name, config)
    bucket = resolve_bucket(request)
    rows = aggregate(
        db_path,
        filters,
        model=request.attribution_model,
        basis=request.attribution_basis,
        grouping="channel",
        bucket=bucket,
        ignore_vat=shop.ignore_vat,
        config=config,
    )
    meta = _metadata(request, resolved_bucket=bucket, **_shop_meta(shop, filters))
    return {"data": [r.to_dict() for r in rows], "metadata": meta}


def get_attributed_orders(db_path: str, request: AttributionRequest, config: ChannelConfig | None = None) -> dict[str, Any]:
    shop = resolve_shop(db_path, request.account_id)
    filters = build_filters(request, shop.shop_name, config)
    orders = list_attributed_orders(db_path, filters, model=request.attribution_model, basis=request.attribution_basis)
    meta = _metadata(request, total_orders=len(orders), **_shop_meta(shop, filters))
    return {"data": [o.to_dict() for o in orders], "metadata": meta}


def get_cohort_analysis(db_path: str, request: CohortRequest) -> dict[str, Any]:
    shop = get_shop(db_path, request.shop_name)
    cohorts = compute_cohorts(db_path, request, shop.timezone)
    meta = _metadata(
        request,
        max_periods=request.effective_max_periods,
        end_date=request.effective_end_date.isoformat(),
        timezone=shop.timezone,
        currency=shop.currency,
    )
    return {"data": {"cohorts": [c.to_dict() for c in cohorts]}, "metadata": meta}


def get_order_timeline(db_path: str, request: TimelineRequest) -> dict[str, Any]:
    try:
        shop = get_shop(db_path, request.shop_name)
    except ShopNotFound as exc:
        raise OrderNotFound(request.order_id, request.shop_name) from exc
    days = merge_timeline(db_path, request.order_id, shop.shop_name, shop.timezone)
    meta = _metadata(request, timezone=shop.timezone, total_events=sum(len(d.events) for d in days))
    return {"data": [d.to_dict() for d in days], "metadata": meta}


def get_dashboard_metrics(db_path: str, request: DashboardRequest) -> dict[str, Any]:
    shop = resolve_shop(db_path, request.account_id)
    level, points = compute_dashboard(db_path, shop, request.start_date, request.end_date)
    meta = _metadata(request, shop_name=shop.shop_name, currency=shop.currency, timezone=shop.timezone)
    return {"data": {"timeseries": [p.to_dict() for p in points], "aggregation_level": level}, "metadata": meta}


def get_products(db_path: str, request: ProductsRequest) -> dict[str, Any]:
    products = list_products(db_path, request.shop_name)
    meta = _metadata(
        request,
        total_products=len(products),
        total_variants=sum(len(p.variants) for p in products),
    )
    return {"data": [p.to_dict() for p in products], "metadata": meta}
