from __future__ import annotations

import argparse
import json
import logging
import sys

from pydantic import ValidationError

from channelops.config import configure_logging, default_db_path, load_settings
from channelops.errors import ChannelOpsError
from channelops.report import (
    get_attributed_orders,
    get_channel_breakdown,
    get_channel_performance,
    get_cohort_analysis,
    get_dashboard_metrics,
    get_order_timeline,
    get_products,
    get_timeseries,
)
from channelops.schemas import (
    AttributionRequest,
    ChannelPerformanceRequest,
    CohortRequest,
    DashboardRequest,
    ProductsRequest,
    TimelineRequest,
    TimeseriesRequest,
)


logger = logging.getLogger(__name__)


def _print(obj: object) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True, default=str))


def _add_scope_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--account-id", type=str, required=True)
    p.add_argument("--start-date", type=str, required=True)
    p.add_argument("--end-date", type=str, required=True)
    p.add_argument("--model", type=str, default="last_click")
    p.add_argument("--basis", type=str, default="order", choices=["order", "event"])
    p.add_argument("--window", type=str, default=None, help="1_day, 7_day, 14_day, 28_day, 90_day or lifetime")


def _add_channel_args(p: argparse.ArgumentParser, *, required: bool) -> None:
    p.add_argument("--channel", type=str, required=required, default=None)
    p.add_argument("--ad-campaign-pk", type=int, default=None)
    p.add_argument("--ad-set-pk", type=int, default=None)
    p.add_argument("--ad-pk", type=int, default=None)


def _scope(args: argparse.Namespace) -> dict[str, object]:
    scope = {
        "account_id": args.account_id,
        "start_date": args.start_date,
        "end_date": args.end_date,
        "attribution_model": args.model,
        "attribution_basis": args.basis,
    }
    if args.window:
        scope["attribution_window"] = args.window
    return scope


def _hierarchy(args: argparse.Namespace) -> dict[str, object]:
    return {
        k: v
        for k, v in (
            ("channel", args.channel),
            ("ad_campaign_pk", args.ad_campaign_pk),
            ("ad_set_pk", args.ad_set_pk),
            ("ad_pk", args.ad_pk),
        )
        if v is not None
    }


def _attribution_request(args: argparse.Namespace) -> AttributionRequest:
    params = {**_scope(args), **_hierarchy(args)}
    if args.campaign is not None:
        params["campaign"] = args.campaign
    if args.first_time_only:
        params["first_time_customers_only"] = True
    return AttributionRequest(**params)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="channelops", description="Channel attribution and cohort metrics over a local warehouse.")
    parser.add_argument("--db", type=str, default=None, help="SQLite db path (default: $CHANNELOPS_DB_PATH or data/dummy/channelops_demo.sqlite)")
    parser.add_argument("--log-level", type=str, default=None)

    sub = parser.add_subparsers(dest="cmd", required=True)

    perf = sub.add_parser("performance", help="Per-channel performance for an account.")
    _add_scope_args(perf)

    for name, help_text in (("breakdown", "Campaign breakdown for one channel."), ("orders", "Orders attributed to one channel.")):
        p = sub.add_parser(name, help=help_text)
        _add_scope_args(p)
        _add_channel_args(p, required=True)
        p.add_argument("--campaign", type=str, default=None)
        p.add_argument("--first-time-only", action="store_true")

    ts = sub.add_parser("timeseries", help="Hourly or daily performance series.")
    _add_scope_args(ts)
    _add_channel_args(ts, required=False)
    ts.add_argument("--bucket", type=str, default="auto", choices=["auto", "hour", "day"])

    cohorts = sub.add_parser("cohorts", help="Cohort retention and unit economics.")
    cohorts.add_argument("--shop", type=str, required=True)
    cohorts.add_argument("--cohort-type", type=str, default="month", choices=["week", "month", "quarter", "year"])
    cohorts.add_argument("--start-date", type=str, required=True)
    cohorts.add_argument("--end-date", type=str, default=None)
    cohorts.add_argument("--max-periods", type=int, default=None)
    cohorts.add_argument("--product-id", type=int, default=None)
    cohorts.add_argument("--variant-id", type=int, default=None)

    dashboard = sub.add_parser("dashboard", help="Shop-level revenue, spend and profit totals.")
    dashboard.add_argument("--account-id", type=str, required=True)
    dashboard.add_argument("--start-date", type=str, required=True)
    dashboard.add_argument("--end-date", type=str, required=True)

    products = sub.add_parser("products", help="Products and variants of a shop.")
    products.add_argument("--shop", type=str, required=True)

    timeline = sub.add_parser("timeline", help="Touchpoint timeline for one order.")
    timeline.add_argument("--shop", type=str, required=True)
    timeline.add_argument("--order-id", type=str, required=True)
    return parser


def _run(args: argparse.Namespace, db_path: str) -> dict[str, object]:
    if args.cmd == "performance":
        return get_channel_performance(db_path, ChannelPerformanceRequest(**_scope(args)))
    if args.cmd == "breakdown":
        return get_channel_breakdown(db_path, _attribution_request(args))
    if args.cmd == "orders":
        return get_attributed_orders(db_path, _attribution_request(args))
    if args.cmd == "timeseries":
        return get_timeseries(db_path, TimeseriesRequest(**_scope(args), **_hierarchy(args), bucket=args.bucket))
    if args.cmd == "cohorts":
        params = {
            "shop_name": args.shop,
            "cohort_type": args.cohort_type,
            "start_date": args.start_date,
            "end_date": args.end_date,
            "max_periods": args.max_periods,
            "filter_product_id": args.product_id,
            "filter_variant_id": args.variant_id,
        }
        return get_cohort_analysis(db_path, CohortRequest(**{k: v for k, v in params.items() if v is not None}))
    if args.cmd == "dashboard":
        return get_dashboard_metrics(
            db_path,
            DashboardRequest(account_id=args.account_id, start_date=args.start_date, end_date=args.end_date),
        )
    if args.cmd == "products":
        return get_products(db_path, ProductsRequest(shop_name=args.shop))
    if args.cmd == "timeline":
        return get_order_timeline(db_path, TimelineRequest(order_id=args.order_id, shop_name=args.shop))
    raise SystemExit(f"Unknown command: {args.cmd}")


def main(argv: list[str]) -> int:
    load_settings()
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    db_path = args.db or default_db_path()

    try:
        _print(_run(args, db_path))
    except ValidationError as exc:
        logger.warning("Invalid %s request: %s", args.cmd, exc.error_count())
        _print({"error": "InvalidRequest", "message": "request validation failed", "details": exc.errors(include_url=False)})
        return 2
    except ChannelOpsError as exc:
        _print({"error": type(exc).__name__, "message": str(exc), "context": exc.context})
        return 2
    return 0


def cli() -> int:
    return main(sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(cli())
