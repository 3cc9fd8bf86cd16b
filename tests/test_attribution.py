"""Tests for credit assignment, aggregation and breakdowns against the seeded warehouse."""
import pytest

from channelops.errors import StorageError
from channelops.models import AdHierarchyResult, CampaignListResult
from channelops.schemas import AttributionRequest, ChannelPerformanceRequest
from channelops.tools import attribution
from channelops.tools.attribution import (
    aggregate,
    breakdown,
    credit_events,
    fetch_credited_rows,
    list_attributed_orders,
    summarize,
)
from channelops.tools.filters import build_filters, build_scope_filters


SHOP = "test-shop"


def _request(**overrides):
    params = {
        "account_id": "acct_1",
        "start_date": "2024-01-01",
        "end_date": "2024-01-31",
        "attribution_model": "first_click",
        "channel": "meta-ads",
        "attribution_window": "28_day",
    }
    params.update(overrides)
    return AttributionRequest(**params)


def _by_key(rows):
    return {r.key: r for r in rows}


def _scope(window="28_day", model="first_click"):
    return ChannelPerformanceRequest(
        account_id="acct_1",
        start_date="2024-01-01",
        end_date="2024-01-31",
        attribution_model=model,
        attribution_window=window,
    )


def test_channel_performance_rows(db):
    filters = build_scope_filters(_scope(), SHOP)
    rows = aggregate(db, filters, model="first_click")

    assert [r.key for r in rows] == ["meta-ads", "google-ads", "organic-search", "email", "taboola"]
    meta = rows[0]
    assert meta.attributed_orders == 3.0
    assert meta.attributed_revenue == 170.0
    assert meta.distinct_orders_touched == 3
    assert meta.ad_spend == 50.0
    assert meta.impressions == 1500
    assert meta.clicks == 60
    assert meta.roas == 3.4
    assert meta.net_profit == 50.0
    assert meta.profit_margin == pytest.approx(0.2941)
    assert meta.first_time_customer_orders == 1.0
    assert meta.first_time_customer_revenue == 100.0
    assert meta.first_time_customer_roas == 2.0
    assert meta.cpc == pytest.approx(0.8333)
    assert meta.ctr == 0.04


def test_zero_spend_gives_zero_roas(db):
    rows = _by_key(aggregate(db, build_scope_filters(_scope(), SHOP), model="first_click"))

    assert rows["organic-search"].ad_spend == 0.0
    assert rows["organic-search"].roas == 0.0
    # Spend with no attributed orders still shows up.
    assert rows["taboola"].attributed_revenue == 0.0
    assert rows["taboola"].profit_margin == 0.0
    assert rows["taboola"].net_profit == -5.0


def test_window_selects_matching_rows_only(db):
    rows = _by_key(aggregate(db, build_scope_filters(_scope(window="7_day"), SHOP), model="first_click"))
    assert rows["meta-ads"].attributed_revenue == 555.0
    assert rows["google-ads"].attributed_revenue == 0.0
    assert rows["google-ads"].ad_spend == 20.0


def test_linear_orders_can_be_fractional(db):
    filters = build_filters(_request(attribution_model="linear_all"), SHOP)
    [row] = aggregate(db, filters, model="linear_all")

    assert row.attributed_orders == 0.5
    assert row.distinct_orders_touched == 1
    assert row.attributed_revenue == 60.0


def test_ratios_are_derived_after_summation():
    rows = [
        {"channel": "meta-ads", "order_id": "a", "order_timestamp": "2024-01-01 10:00:00", "weight": 1, "revenue": 100},
        {"channel": "meta-ads", "order_id": "b", "order_timestamp": "2024-01-02 10:00:00", "weight": 1, "revenue": 0},
    ]
    spend = [
        {"channel": "meta-ads", "date_time": "2024-01-01", "spend": 50},
        {"channel": "meta-ads", "date_time": "2024-01-02", "spend": 50},
    ]
    [row] = summarize(rows, spend)
    assert row.roas == 1.0


def test_rows_ordered_by_period_then_revenue(db):
    filters = build_filters(_request(), SHOP)
    rows = aggregate(db, filters, model="first_click", bucket="day")

    assert [r.period for r in rows] == ["2024-01-31", "2024-01-15", "2024-01-10"]
    assert rows[2].attributed_revenue == 100.0
    assert rows[2].ad_spend == 40.0


def test_hour_buckets(db):
    filters = build_filters(_request(start_date="2024-01-10", end_date="2024-01-10"), SHOP)
    rows = aggregate(db, filters, model="first_click", bucket="hour")

    assert [(r.period, r.attributed_revenue, r.ad_spend) for r in rows] == [
        ("2024-01-10 12:00:00", 100.0, 0.0),
        ("2024-01-10 00:00:00", 0.0, 40.0),
    ]


def test_first_time_customers_only(db):
    filters = build_filters(_request(first_time_customers_only=True), SHOP)
    [row] = aggregate(db, filters, model="first_click")
    assert row.attributed_revenue == 100.0
    assert row.ad_spend == 50.0


def test_event_first_click_credits_first_event(db):
    filters = build_filters(_request(attribution_basis="event", attribution_window=None), SHOP)
    rows = fetch_credited_rows(db, filters, "first_click", "event")

    assert [(r["event_id"], r["weight"], r["revenue"]) for r in rows] == [("1", 1.0, 100.0)]


def test_event_linear_all_splits_by_channel_then_ad_then_event(db):
    meta = build_filters(_request(attribution_basis="event", attribution_model="linear_all"), SHOP)
    email = build_filters(
        _request(attribution_basis="event", attribution_model="linear_all", channel="email"), SHOP
    )

    [meta_row] = aggregate(db, meta, model="linear_all", basis="event")
    [email_row] = aggregate(db, email, model="linear_all", basis="event")
    assert meta_row.attributed_orders == 0.5
    assert meta_row.distinct_orders_touched == 1
    assert meta_row.attributed_revenue == 50.0
    assert email_row.attributed_orders == 0.5


def test_event_linear_paid_falls_back_to_all_events(db):
    meta = build_filters(_request(attribution_basis="event", attribution_model="linear_paid"), SHOP)
    organic = build_filters(
        _request(attribution_basis="event", attribution_model="linear_paid", channel="organic-search"), SHOP
    )

    [meta_row] = aggregate(db, meta, model="linear_paid", basis="event")
    [organic_row] = aggregate(db, organic, model="linear_paid", basis="event")
    assert meta_row.attributed_orders == 1.0
    assert meta_row.attributed_revenue == 100.0
    assert organic_row.attributed_orders == 1.0
    assert organic_row.attributed_revenue == 40.0


def test_event_last_paid_click_skips_organic_when_order_has_paid_touch(db):
    filters = build_filters(
        _request(attribution_basis="event", attribution_model="last_paid_click", channel="email"), SHOP
    )
    assert aggregate(db, filters, model="last_paid_click", basis="event") == []


def test_event_last_paid_click_falls_back_to_last_event_without_paid_touch(db):
    filters = build_filters(
        _request(attribution_basis="event", attribution_model="last_paid_click", channel="organic-search"), SHOP
    )
    [row] = aggregate(db, filters, model="last_paid_click", basis="event")

    assert row.key == "organic-search"
    assert row.attributed_orders == 1.0
    assert row.attributed_revenue == 40.0


def test_event_basis_filters_on_touchpoint_time(db):
    """A touchpoint inside the range is credited even when the order falls outside it."""
    req = _request(attribution_basis="event", start_date="2024-01-08", end_date="2024-01-08")
    filters = build_filters(req, SHOP)

    assert {p.column for p in filters.predicates if p.kind.startswith("date")} == {"event_timestamp"}
    rows = fetch_credited_rows(db, filters, "first_click", "event")
    assert [(r["event_id"], r["order_id"], r["revenue"]) for r in rows] == [("1", "e1", 100.0)]


def test_event_linear_weights_cover_in_range_events_only(db):
    req = _request(attribution_basis="event", attribution_model="linear_all", start_date="2024-01-10", end_date="2024-01-10")
    [row] = aggregate(db, build_filters(req, SHOP), model="linear_all", basis="event")

    # Only the 2024-01-10 meta-ads touch of e1 is in range, so it takes full credit.
    assert row.attributed_orders == 1.0
    assert row.attributed_revenue == 100.0


def test_event_basis_buckets_on_touchpoint_day(db):
    filters = build_filters(_request(attribution_basis="event", attribution_model="linear_all"), SHOP)
    rows = aggregate(db, filters, model="linear_all", basis="event", bucket="day")

    assert [(r.period, r.attributed_revenue, r.ad_spend) for r in rows] == [
        ("2024-01-15", 0.0, 10.0),
        ("2024-01-10", 25.0, 40.0),
        ("2024-01-08", 25.0, 0.0),
    ]


def test_event_campaign_filter(db):
    def run(campaign):
        req = _request(attribution_basis="event", attribution_model="last_click", channel="organic-search", campaign=campaign)
        return fetch_credited_rows(db, build_filters(req, SHOP), "last_click", "event")

    assert len(run("brand")) == 1
    assert run("nonbrand") == []


def test_credit_events_weights_sum_to_one():
    events = [
        {"channel": "meta-ads", "platform_ad_id": "a1"},
        {"channel": "meta-ads", "platform_ad_id": "a1"},
        {"channel": "meta-ads", "platform_ad_id": "a2"},
        {"channel": "email", "platform_ad_id": None},
    ]
    weights = [w for _, w in credit_events("linear", events)]
    assert weights == [0.125, 0.125, 0.25, 0.5]
    assert sum(weights) == pytest.approx(1.0)


def test_attributed_orders_sorted_newest_first(db):
    orders = list_attributed_orders(db, build_filters(_request(), SHOP), model="first_click")

    assert [o.order_id for o in orders] == ["o5", "o2", "o1"]
    assert orders[2].is_first_customer_order is True
    assert orders[2].attributed_revenue == 100.0


def test_attributed_orders_tie_breaks_on_order_id(db, monkeypatch):
    rows = [
        {"order_id": "b", "order_timestamp": "2024-01-01 10:00:00", "weight": 1, "revenue": 1},
        {"order_id": "a", "order_timestamp": "2024-01-01 10:00:00", "weight": 1, "revenue": 1},
    ]
    monkeypatch.setattr(attribution, "fetch_credited_rows", lambda *args, **kwargs: rows)

    orders = list_attributed_orders(db, build_filters(_request(), SHOP), model="first_click")
    assert [o.order_id for o in orders] == ["a", "b"]


def test_ad_spend_breakdown_is_ad_hierarchy(db):
    result = breakdown(db, build_filters(_request(), SHOP), model="first_click")

    assert isinstance(result, AdHierarchyResult)
    assert result.kind == "ad_hierarchy"
    assert result.managed is True
    [campaign] = result.campaigns
    assert campaign.pk == 1
    assert campaign.name == "Meta Prospecting"
    assert campaign.budget == 200.0
    assert "facebook.com/adsmanager/manage/campaigns?act=123" in campaign.url
    assert campaign.metrics.attributed_revenue == 170.0
    assert campaign.metrics.ad_spend == 50.0

    assert [s.pk for s in campaign.ad_sets] == [11, 12]
    lookalike = campaign.ad_sets[0]
    assert lookalike.metrics.attributed_revenue == 120.0
    assert "manage/adsets" in lookalike.url
    [ad] = lookalike.ads
    assert (ad.pk, ad.name, ad.image_url) == (111, "Video A", "https://img/a.png")
    assert "selected_ad_ids=m_ad_111" in ad.url


def test_google_breakdown_links_campaign_only(db):
    result = breakdown(db, build_filters(_request(channel="google-ads"), SHOP), model="first_click")

    [campaign] = result.campaigns
    assert campaign.url == "https://ads.google.com/aw/campaigns?campaignId=g_c2"
    assert campaign.active is False
    assert campaign.ad_sets[0].url is None


def test_unmanaged_ad_spend_channel_hides_status_and_budget(db):
    result = breakdown(db, build_filters(_request(channel="taboola"), SHOP), model="first_click")

    assert isinstance(result, AdHierarchyResult)
    assert result.managed is False
    [campaign] = result.campaigns
    assert campaign.name == "Taboola Native"
    assert (campaign.active, campaign.budget) == (None, None)
    assert campaign.url == "https://ads.taboola.com/campaigns?campaignId=t_c3"
    assert campaign.metrics.ad_spend == 5.0


def test_non_ad_spend_breakdown_is_campaign_list(db):
    result = breakdown(db, build_filters(_request(channel="organic-search"), SHOP), model="first_click")

    assert isinstance(result, CampaignListResult)
    assert result.kind == "campaign_list"
    assert [r.key for r in result.campaigns] == ["brand"]
    assert result.campaigns[0].ad_spend == 0.0


def test_missing_warehouse_raises_storage_error(tmp_path):
    filters = build_filters(_request(), SHOP)
    with pytest.raises(StorageError) as exc_info:
        fetch_credited_rows(str(tmp_path / "missing.sqlite"), filters, "first_click")
    assert "missing.sqlite" in exc_info.value.context["db_path"]
