from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal


@dataclass(frozen=True)
class PerformanceRow:
    dimension: str
    key: str | int
    channel: str
    period: str | None
    attributed_orders: float
    attributed_revenue: float
    distinct_orders_touched: int
    attributed_cogs: float
    attributed_payment_fees: float
    attributed_tax: float
    ad_spend: float
    impressions: int
    clicks: int
    roas: float
    net_profit: float
    profit_margin: float
    first_time_customer_orders: float
    first_time_customer_revenue: float
    first_time_customer_roas: float
    cpc: float
    ctr: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AttributedOrder:
    order_id: str
    order_number: str
    order_timestamp: str
    is_first_customer_order: bool
    attributed_revenue: float
    attribution_weight: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AdNode:
    pk: int
    name: str
    active: bool | None
    url: str | None
    image_url: str | None
    metrics: PerformanceRow


@dataclass(frozen=True)
class AdSetNode:
    pk: int
    name: str
    active: bool | None
    budget: float | None
    url: str | None
    metrics: PerformanceRow
    ads: tuple[AdNode, ...] = ()


@dataclass(frozen=True)
class CampaignNode:
    pk: int
    name: str
    active: bool | None
    budget: float | None
    url: str | None
    metrics: PerformanceRow
    ad_sets: tuple[AdSetNode, ...] = ()


@dataclass(frozen=True)
class AdHierarchyResult:
    """Breakdown for an ad-spend channel: campaigns -> ad sets -> ads.

    ``managed`` channels expose status and budget on each node; for other
    ad-spend channels those fields are always ``None``.
    """

    channel: str
    campaigns: tuple[CampaignNode, ...]
    managed: bool = False
    kind: Literal["ad_hierarchy"] = "ad_hierarchy"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CampaignListResult:
    """Breakdown for a non-ad-spend channel: flat rows keyed by campaign text."""

    channel: str
    campaigns: tuple[PerformanceRow, ...]
    kind: Literal["campaign_list"] = "campaign_list"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


BreakdownResult = AdHierarchyResult | CampaignListResult


@dataclass(frozen=True)
class CohortMetrics:
    active_customers: int = 0
    active_customers_percentage: float = 0.0
    orders: int = 0
    revenue: float = 0.0
    net_revenue: float = 0.0
    cogs: float = 0.0
    contribution_margin_one: float = 0.0
    contribution_margin_three: float = 0.0
    average_order_value: float = 0.0


@dataclass(frozen=True)
class CumulativeCohortMetrics(CohortMetrics):
    ltv_to_date: float = 0.0
    gross_ltv_to_date: float = 0.0
    net_ltv_to_date: float = 0.0
    ltv_to_cac_ratio: float = 0.0
    net_ltv_to_cac_ratio: float = 0.0
    contribution_margin_three_per_customer: float = 0.0
    is_payback_achieved: bool = False


@dataclass(frozen=True)
class CohortPeriodData:
    period: int
    incremental: CohortMetrics
    cumulative: CumulativeCohortMetrics


@dataclass(frozen=True)
class CohortData:
    cohort: str
    cohort_size: int
    cohort_ad_spend: float
    cac_per_customer: float
    periods: tuple[CohortPeriodData, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TimelineEvent:
    id: int
    type: str
    page_url: str
    timestamp: str
    time: str
    page_title: str | None = None
    referrer: str | None = None
    source: str | None = None
    ad_id: str | None = None
    ad_name: str | None = None
    ad_set_name: str | None = None
    campaign_name: str | None = None


@dataclass(frozen=True)
class EventsByDay:
    day: str
    events: tuple[TimelineEvent, ...]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DashboardPoint:
    timestamp: str
    total_orders: int = 0
    total_revenue: float = 0.0
    total_refunds: float = 0.0
    total_cogs: float = 0.0
    total_vat: float = 0.0
    total_payment_fees: float = 0.0
    total_ad_spend: float = 0.0
    profit: float = 0.0
    roas: float = 0.0
    new_customer_count: int = 0
    new_customer_revenue: float = 0.0
    new_customer_roas: float = 0.0
    cac: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProductVariant:
    id: str
    title: str | None
    price: float | None
    cost: float | None
    shopify_product: str


@dataclass(frozen=True)
class Product:
    id: str
    name: str | None
    product_type: str | None
    shopify_shop: str
    variants: tuple[ProductVariant, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
