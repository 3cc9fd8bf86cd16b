"""Attribution model routing.

Order-based attribution reads one pre-aggregated source per model. Event-based
attribution reads the single event source and picks credited events by rule,
so it never goes through ``resolve_source``.
"""
from __future__ import annotations

from enum import Enum

from channelops.errors import UnknownAttributionModel


class AttributionModel(str, Enum):
    FIRST_CLICK = "first_click"
    LAST_CLICK = "last_click"
    LAST_PAID_CLICK = "last_paid_click"
    LINEAR_ALL = "linear_all"
    LINEAR_PAID = "linear_paid"
    ALL_CLICKS = "all_clicks"


ATTRIBUTION_SOURCES: dict[AttributionModel, str] = {
    AttributionModel.FIRST_CLICK: "int_order_attribution_first_click",
    AttributionModel.LAST_CLICK: "int_order_attribution_last_click",
    AttributionModel.LAST_PAID_CLICK: "int_order_attribution_last_paid_click",
    AttributionModel.LINEAR_ALL: "int_order_attribution_linear_all",
    AttributionModel.LINEAR_PAID: "int_order_attribution_linear_paid",
    AttributionModel.ALL_CLICKS: "int_order_attribution_all_clicks",
}

EVENT_SOURCE = "int_event_metadata"

# Credit rule per event-based model; all_clicks has no event-based form.
EVENT_RULES: dict[AttributionModel, str] = {
    AttributionModel.FIRST_CLICK: "first",
    AttributionModel.LAST_CLICK: "last",
    AttributionModel.LAST_PAID_CLICK: "last_paid",
    AttributionModel.LINEAR_ALL: "linear",
    AttributionModel.LINEAR_PAID: "linear_paid",
}


def parse_model(value: str | AttributionModel) -> AttributionModel:
    if isinstance(value, AttributionModel):
        return value
    m = str(value or "").strip().lower().replace("-", "_")
    try:
        return AttributionModel(m)
    except ValueError:
        raise UnknownAttributionModel(value, [x.value for x in AttributionModel]) from None


def resolve_source(model: str | AttributionModel) -> str:
    return ATTRIBUTION_SOURCES[parse_model(model)]


def resolve_event_rule(model: str | AttributionModel) -> str:
    parsed = parse_model(model)
    if parsed not in EVENT_RULES:
        raise UnknownAttributionModel(model, [x.value for x in EVENT_RULES])
    return EVENT_RULES[parsed]
