"""Filter assembly for attribution requests.

A ``FilterSet`` is an ordered tuple of predicates bound to one source. The same
set renders to a parameterised SQL ``WHERE`` clause for the warehouse and
evaluates against plain row dicts, which the event-based path needs once
credit has been assigned in Python.
"""
from __future__ import annotations

import logging
import operator
from dataclasses import dataclass, replace
from typing import Any

from channelops.config import ChannelConfig
from channelops.errors import InvalidFilterShape
from channelops.tools.channels import ChannelClass, classify, normalize_channel
from channelops.tools.routing import EVENT_SOURCE, resolve_event_rule, resolve_source
from channelops.util import end_exclusive, to_bool, to_int


logger = logging.getLogger(__name__)

SPEND_SOURCE = "int_ad_spend"

HIERARCHY_KINDS = ("ad_campaign_pk", "ad_set_pk", "ad_pk")

# Predicate kinds that survive re-targeting onto the spend source.
SPEND_KINDS = ("shop", "date_from", "date_to", "channel", *HIERARCHY_KINDS)

_SPEND_COLUMNS = {"shop": "shop_name", "date_from": "date_time", "date_to": "date_time"}

_OPS = {"=": operator.eq, ">=": operator.ge, "<": operator.lt}


@dataclass(frozen=True)
class Predicate:
    kind: str
    column: str
    op: str
    value: Any

    def to_sql(self, param: str) -> str:
        if self.kind == "channel":
            return f"LOWER(TRIM({self.column})) {self.op} :{param}"
        return f"{self.column} {self.op} :{param}"

    def matches(self, row: dict[str, Any]) -> bool:
        actual = row.get(self.column)
        if actual is None:
            return False
        if self.kind == "channel":
            actual = normalize_channel(str(actual))
        elif self.kind == "first_time_customer":
            actual = int(to_bool(actual))
        elif isinstance(self.value, int):
            actual = to_int(actual)
        else:
            actual = str(actual)
        return _OPS[self.op](actual, self.value)


@dataclass(frozen=True)
class FilterSet:
    source: str
    predicates: tuple[Predicate, ...]
    channel: ChannelClass | None = None

    @property
    def kinds(self) -> tuple[str, ...]:
        return tuple(p.kind for p in self.predicates)

    def has(self, kind: str) -> bool:
        return kind in self.kinds

    def get(self, kind: str) -> Any:
        for p in self.predicates:
            if p.kind == kind:
                return p.value
        return None

    def only(self, *kinds: str) -> FilterSet:
        return replace(self, predicates=tuple(p for p in self.predicates if p.kind in kinds))

    def to_sql(self) -> tuple[str, dict[str, Any]]:
        clauses = []
        params: dict[str, Any] = {}
        for i, p in enumerate(self.predicates):
            name = f"f{i}"
            clauses.append(p.to_sql(name))
            params[name] = p.value
        return " AND ".join(clauses) or "1 = 1", params

    def matches(self, row: dict[str, Any]) -> bool:
        return all(p.matches(row) for p in self.predicates)

    def for_spend(self) -> FilterSet:
        preds = tuple(
            replace(p, column=_SPEND_COLUMNS.get(p.kind, p.column))
            for p in self.predicates
            if p.kind in SPEND_KINDS
        )
        return FilterSet(source=SPEND_SOURCE, predicates=preds, channel=self.channel)


def _request_context(request) -> dict[str, Any]:
    return request.model_dump(mode="json")


def _resolve(request) -> str:
    if request.attribution_basis == "event":
        resolve_event_rule(request.attribution_model)
        return EVENT_SOURCE
    return resolve_source(request.attribution_model)


def time_column(basis: str) -> str:
    """Timestamp a basis filters and buckets on: touchpoint time for events, order time otherwise."""
    return "event_timestamp" if basis == "event" else "order_timestamp"


def _scope_predicates(request, shop_name: str) -> list[Predicate]:
    column = time_column(request.attribution_basis)
    preds = [
        Predicate("shop", "shopify_shop", "=", shop_name),
        Predicate("date_from", column, ">=", request.start_date.isoformat()),
        Predicate("date_to", column, "<", end_exclusive(request.end_date).isoformat()),
    ]
    if request.attribution_basis == "order":
        preds.append(Predicate("attribution_window", "attribution_window", "=", request.attribution_window))
    return preds


def _check_shape(request, cls: ChannelClass) -> None:
    campaign = getattr(request, "campaign", None)
    pks = [k for k in HIERARCHY_KINDS if getattr(request, k, None) is not None]
    if cls.is_ad_spend and campaign is not None:
        logger.warning("Rejected campaign filter for ad-spend channel=%s", cls.channel)
        raise InvalidFilterShape(
            f"campaign filter is not supported for ad-spend channel {cls.channel!r}; use ad hierarchy keys",
            _request_context(request),
        )
    if not cls.is_ad_spend and pks:
        logger.warning("Rejected %s for non-ad-spend channel=%s", ",".join(pks), cls.channel)
        raise InvalidFilterShape(
            f"{', '.join(pks)} not supported for non-ad-spend channel {cls.channel!r}; use campaign",
            _request_context(request),
        )


def build_scope_filters(request, shop_name: str) -> FilterSet:
    """Shop, date range and (order-based only) window predicates, for all-channel requests."""
    source = _resolve(request)
    return FilterSet(source=source, predicates=tuple(_scope_predicates(request, shop_name)))


def build_filters(request, shop_name: str, config: ChannelConfig | None = None) -> FilterSet:
    source = _resolve(request)
    cls = classify(request.channel, config)
    _check_shape(request, cls)

    preds = _scope_predicates(request, shop_name)
    preds.append(Predicate("channel", "channel", "=", cls.channel))
    for kind in HIERARCHY_KINDS:
        value = getattr(request, kind, None)
        if value is not None:
            preds.append(Predicate(kind, kind, "=", int(value)))
    campaign = getattr(request, "campaign", None)
    if campaign is not None:
        preds.append(Predicate("campaign", "campaign", "=", campaign))
    # Only an explicit True narrows; False and None both mean "all customers".
    if getattr(request, "first_time_customers_only", None) is True:
        preds.append(Predicate("first_time_customer", "is_first_customer_order", "=", 1))
    return FilterSet(source=source, predicates=tuple(preds), channel=cls)
