"""Validated request parameter objects.

Shape problems that can be seen from the request alone are rejected here with
``pydantic.ValidationError``. Problems that need the channel classification or
the model router (filter shape, unknown model) are raised by the engine.
"""
from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator, model_validator


AttributionWindow = Literal["1_day", "7_day", "14_day", "28_day", "90_day", "lifetime"]
AttributionBasis = Literal["order", "event"]
CohortType = Literal["week", "month", "quarter", "year"]
TimeBucket = Literal["auto", "hour", "day"]

DEFAULT_MAX_PERIODS: dict[str, int] = {"week": 52, "month": 12, "quarter": 4, "year": 2}


class _Request(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ChannelPerformanceRequest(_Request):
    """All-channel performance for an account over an inclusive date range."""

    account_id: str = Field(min_length=1)
    start_date: date
    end_date: date
    attribution_model: str = Field(min_length=1)
    attribution_basis: AttributionBasis = "order"
    attribution_window: Optional[AttributionWindow] = None

    @model_validator(mode="after")
    def check_scope(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        if self.attribution_basis == "order" and self.attribution_window is None:
            raise ValueError("attribution_window is required for order-based attribution")
        return self


class AttributionRequest(ChannelPerformanceRequest):
    """Single-channel request with optional hierarchy and customer filters."""

    channel: str = Field(min_length=1)
    campaign: Optional[str] = Field(default=None, min_length=1)
    ad_campaign_pk: Optional[PositiveInt] = None
    ad_set_pk: Optional[PositiveInt] = None
    ad_pk: Optional[PositiveInt] = None
    first_time_customers_only: Optional[bool] = None


class TimeseriesRequest(ChannelPerformanceRequest):
    channel: Optional[str] = Field(default=None, min_length=1)
    ad_campaign_pk: Optional[PositiveInt] = None
    ad_set_pk: Optional[PositiveInt] = None
    ad_pk: Optional[PositiveInt] = None
    bucket: TimeBucket = "auto"

    @model_validator(mode="after")
    def check_channel(self):
        has_pk = any(v is not None for v in (self.ad_campaign_pk, self.ad_set_pk, self.ad_pk))
        if has_pk and self.channel is None:
            raise ValueError("ad hierarchy filters require a channel")
        return self


class CohortRequest(_Request):
    shop_name: str = Field(min_length=1)
    cohort_type: CohortType
    start_date: date
    end_date: Optional[date] = None
    max_periods: Optional[PositiveInt] = None
    filter_product_id: Optional[PositiveInt] = None
    filter_variant_id: Optional[PositiveInt] = None

    @model_validator(mode="after")
    def check_range(self):
        if self.end_date is not None and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self

    @property
    def effective_end_date(self) -> date:
        return self.end_date or date.today()

    @property
    def effective_max_periods(self) -> int:
        return self.max_periods or DEFAULT_MAX_PERIODS[self.cohort_type]


class TimelineRequest(_Request):
    order_id: str = Field(min_length=1)
    shop_name: str = Field(min_length=1)

    @field_validator("order_id", mode="before")
    @classmethod
    def order_id_as_text(cls, v):
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class DashboardRequest(_Request):
    """Shop-level totals for an account; a single day is reported hourly."""

    account_id: str = Field(min_length=1)
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_range(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class ProductsRequest(_Request):
    shop_name: str = Field(min_length=1)
