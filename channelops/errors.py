"""Errors raised by the channelops engine."""
from __future__ import annotations

from typing import Any


class ChannelOpsError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        self.context = dict(context or {})
        super().__init__(message)


class InvalidFilterShape(ChannelOpsError):
    """Raised when hierarchy filters do not match the channel classification."""


class UnknownAttributionModel(ChannelOpsError):
    """Raised for attribution model values outside the recognised set."""

    def __init__(self, model: object, allowed: list[str]):
        self.model = model
        self.allowed = allowed
        super().__init__(
            f"Unknown attribution model: {model!r}",
            {"attribution_model": model, "allowed": allowed},
        )


class ShopNotFound(ChannelOpsError):
    """Raised when no shop is linked to an account or shop name."""


class OrderNotFound(ChannelOpsError):
    """Raised when an order is missing or belongs to another shop."""

    def __init__(self, order_id: object, shop_name: str):
        self.order_id = order_id
        self.shop_name = shop_name
        super().__init__(
            f"Order {order_id} not found for shop={shop_name}",
            {"order_id": order_id, "shop_name": shop_name},
        )


class StorageError(ChannelOpsError):
    """Raised when the warehouse query fails. Never retried by the engine."""
