from __future__ import annotations

from dataclasses import dataclass

from channelops.config import ChannelConfig, channel_config


@dataclass(frozen=True)
class ChannelClass:
    channel: str
    is_ad_spend: bool
    is_managed: bool


def normalize_channel(channel: str) -> str:
    return (channel or "").strip().lower()


def classify(channel: str, config: ChannelConfig | None = None) -> ChannelClass:
    # Total: unknown channels are non-ad-spend and unmanaged.
    cfg = config or channel_config()
    c = normalize_channel(channel)
    return ChannelClass(
        channel=c,
        is_ad_spend=c in cfg.ad_spend,
        is_managed=c in cfg.managed,
    )


def is_ad_spend_channel(channel: str, config: ChannelConfig | None = None) -> bool:
    return classify(channel, config).is_ad_spend


def is_managed_channel(channel: str, config: ChannelConfig | None = None) -> bool:
    return classify(channel, config).is_managed
