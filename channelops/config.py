from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


DEFAULT_AD_SPEND_CHANNELS = ("meta-ads", "google-ads", "taboola", "tiktok-ads")
DEFAULT_MANAGED_CHANNELS = ("meta-ads", "google-ads")


@dataclass(frozen=True)
class ChannelConfig:
    """Channel membership sets. Managed channels must be ad-spend channels."""

    ad_spend: frozenset[str]
    managed: frozenset[str]

    def __post_init__(self) -> None:
        object.__setattr__(self, "ad_spend", frozenset(c.strip().lower() for c in self.ad_spend if c.strip()))
        object.__setattr__(self, "managed", frozenset(c.strip().lower() for c in self.managed if c.strip()))
        stray = self.managed - self.ad_spend
        if stray:
            raise ValueError(f"managed channels must also be ad-spend channels: {sorted(stray)}")


def load_settings(env_file: str | None = None) -> None:
    # Existing environment variables win over .env values.
    load_dotenv(env_file or Path.cwd() / ".env", override=False)


def default_db_path() -> str:
    return os.environ.get("CHANNELOPS_DB_PATH", str(Path("data/dummy/channelops_demo.sqlite")))


def _split_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.environ.get(name, "")
    if not raw.strip():
        return default
    return tuple(p.strip() for p in raw.split(",") if p.strip())


def channel_config() -> ChannelConfig:
    return ChannelConfig(
        ad_spend=frozenset(_split_env("CHANNELOPS_AD_SPEND_CHANNELS", DEFAULT_AD_SPEND_CHANNELS)),
        managed=frozenset(_split_env("CHANNELOPS_MANAGED_CHANNELS", DEFAULT_MANAGED_CHANNELS)),
    )


def configure_logging(level: str | None = None) -> None:
    level_name = (level or os.environ.get("CHANNELOPS_LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
