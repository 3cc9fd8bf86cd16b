from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


UTC = timezone.utc


def parse_iso_ts(value: str | datetime) -> datetime:
    # Accepts 2024-01-23T02:41:28Z, 2024-01-23 02:41:28 and offset forms; naive means UTC.
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value).strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def iso_ts(dt: datetime) -> str:
    return dt.astimezone(UTC).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")


def end_exclusive(d: date) -> date:
    """Upper bound for a half-open range covering the whole of day ``d``."""
    return d + timedelta(days=1)


def shop_zone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def local_datetime(value: Any, zone: ZoneInfo) -> datetime:
    """Naive wall-clock time in ``zone``. Date-only values are already local days."""
    s = str(value).strip()
    if len(s) == 10:
        return datetime.combine(date.fromisoformat(s), datetime.min.time())
    return parse_iso_ts(s).astimezone(zone).replace(tzinfo=None)


def to_int(value: Any, default: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    s = str(value).strip()
    if s == "":
        return default
    try:
        return int(float(s))
    except ValueError:
        return default


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value)
    s = str(value).strip()
    if s == "":
        return default
    try:
        return float(s)
    except ValueError:
        return default


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "t", "yes")
    return bool(value)


def ratio(n: float, d: float) -> float:
    """Division that yields 0.0 for a zero denominator."""
    if not d:
        return 0.0
    return n / d


def round_money(value: float | None) -> float | None:
    if value is None:
        return None
    return float(f"{value:.2f}")
