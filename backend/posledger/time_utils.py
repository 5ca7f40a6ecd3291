from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def get_zone(name: str | None) -> tzinfo:
    """Resolve a configured zone name; empty or "UTC" means UTC."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def to_utc_naive(dt: datetime) -> datetime:
    """Aware datetime -> canonical UTC-naive. Naive input is returned as-is."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def utc_to_local(dt: datetime, zone: tzinfo) -> datetime:
    """Canonical UTC-naive datetime -> aware datetime in ``zone``."""
    return dt.replace(tzinfo=timezone.utc).astimezone(zone)
