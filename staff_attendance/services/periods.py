from __future__ import annotations

from calendar import monthrange
from datetime import date, datetime, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from staff_attendance.settings import get_settings

DEFAULT_ATTENDANCE_TIMEZONE = "Asia/Kolkata"


def normalize_ts(ts_utc: datetime | None) -> datetime:
    if ts_utc is None:
        return datetime.now(timezone.utc)

    if ts_utc.tzinfo is None:
        return ts_utc.replace(tzinfo=timezone.utc)

    return ts_utc.astimezone(timezone.utc)


@lru_cache
def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or DEFAULT_ATTENDANCE_TIMEZONE
    try:
        return ZoneInfo(raw_name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_ATTENDANCE_TIMEZONE)


def local_day(ts_utc: datetime | None) -> date:
    return normalize_ts(ts_utc).astimezone(attendance_timezone()).date()


def parse_month(value: str) -> tuple[int, int]:
    """Parse a ``YYYY-MM`` string into ``(year, month)``."""
    raw = (value or "").strip()
    parts = raw.split("-")
    if len(parts) != 2 or len(parts[0]) != 4 or not all(part.isdigit() for part in parts):
        raise ValueError(f"month must be formatted as YYYY-MM, got {value!r}")
    year, month = int(parts[0]), int(parts[1])
    if not 1 <= month <= 12:
        raise ValueError(f"month out of range: {value!r}")
    return year, month


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, monthrange(year, month)[1])
