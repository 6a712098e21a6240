from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fieldforce.settings import get_settings

logger = logging.getLogger("fieldforce.timekeeping")

FALLBACK_TIMEZONE = "UTC"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_ts(ts: datetime | None) -> datetime:
    """Return ``ts`` as an aware UTC datetime; naive values are read as UTC."""
    if ts is None:
        return utcnow()

    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)

    return ts.astimezone(timezone.utc)


@lru_cache
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def resolve_timezone(name: str | None = None) -> ZoneInfo:
    for candidate in (name, get_settings().attendance_timezone):
        raw_name = (candidate or "").strip()
        if not raw_name:
            continue
        try:
            return _zone(raw_name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("unknown_timezone", extra={"timezone": raw_name})
    return _zone(FALLBACK_TIMEZONE)


def local_day(ts: datetime, tz_name: str | None = None) -> date:
    return normalize_ts(ts).astimezone(resolve_timezone(tz_name)).date()


def local_day_bounds_utc(day: date, tz_name: str | None = None) -> tuple[datetime, datetime]:
    tz = resolve_timezone(tz_name)
    local_start = datetime.combine(day, time.min, tzinfo=tz)
    local_end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return local_start.astimezone(timezone.utc), local_end.astimezone(timezone.utc)
