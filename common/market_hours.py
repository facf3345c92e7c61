"""US equity session helpers (Eastern Time)."""
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from config.settings import EXCHANGE_TIMEZONE

EXCHANGE_TZ = ZoneInfo(EXCHANGE_TIMEZONE)

# Seconds between refresh cycles per session
REFRESH_INTERVALS = {
    "open":        30,
    "pre-market":  120,
    "after-hours": 120,
    "closed":      300,
}


def exchange_now(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(EXCHANGE_TZ)


def exchange_today(now: Optional[datetime] = None) -> str:
    """Exchange-local calendar date as YYYY-MM-DD."""
    return exchange_now(now).date().isoformat()


def get_market_status(now: Optional[datetime] = None) -> str:
    local = exchange_now(now)
    if local.weekday() >= 5:
        return "closed"
    minutes = local.hour * 60 + local.minute
    if 4 * 60 <= minutes < 9 * 60 + 30:
        return "pre-market"
    if 9 * 60 + 30 <= minutes < 16 * 60:
        return "open"
    if 16 * 60 <= minutes < 20 * 60:
        return "after-hours"
    return "closed"


def is_market_open(now: Optional[datetime] = None) -> bool:
    return get_market_status(now) == "open"


def refresh_interval(status: Optional[str] = None) -> int:
    return REFRESH_INTERVALS.get(status or get_market_status(), REFRESH_INTERVALS["closed"])
