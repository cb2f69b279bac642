"""
Timezone-aware datetime helpers.
- Store and compute timestamps in UTC in the DB.
- API responses expose datetimes in IST (Asia/Kolkata, +05:30).
- Business dates ("today" for notice checks) are taken in the configured timezone.
"""
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from app.core.config import settings

UTC = timezone.utc
IST = ZoneInfo("Asia/Kolkata")


def now_utc() -> datetime:
    """Current time in UTC (timezone-aware). Use for created_at, last_updated, cancelled_at, etc."""
    return datetime.now(UTC)


def business_today() -> date:
    """Today's date in the business timezone (settings.TZ)."""
    return datetime.now(ZoneInfo(settings.TZ)).date()


def to_ist(dt: Optional[datetime]) -> Optional[datetime]:
    """Convert to Asia/Kolkata. Naive datetimes are treated as UTC before converting."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(IST)


def iso_ist(dt: Optional[datetime]) -> Optional[str]:
    """Serialize as ISO-8601 in IST with +05:30 offset. Use for all API response datetime fields."""
    if dt is None:
        return None
    return to_ist(dt).isoformat()
