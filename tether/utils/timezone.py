import logging
from datetime import datetime, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tether.core.config import settings


logger = logging.getLogger(__name__)


def get_zoneinfo(tz_name: Optional[str] = None) -> ZoneInfo:
    """Return the server-local zone, falling back to UTC when the name is unknown."""
    name = tz_name or settings.DEFAULT_TIMEZONE or "UTC"
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("⚠️ [Timezone] Unknown zone %r, using UTC", name)
        return ZoneInfo("UTC")


def now_utc() -> datetime:
    return datetime.now(dt_timezone.utc)


def now_local(tz: Optional[ZoneInfo] = None) -> datetime:
    return datetime.now(tz or get_zoneinfo())


def to_utc_aware(dt: datetime | None) -> datetime | None:
    """
    Normalize any datetime to UTC-aware (tzinfo=UTC).
    - Aware datetimes are converted to UTC
    - Naive datetimes are assumed UTC and tz attached
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_timezone.utc)
    return dt.astimezone(dt_timezone.utc)


def truncate_to_minute(dt: datetime) -> datetime:
    return dt.replace(second=0, microsecond=0)
