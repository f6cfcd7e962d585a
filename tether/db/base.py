from datetime import datetime, timezone as dt_timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator


Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Timestamp column that always stores and returns UTC-aware datetimes.

    PostgreSQL keeps the offset in ``timestamptz``; SQLite drops it, so values
    are normalized to UTC on the way in and tagged as UTC on the way out.
    Naive inputs are assumed to already be UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=dt_timezone.utc)
        value = value.astimezone(dt_timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=dt_timezone.utc)
        return value.astimezone(dt_timezone.utc)


def utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)
