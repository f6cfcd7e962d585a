"""
Schedule math for reminders: the first fire time after authoring and the next
fire time after a delivery. All results are UTC-aware datetimes; the
"09:00 local" fire time is resolved against the server zone.
"""
import calendar
import logging
from datetime import date, datetime, time, timedelta, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from tether.calendars import CalendarRegistry, InvalidDate, get_registry
from tether.utils.timezone import get_zoneinfo, to_utc_aware
from .config import settings
from .models import Reminder


logger = logging.getLogger(__name__)


def fire_at(day: date, tz: Optional[ZoneInfo] = None) -> datetime:
    """UTC instant of the configured fire time (09:00 by default) on ``day`` in the server zone."""
    tz = tz or get_zoneinfo()
    local = datetime.combine(day, time(settings.FIRE_HOUR, settings.FIRE_MINUTE), tzinfo=tz)
    return local.astimezone(dt_timezone.utc)


def clamped_date(year: int, month: int, day: int) -> date:
    """``date(year, month, day)`` with the day pulled back to the month's last day."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(max(day, 1), last_day))


def _foreign_occurrence(
    reminder: Reminder,
    after: date,
    hint_year: Optional[int],
    calendars: CalendarRegistry,
) -> Optional[date]:
    converter = calendars.lookup(reminder.calendar_type)
    if converter is None:
        logger.warning(
            f"⚠️ [Calendar] Unknown calendar {reminder.calendar_type!r} on reminder {reminder.id}, using gregorian"
        )
        return None
    try:
        occurrence = converter.next_occurrence(reminder.original_day, reminder.original_month, hint_year, after)
    except InvalidDate as exc:
        logger.warning(f"⚠️ [Calendar] No next occurrence for reminder {reminder.id}: {exc}")
        return None
    return occurrence.to_date()


def initial_schedule(
    reminder: Reminder,
    now: datetime,
    tz: Optional[ZoneInfo] = None,
    calendars: Optional[CalendarRegistry] = None,
) -> datetime:
    tz = tz or get_zoneinfo()
    calendars = calendars or get_registry()
    now = to_utc_aware(now)
    today = now.astimezone(tz).date()

    if not reminder.is_gregorian and reminder.has_original_date:
        occurrence = _foreign_occurrence(reminder, today - timedelta(days=1), reminder.original_year, calendars)
        if occurrence is not None:
            return fire_at(occurrence, tz)

    year = reminder.year or today.year
    month = reminder.month or 1
    day = reminder.day or 1
    scheduled = fire_at(clamped_date(year, month, day), tz)
    if reminder.year is None and scheduled < now:
        scheduled = fire_at(clamped_date(year + 1, month, day), tz)
    return scheduled


def next_schedule(
    reminder: Reminder,
    now: datetime,
    tz: Optional[ZoneInfo] = None,
    calendars: Optional[CalendarRegistry] = None,
) -> Optional[datetime]:
    """Next fire time after a delivery at ``now``; None for one-time reminders."""
    tz = tz or get_zoneinfo()
    calendars = calendars or get_registry()
    now = to_utc_aware(now)
    step = max(reminder.frequency_number or 1, 1)

    if reminder.type == "one_time":
        return None
    if reminder.type == "recurring_week":
        return now + timedelta(weeks=step)
    if reminder.type == "recurring_month":
        return now + relativedelta(months=step)
    if reminder.type == "recurring_year":
        if not reminder.is_gregorian and reminder.has_original_date:
            occurrence = _foreign_occurrence(reminder, now.astimezone(tz).date(), None, calendars)
            if occurrence is not None:
                return fire_at(occurrence, tz)
        return now + relativedelta(years=step)

    logger.warning(f"⚠️ [Reminders] Unknown reminder type {reminder.type!r} on reminder {reminder.id}")
    return None
