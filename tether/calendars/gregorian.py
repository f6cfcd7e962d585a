import calendar
from datetime import date
from typing import Optional

from .base import CalendarConverter, CalendarDate, InvalidDate, GREGORIAN


class GregorianConverter(CalendarConverter):
    """Identity converter; still validates that the date exists."""

    name = GREGORIAN

    def to_gregorian(self, day: int, month: int, year: int) -> CalendarDate:
        return CalendarDate.from_date(_checked_date(year, month, day))

    def from_gregorian(self, gday: int, gmonth: int, gyear: int) -> CalendarDate:
        return CalendarDate.from_date(_checked_date(gyear, gmonth, gday))

    def foreign_year_of(self, value: date) -> int:
        return value.year

    def occurrence_in_year(self, day: int, month: int, year: int) -> Optional[date]:
        if not 1 <= month <= 12:
            return None
        last_day = calendar.monthrange(year, month)[1]
        return date(year, month, min(day, last_day))


def _checked_date(year: int, month: int, day: int) -> date:
    try:
        return date(year, month, day)
    except (TypeError, ValueError) as exc:
        raise InvalidDate(f"invalid gregorian date {year}-{month}-{day}: {exc}") from exc
