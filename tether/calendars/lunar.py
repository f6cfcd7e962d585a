import logging
from datetime import date
from typing import Optional

from lunar_python import Lunar, LunarMonth, LunarYear, Solar

from .base import CalendarConverter, CalendarDate, InvalidDate, LUNAR


logger = logging.getLogger(__name__)


class LunarConverter(CalendarConverter):
    """Chinese lunisolar calendar backed by lunar_python.

    Leap months are written as negative month numbers (-4 is the leap month
    following month 4), matching lunar_python's own convention.
    """

    name = LUNAR

    def to_gregorian(self, day: int, month: int, year: int) -> CalendarDate:
        if not 1 <= day <= 30 or month == 0 or not -12 <= month <= 12:
            raise InvalidDate(f"invalid lunar date {year}-{month}-{day}")
        try:
            solar = Lunar.fromYmd(year, month, day).getSolar()
        except Exception as exc:  # lunar_python raises bare Exception
            raise InvalidDate(f"invalid lunar date {year}-{month}-{day}: {exc}") from exc
        return CalendarDate(solar.getDay(), solar.getMonth(), solar.getYear())

    def from_gregorian(self, gday: int, gmonth: int, gyear: int) -> CalendarDate:
        lunar = self._lunar_of(gyear, gmonth, gday)
        return CalendarDate(lunar.getDay(), lunar.getMonth(), lunar.getYear())

    def foreign_year_of(self, value: date) -> int:
        return self._lunar_of(value.year, value.month, value.day).getYear()

    def occurrence_in_year(self, day: int, month: int, year: int) -> Optional[date]:
        if month == 0 or not -12 <= month <= 12 or day < 1:
            return None
        resolved = month
        if month < 0 and LunarYear.fromYear(year).getLeapMonth() != abs(month):
            # No such leap month this year; the anniversary falls in the regular month.
            resolved = abs(month)
        lunar_month = LunarMonth.fromYm(year, resolved)
        if lunar_month is None:
            logger.debug("[Calendar] lunar month %s missing in year %s", resolved, year)
            return None
        clamped = min(day, lunar_month.getDayCount())
        try:
            solar = Lunar.fromYmd(year, resolved, clamped).getSolar()
        except Exception as exc:  # lunar_python raises bare Exception
            raise InvalidDate(f"invalid lunar date {year}-{resolved}-{clamped}: {exc}") from exc
        return date(solar.getYear(), solar.getMonth(), solar.getDay())

    @staticmethod
    def _lunar_of(gyear: int, gmonth: int, gday: int):
        try:
            return Solar.fromYmd(gyear, gmonth, gday).getLunar()
        except Exception as exc:  # lunar_python raises bare Exception
            raise InvalidDate(f"invalid gregorian date {gyear}-{gmonth}-{gday}: {exc}") from exc
