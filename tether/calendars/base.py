from abc import ABC, abstractmethod
from datetime import date
from typing import NamedTuple, Optional


GREGORIAN = "gregorian"
LUNAR = "lunar"


class CalendarError(Exception):
    pass


class InvalidDate(CalendarError, ValueError):
    """The (day, month, year) triple does not exist in the named calendar."""


class CalendarUnsupported(CalendarError, LookupError):
    pass


class CalendarDate(NamedTuple):
    day: int
    month: int
    year: int

    def to_date(self) -> date:
        return date(self.year, self.month, self.day)

    @classmethod
    def from_date(cls, value: date) -> "CalendarDate":
        return cls(value.day, value.month, value.year)


class CalendarConverter(ABC):
    """Maps dates between one calendar system and Gregorian.

    Subclasses provide the conversions plus ``occurrence_in_year``, which
    places a recurring (day, month) anniversary inside a given year of their
    own calendar. ``next_occurrence`` is built on top of that.
    """

    name: str = ""

    @abstractmethod
    def to_gregorian(self, day: int, month: int, year: int) -> CalendarDate:
        """Convert a date in this calendar to Gregorian. Raises InvalidDate."""

    @abstractmethod
    def from_gregorian(self, gday: int, gmonth: int, gyear: int) -> CalendarDate:
        """Convert a Gregorian date to this calendar. Raises InvalidDate."""

    @abstractmethod
    def foreign_year_of(self, value: date) -> int:
        """Year number, in this calendar, that contains the Gregorian ``value``."""

    @abstractmethod
    def occurrence_in_year(self, day: int, month: int, year: int) -> Optional[date]:
        """Gregorian date of the (day, month) anniversary in ``year`` of this calendar.

        Days past the end of a short month are clamped to its last day.
        Returns None when the month does not exist in that year.
        """

    def next_occurrence(
        self,
        original_day: int,
        original_month: int,
        hint_year: Optional[int],
        after: date,
    ) -> CalendarDate:
        """First Gregorian occurrence of the anniversary strictly after ``after``.

        ``hint_year`` pins the anchor to a specific year of this calendar when
        that occurrence is still ahead; otherwise the year containing
        ``after`` and the one following it are searched.
        """
        if hint_year is not None:
            pinned = self.occurrence_in_year(original_day, original_month, hint_year)
            if pinned is not None and pinned > after:
                return CalendarDate.from_date(pinned)

        start = self.foreign_year_of(after)
        for year in (start, start + 1):
            candidate = self.occurrence_in_year(original_day, original_month, year)
            if candidate is not None and candidate > after:
                return CalendarDate.from_date(candidate)

        raise InvalidDate(
            f"no {self.name} occurrence of day={original_day} month={original_month} after {after.isoformat()}"
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"
