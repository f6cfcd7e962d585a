"""Calendar systems used by reminder recurrence (Gregorian plus lunar)."""

from .base import (
    GREGORIAN,
    LUNAR,
    CalendarConverter,
    CalendarDate,
    CalendarError,
    CalendarUnsupported,
    InvalidDate,
)
from .gregorian import GregorianConverter
from .lunar import LunarConverter
from .registry import CalendarRegistry


_default_registry = CalendarRegistry([LunarConverter()])


def get_registry() -> CalendarRegistry:
    """Process-wide registry populated at import time."""
    return _default_registry


__all__ = [
    "GREGORIAN",
    "LUNAR",
    "CalendarConverter",
    "CalendarDate",
    "CalendarError",
    "CalendarUnsupported",
    "InvalidDate",
    "GregorianConverter",
    "LunarConverter",
    "CalendarRegistry",
    "get_registry",
]
