from types import MappingProxyType
from typing import Iterable, List, Optional

from .base import CalendarConverter, CalendarUnsupported, GREGORIAN
from .gregorian import GregorianConverter


class CalendarRegistry:
    """Immutable table of calendar converters keyed by lowercase name.

    Gregorian is always present. Build a new registry to add converters;
    instances are never mutated after construction.
    """

    def __init__(self, converters: Iterable[CalendarConverter] = ()):
        table = {GREGORIAN: GregorianConverter()}
        for converter in converters:
            key = (converter.name or "").strip().lower()
            if not key:
                raise ValueError(f"calendar converter {converter!r} has no name")
            table[key] = converter
        self._converters = MappingProxyType(table)

    def lookup(self, name: Optional[str]) -> Optional[CalendarConverter]:
        if not name:
            return None
        return self._converters.get(name.strip().lower())

    def get(self, name: Optional[str]) -> CalendarConverter:
        converter = self.lookup(name)
        if converter is None:
            raise CalendarUnsupported(f"unsupported calendar type: {name!r}")
        return converter

    def is_supported(self, name: Optional[str]) -> bool:
        return self.lookup(name) is not None

    def supported_types(self) -> List[str]:
        return sorted(self._converters)

    @property
    def gregorian(self) -> CalendarConverter:
        return self._converters[GREGORIAN]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.is_supported(name)
