"""
Holiday calendars.

The holiday table is an external input.  The engine only asks one
question of it: is this calendar date a holiday?
"""

from __future__ import annotations

from datetime import date
from typing import Iterable, Protocol


class HolidayCalendar(Protocol):
    """Pluggable interface for holiday lookups."""

    def is_holiday(self, day: date) -> bool:
        ...


class StaticHolidayCalendar:
    """Holiday calendar backed by a fixed set of dates."""

    def __init__(self, holidays: Iterable[date] = ()):
        self._holidays = frozenset(holidays)

    def is_holiday(self, day: date) -> bool:
        return day in self._holidays

    @property
    def holidays(self) -> frozenset[date]:
        return self._holidays

    def __repr__(self) -> str:
        return f"<StaticHolidayCalendar {len(self._holidays)} holiday(s)>"


NO_HOLIDAYS = StaticHolidayCalendar()
