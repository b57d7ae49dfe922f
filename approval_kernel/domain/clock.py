"""
Clock -- injectable time source.

Request creation, decision timestamps, escalation deadlines and retention
cutoffs all read time from a ``Clock`` handed to the service that needs
it.  Nothing below the CLI calls ``datetime.now()`` itself.

``DeterministicClock`` is the test clock: it stands still until moved.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# Monday, so weekend adjustments are easy to reason about in tests.
DEFAULT_TEST_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware "now"."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    Guarantees:
        - ``now()`` is stable between calls to ``advance*`` / ``set_time``.
        - Offsets accumulate exactly (stored as a ``timedelta``).
    """

    def __init__(self, start: datetime | None = None):
        if start is not None and start.tzinfo is None:
            raise ValueError(f"DeterministicClock needs an aware datetime, got {start!r}")
        self._start = start or DEFAULT_TEST_TIME
        self._offset = timedelta(0)

    def now(self) -> datetime:
        return self._start + self._offset

    def set_time(self, moment: datetime) -> None:
        self._start = moment
        self._offset = timedelta(0)

    def advance(self, seconds: float = 1) -> None:
        self._offset += timedelta(seconds=seconds)

    def advance_hours(self, hours: float) -> None:
        self._offset += timedelta(hours=hours)

    def advance_days(self, days: float) -> None:
        self._offset += timedelta(days=days)
