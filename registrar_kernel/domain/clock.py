"""
Injectable time source for record timestamps.

The store stamps ``created_at``/``updated_at`` and the engine stamps each
actor-history ``at`` from the Clock it was constructed with; nothing in
the kernel reads the wall clock directly.  Every value is timezone-aware
UTC, which is what ``UTCDateTime`` columns store.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# Start of the 2025/2026 first semester; the default for test clocks.
SEMESTER_START = datetime(2025, 9, 1, 8, 0, tzinfo=timezone.utc)


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Clock that only moves when told to.

    Repeated ``now()`` calls return the same instant, so a test can predict
    exactly which timestamp a transition will carry.
    """

    def __init__(self, start: datetime | None = None):
        start = start or SEMESTER_START
        if start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start time")
        self._current = start.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware time")
        self._current = moment.astimezone(timezone.utc)

    def advance(self, seconds: float = 1) -> datetime:
        """Move forward by ``seconds`` and return the new time."""
        if seconds < 0:
            raise ValueError("a clock cannot run backwards")
        self._current += timedelta(seconds=seconds)
        return self._current

    def tick(self) -> datetime:
        return self.advance(1)
