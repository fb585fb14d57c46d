"""
Injectable time source.

Services and selectors read the time from a ``Clock`` they were handed, never
from ``datetime.now()``.  That covers movement timestamps, transfer
completion, token and session expiry, and attendance check-in/out, so a
test can pin all of them to one instant and step forward explicitly.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Source of aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall-clock time.  The default when no clock is injected."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    A clock that only moves when told to.

    Repeated ``now()`` calls return the same instant.  ``tick()`` is the
    usual way to give consecutive stock movements distinct, ordered
    timestamps; ``advance()`` jumps across token lifetimes or shifts.
    """

    def __init__(self, start: datetime | None = None):
        if start is not None and start.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start")
        self._current = start or datetime(2024, 1, 1, 12, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: int | float | timedelta = 1) -> datetime:
        step = seconds if isinstance(seconds, timedelta) else timedelta(seconds=seconds)
        self._current += step
        return self._current

    def tick(self) -> datetime:
        return self.advance(1)
