"""
Injectable time source.

Services stamp documents, journal entries and movements from a ``Clock``
passed to their constructor, never from ``datetime.now()``.  Numbers such as
``JE-20240228-0001`` embed dates, so pinning the clock in tests pins them too.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Anything with ``now()`` (aware UTC) and ``today()`` (its UTC date)."""

    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class DeterministicClock:
    """
    Frozen clock for tests.

    Time only moves when ``advance()`` or ``set_time()`` is called.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        if self._current.tzinfo is None:
            raise ValueError("DeterministicClock needs a timezone-aware start time")

    def now(self) -> datetime:
        return self._current

    def today(self) -> date:
        return self._current.astimezone(timezone.utc).date()

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, delta: timedelta | int = 1) -> datetime:
        """Move forward by ``delta`` (seconds when an int) and return the new time."""
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        self._current += delta
        return self._current
