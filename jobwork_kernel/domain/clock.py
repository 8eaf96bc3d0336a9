"""
Clock -- injectable source of "now" for voucher writes.

Event timestamps, completion markers, payment dates and the financial year
a new voucher number is drawn from all come from a Clock passed to the
services.  Nothing under jobwork_* reads the system time directly.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """Current time, always timezone-aware."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        """Business date of ``now()``; decides the voucher's financial year."""
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at ``start`` until moved with ``advance``.

    Used by tests to space voucher events apart and to step across a
    financial-year boundary (1 April) without waiting for it.
    """

    def __init__(self, start: datetime):
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float = 1) -> datetime:
        """Move forward by ``seconds`` and return the new time."""
        self._now += timedelta(seconds=seconds)
        return self._now
