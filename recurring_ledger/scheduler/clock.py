"""
Clocks

The scheduler never reads the wall clock directly. It asks a Clock, so
tests can pin "now" and step it forward without waiting on real time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, time, timedelta
from typing import Optional


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        pass


class SystemClock(Clock):
    """Local wall-clock time."""

    def now(self) -> datetime:
        return datetime.now()


class ManualClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, start: datetime):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now


def start_of_next_day(now: datetime) -> datetime:
    """Midnight at the start of the calendar day after `now`."""
    return datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=now.tzinfo)


def next_daily_run(now: datetime, hour: int, minute: int) -> datetime:
    """The first moment strictly after `now` that falls on hour:minute."""
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def seconds_until(target: datetime, now: Optional[datetime] = None) -> float:
    now = now or datetime.now()
    return max(0.0, (target - now).total_seconds())
