"""
Recurrence Calculator

Maps (anchor, interval) to the next occurrence. Pure: no I/O, no clock,
no state. A re-run sweep relies on getting the same answer twice.

Month and year steps clamp to the end of the target month
(Jan 31 -> Feb 29 in a leap year, Feb 29 -> Feb 28 the year after).
relativedelta does exactly this, so we don't hand-roll it.
"""

from datetime import date
from typing import TypeVar

from dateutil.relativedelta import relativedelta

from recurring_ledger.models.transaction import IntervalUnit


D = TypeVar("D", bound=date)

_STEPS = {
    IntervalUnit.DAILY: relativedelta(days=1),
    IntervalUnit.WEEKLY: relativedelta(days=7),
    IntervalUnit.MONTHLY: relativedelta(months=1),
    IntervalUnit.YEARLY: relativedelta(years=1),
}


class InvalidIntervalError(ValueError):
    """The interval is not one the calculator knows."""

    def __init__(self, interval: object):
        self.interval = interval
        super().__init__(f"Unknown recurrence interval: {interval!r}")


def parse_interval(interval: object) -> IntervalUnit:
    """
    Coerce an enum member or its string value to an IntervalUnit.

    Raises:
        InvalidIntervalError: For anything else
    """
    if isinstance(interval, IntervalUnit):
        return interval
    try:
        return IntervalUnit(interval)
    except (ValueError, TypeError):
        raise InvalidIntervalError(interval) from None


def next_occurrence(anchor: D, interval: object) -> D:
    """
    Return the occurrence one interval after `anchor`.

    Works on dates and datetimes; a datetime keeps its time of day.

    Raises:
        InvalidIntervalError: If the interval is unknown
    """
    return anchor + _STEPS[parse_interval(interval)]


def preview_occurrences(anchor: D, interval: object, count: int = 5) -> list[D]:
    """
    Return the next `count` occurrences after `anchor`, each derived from
    the one before it (the same chain a template follows sweep by sweep).
    """
    if count < 0:
        raise ValueError("count must not be negative")
    step = parse_interval(interval)
    dates = []
    current = anchor
    for _ in range(count):
        current = next_occurrence(current, step)
        dates.append(current)
    return dates
