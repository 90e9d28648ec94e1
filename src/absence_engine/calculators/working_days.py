"""Working-day counting over calendar ranges."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import date, timedelta
from decimal import Decimal

from absence_engine.errors import InvalidRangeError

SATURDAY = 5
HALF = Decimal("0.5")


class WorkingDaysCalculator:
    """Counts working days between two dates, inclusive.

    Saturdays, Sundays and every supplied holiday are excluded. A half-day
    request counts half of the resulting day count, so fractional quota
    units are legal.
    """

    def __init__(self, holidays: Iterable[date] = ()):
        self.holidays = frozenset(holidays)

    def count(
        self,
        start: date,
        end: date,
        holidays: Iterable[date] | None = None,
        half_day: bool = False,
    ) -> Decimal:
        """Return the working-day count for ``start..end``.

        Raises:
            InvalidRangeError: If end is before start
        """
        excluded = self.holidays if holidays is None else frozenset(holidays)
        days = sum(1 for _ in iter_working_days(start, end, excluded))
        if half_day:
            return Decimal(days) * HALF
        return Decimal(days)


def iter_working_days(start: date, end: date, holidays: frozenset[date]) -> Iterator[date]:
    """Yield each non-weekend, non-holiday date in the inclusive range."""
    if end < start:
        raise InvalidRangeError(start, end)

    current = start
    while current <= end:
        if current.weekday() < SATURDAY and current not in holidays:
            yield current
        current += timedelta(days=1)


def count_working_days(
    start: date,
    end: date,
    holidays: Iterable[date] = (),
    half_day: bool = False,
) -> Decimal:
    """Functional form of ``WorkingDaysCalculator.count``."""
    return WorkingDaysCalculator(holidays).count(start, end, half_day=half_day)
