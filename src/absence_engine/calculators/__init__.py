"""Absence day calculators."""

from absence_engine.calculators.working_days import (
    WorkingDaysCalculator,
    count_working_days,
    iter_working_days,
)

__all__ = [
    "WorkingDaysCalculator",
    "count_working_days",
    "iter_working_days",
]
