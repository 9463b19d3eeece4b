# src/todo_lifecycle/tasks/recurrence.py

"""
Next-occurrence calculation for recurring tasks.

Pure calendar arithmetic on wall-clock fields: the tzinfo of the reference is
kept as-is and the hour/minute/second never change. Month and year steps clamp
backward to the last valid day of the target month (Jan 31 -> Feb 28/29,
Feb 29 -> Feb 28 in a non-leap year); they never spill into the next month.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta

from ..errors import InvalidPattern
from .task_models import Recurrence


def _clamped(dt: datetime, year: int, month: int) -> datetime:
    last_day = calendar.monthrange(year, month)[1]
    return dt.replace(year=year, month=month, day=min(dt.day, last_day))


def next_due_date(reference: datetime, pattern: Recurrence | str) -> datetime:
    """
    Return the next occurrence after `reference` for `pattern`.

    Raises InvalidPattern for `none` or anything outside the four patterns.
    """
    try:
        rec = Recurrence(pattern)
    except ValueError:
        raise InvalidPattern(pattern) from None

    if rec == Recurrence.DAILY:
        return reference + timedelta(days=1)

    if rec == Recurrence.WEEKLY:
        return reference + timedelta(days=7)

    if rec == Recurrence.MONTHLY:
        if reference.month == 12:
            return _clamped(reference, reference.year + 1, 1)
        return _clamped(reference, reference.year, reference.month + 1)

    if rec == Recurrence.YEARLY:
        return _clamped(reference, reference.year + 1, reference.month)

    raise InvalidPattern(pattern)
