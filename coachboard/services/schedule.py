from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, List, Optional

from ..errors import InvalidInput

# 0=Sunday .. 6=Saturday, matching the calendar UI
WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


def sunday_based_weekday(day: date) -> int:
    """date.weekday() counts from Monday; the schedule counts from Sunday."""
    return day.isoweekday() % 7


def weekday_name(weekday: int) -> str:
    return WEEKDAY_NAMES[weekday]


def validate_pattern(weekdays: Iterable[int], weeks: int, max_weeks: Optional[int] = None) -> List[int]:
    days = sorted(set(weekdays))
    if not days:
        raise InvalidInput("At least one weekday is required")
    bad = [d for d in days if d < 0 or d > 6]
    if bad:
        raise InvalidInput(f"Weekdays must be between 0 (Sunday) and 6 (Saturday), got {bad}")
    if weeks < 1:
        raise InvalidInput("Week count must be at least 1")
    if max_weeks is not None and weeks > max_weeks:
        raise InvalidInput(f"Week count must be at most {max_weeks}")
    return days


def recurring_dates(
    start: date,
    weekdays: Iterable[int],
    weeks: int,
    max_weeks: Optional[int] = None,
) -> List[date]:
    """Project a weekly pattern over ``weeks`` weeks starting at ``start``.

    Each selected weekday contributes its first occurrence on or after
    ``start`` (``start`` itself when it falls on that weekday) and the same
    day in each following week. The result is sorted ascending and holds
    ``len(set(weekdays)) * weeks`` dates.
    """
    days = validate_pattern(weekdays, weeks, max_weeks)
    start_weekday = sunday_based_weekday(start)

    dates: List[date] = []
    for weekday in days:
        delta = (weekday - start_weekday + 7) % 7
        for week in range(weeks):
            dates.append(start + timedelta(days=delta + 7 * week))
    dates.sort()
    return dates
