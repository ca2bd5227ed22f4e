# backend/portfolio_analytics/utils/date_utils.py
"""
Date utility functions for the performance engine.

Calendar arithmetic used by period resolution and the report date grid.
Kept dependency-free and centralized so every caller shifts months and
finds month ends the same way (clamping the 31st to the last valid day).

Usage:
    from portfolio_analytics.utils.date_utils import month_ends_between, shift_months

    shift_months(date(2024, 3, 31), -1)   # date(2024, 2, 29)
    month_ends_between(date(2024, 1, 15), date(2024, 3, 10))
    # [date(2024, 1, 31), date(2024, 2, 29)]
"""

import calendar
from datetime import date, timedelta


def month_end(d: date) -> date:
    """Return the last calendar day of d's month."""
    last_day = calendar.monthrange(d.year, d.month)[1]
    return date(d.year, d.month, last_day)


def shift_months(d: date, months: int) -> date:
    """
    Move a date by a number of months, clamping the day to the target month.

    Args:
        d: Starting date
        months: Months to add (negative to go back)

    Returns:
        Shifted date (e.g., Mar 31 - 1 month = Feb 28/29)
    """
    month_index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(d.day, last_day))


def shift_years(d: date, years: int) -> date:
    """Move a date by whole years (Feb 29 clamps to Feb 28)."""
    return shift_months(d, years * 12)


def daily_dates(start_date: date, end_date: date) -> list[date]:
    """
    Every calendar day in a range.

    Args:
        start_date: First date (inclusive)
        end_date: Last date (inclusive)

    Returns:
        Dates in chronological order (empty if start > end)
    """
    days = []
    current = start_date

    while current <= end_date:
        days.append(current)
        current += timedelta(days=1)

    return days


def month_ends_between(start_date: date, end_date: date) -> list[date]:
    """
    Month-end dates that fall inside a range.

    Example:
        >>> month_ends_between(date(2024, 1, 15), date(2024, 3, 10))
        [date(2024, 1, 31), date(2024, 2, 29)]
    """
    ends = []
    current = month_end(start_date)

    while current <= end_date:
        ends.append(current)
        current = month_end(current + timedelta(days=1))

    return ends


def year_fraction(start_date: date, end_date: date, days_per_year: float = 365.25) -> float:
    """Elapsed time between two dates in years."""
    return (end_date - start_date).days / days_per_year
