"""Calendar helpers shared by budgets, trends, recurrence and debt projections."""

from datetime import date, timedelta
from typing import Optional

from finledger.models.ledger import BudgetPeriod


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: date, months: int, desired_day: Optional[int] = None) -> date:
    """
    Move `base` by whole months.

    The day is `desired_day` (default: base.day), clamped to the length of
    the target month, so Jan 31 + 1 month is Feb 28 (or 29).
    """
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1

    day = desired_day or base.day
    return date(year, month, min(day, days_in_month(year, month)))


def month_bounds(day: date) -> tuple[date, date]:
    """First and last day of the month containing `day`."""
    start = day.replace(day=1)
    return start, start.replace(day=days_in_month(day.year, day.month))


def shift_months(day: date, months: int) -> date:
    """First day of the month `months` away from `day` (negative goes back)."""
    return add_months(day.replace(day=1), months)


def period_window(period: BudgetPeriod, today: date) -> tuple[date, date]:
    """
    The current window of a budget period, both ends inclusive.

    Weeks run Monday to Sunday.
    """
    if period == BudgetPeriod.WEEKLY:
        start = today - timedelta(days=today.weekday())
        return start, start + timedelta(days=6)
    if period == BudgetPeriod.YEARLY:
        return date(today.year, 1, 1), date(today.year, 12, 31)
    return month_bounds(today)
