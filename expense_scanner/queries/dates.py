"""
Date helpers for expense filtering.

Everything here is deterministic and takes `today` explicitly so the
month buckets can be tested without freezing the clock.
"""

from datetime import date, timedelta
from typing import Optional

from expense_scanner.models.expense import (
    DateRangeKind,
    FilterCriteria,
    parse_expense_date,
)


def month_bounds(day: date) -> tuple[date, date]:
    """First and last day of the calendar month containing `day`."""
    start = day.replace(day=1)
    if day.month == 12:
        end = day.replace(year=day.year + 1, month=1, day=1) - timedelta(days=1)
    else:
        end = day.replace(month=day.month + 1, day=1) - timedelta(days=1)
    return start, end


def resolve_date_range(
    criteria: FilterCriteria,
    today: date,
) -> tuple[Optional[date], Optional[date]]:
    """
    Convert the selected preset into inclusive (start, end) bounds.

    None means unbounded on that side. "This month" has no upper bound,
    so future-dated receipts of the current month still show up.
    """
    kind = criteria.date_range

    if kind == DateRangeKind.THIS_MONTH:
        return today.replace(day=1), None

    if kind == DateRangeKind.LAST_MONTH:
        end = today.replace(day=1) - timedelta(days=1)
        return end.replace(day=1), end

    if kind == DateRangeKind.CUSTOM:
        return criteria.start, criteria.end

    return None, None


def parse_custom_date(text: Optional[str]) -> Optional[date]:
    """
    Parse a date typed into the custom range dialog.

    Accepts dd/mm/yy and dd/mm/yyyy; two-digit years are 20xx.
    Returns None for anything else, including impossible dates
    like 31/02/24.
    """
    if not text:
        return None

    parts = [p.strip() for p in text.strip().split("/")]
    if len(parts) != 3 or not all(p.isdecimal() and len(p) <= 4 for p in parts):
        return None

    day, month, year = (int(p) for p in parts)
    if year < 100:
        year += 2000

    try:
        return date(year, month, day)
    except ValueError:
        return None


def format_display_date(value: Optional[str]) -> Optional[str]:
    """Render a stored date as "05 Mar 24"; unparseable input comes back unchanged."""
    parsed = parse_expense_date(value)
    if parsed is None:
        return value
    return parsed.strftime("%d %b %y")


def describe_date_range(
    date_from: Optional[date],
    date_to: Optional[date],
) -> str:
    """Format date range for description."""
    if date_from and date_to:
        if date_from == date_to:
            return f"on {date_from.strftime('%d %b %Y')}"
        elif (date_from, date_to) == month_bounds(date_from):
            return f"in {date_from.strftime('%B %Y')}"
        elif date_from.year == date_to.year and date_from <= date_to:
            return f"from {date_from.strftime('%d %b')} to {date_to.strftime('%d %b %Y')}"
        else:
            return f"from {date_from.strftime('%d %b %Y')} to {date_to.strftime('%d %b %Y')}"
    elif date_from:
        return f"from {date_from.strftime('%d %b %Y')}"
    elif date_to:
        return f"until {date_to.strftime('%d %b %Y')}"
    return "all time"
