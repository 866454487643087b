"""Expense filtering and aggregation package."""

from expense_scanner.queries.dates import (
    format_display_date,
    month_bounds,
    parse_custom_date,
    resolve_date_range,
)
from expense_scanner.queries.engine import (
    ExpenseQueryEngine,
    describe_filters,
    query_expenses,
)

__all__ = [
    "ExpenseQueryEngine",
    "describe_filters",
    "format_display_date",
    "month_bounds",
    "parse_custom_date",
    "query_expenses",
    "resolve_date_range",
]
