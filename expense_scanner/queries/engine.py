"""
Expense Query Engine

DESIGN DECISION: Querying is a PURE function of (records, criteria, today).
The expense list lives in memory; every time it or the filters change,
the view is recomputed from scratch. Nothing here touches storage and
the input list is never mutated, so recomputing is always safe.

Filtering order:
1. Date range (fail open - records with unparseable dates are kept)
2. Category (exact match)
3. Sort by date, newest first, stable for equal dates
4. Totals over what is left
"""

from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional

from expense_scanner.models.expense import (
    DateRangeKind,
    ExpenseQueryResult,
    ExpenseRecord,
    FilterCriteria,
    parse_expense_date,
)
from expense_scanner.queries.dates import (
    describe_date_range,
    month_bounds,
    resolve_date_range,
)


def _in_range(
    day: Optional[date],
    start: Optional[date],
    end: Optional[date],
) -> bool:
    if day is None:
        # Fail open: bad dates predate stricter validation, keep them visible
        return True
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def _sort_newest_first(
    dated: list[tuple[ExpenseRecord, Optional[date]]],
) -> list[ExpenseRecord]:
    """
    Newest first; equal dates keep their input order.

    Python's sort stays stable with reverse=True. Records without a
    parseable date sort after every dated record.
    """
    ordered = sorted(
        dated,
        key=lambda pair: (pair[1] is not None, pair[1] or date.min),
        reverse=True,
    )
    return [record for record, _ in ordered]


def _sum_amounts(records: Iterable[ExpenseRecord]) -> Decimal:
    return sum((r.amount or Decimal("0") for r in records), Decimal("0"))


def _totals_by_category(records: list[ExpenseRecord]) -> dict[str, Decimal]:
    """Per-category totals, largest first (ties keep first-seen order)."""
    totals: dict[str, Decimal] = {}
    for record in records:
        totals[record.category] = (
            totals.get(record.category, Decimal("0")) + (record.amount or Decimal("0"))
        )
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def describe_filters(criteria: FilterCriteria, today: date) -> str:
    """Human-readable description of the active filters."""
    if criteria.date_range == DateRangeKind.THIS_MONTH:
        date_str = describe_date_range(*month_bounds(today))
    else:
        date_str = describe_date_range(*resolve_date_range(criteria, today))

    desc_parts = ["Expenses", date_str]
    if criteria.category is not None:
        desc_parts.append(f"category: {criteria.category}")
    return " | ".join(desc_parts)


def query_expenses(
    records: Iterable[ExpenseRecord],
    criteria: Optional[FilterCriteria] = None,
    *,
    today: Optional[date] = None,
) -> ExpenseQueryResult:
    """
    Filter, sort and total a list of expenses.

    Args:
        records: Expenses in their stored order (not modified)
        criteria: Active filters; None means all time, all categories
        today: Reference date for the month presets

    Returns:
        ExpenseQueryResult with the matching expenses newest first
    """
    criteria = criteria or FilterCriteria()
    today = today or date.today()
    start, end = resolve_date_range(criteria, today)
    description = describe_filters(criteria, today)

    # An inverted custom range matches nothing, not even undated records.
    if start is not None and end is not None and start > end:
        return ExpenseQueryResult(description=description)

    dated: list[tuple[ExpenseRecord, Optional[date]]] = []
    for record in records:
        day = parse_expense_date(record.date)
        if not _in_range(day, start, end):
            continue
        if criteria.category is not None and record.category != criteria.category:
            continue
        dated.append((record, day))

    expenses = _sort_newest_first(dated)

    return ExpenseQueryResult(
        expenses=expenses,
        total=_sum_amounts(expenses),
        totals_by_category=_totals_by_category(expenses),
        description=description,
    )


class ExpenseQueryEngine:
    """
    Stateless query engine with an injectable clock.

    The clock only matters for the "this month" / "last month" presets.
    """

    def __init__(self, today_provider: Optional[Callable[[], date]] = None):
        self._today = today_provider or date.today

    def query(
        self,
        records: Iterable[ExpenseRecord],
        criteria: Optional[FilterCriteria] = None,
    ) -> ExpenseQueryResult:
        return query_expenses(records, criteria, today=self._today())
