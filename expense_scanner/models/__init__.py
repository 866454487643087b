"""
Data Models Package

This package contains all Pydantic models used in Expense Scanner.
All data flowing through the system must conform to these schemas.
"""

from expense_scanner.models.expense import (
    BUILT_IN_CATEGORIES,
    BUILT_IN_CATEGORY_GLYPHS,
    BUILT_IN_CURRENCIES,
    CATCH_ALL_CATEGORY,
    CUSTOM_CATEGORY_GLYPH,
    DEFAULT_CURRENCY,
    DEFAULT_PAYMENT_METHOD,
    FIXED_EXTRACTION_CATEGORIES,
    MAX_AMOUNT,
    UNKNOWN_MERCHANT,
    DateRangeKind,
    ExpenseCategory,
    ExpenseQueryResult,
    ExpenseRecord,
    FilterCriteria,
    Preferences,
    ReceiptImage,
    ScanBatchResult,
    ScanOutcome,
    ScanStatus,
    parse_expense_date,
)
from expense_scanner.models.audit import (
    AUDIT_COLUMNS,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "BUILT_IN_CATEGORIES",
    "BUILT_IN_CATEGORY_GLYPHS",
    "BUILT_IN_CURRENCIES",
    "CATCH_ALL_CATEGORY",
    "CUSTOM_CATEGORY_GLYPH",
    "DEFAULT_CURRENCY",
    "DEFAULT_PAYMENT_METHOD",
    "FIXED_EXTRACTION_CATEGORIES",
    "MAX_AMOUNT",
    "UNKNOWN_MERCHANT",
    "DateRangeKind",
    "ExpenseCategory",
    "ExpenseQueryResult",
    "ExpenseRecord",
    "FilterCriteria",
    "Preferences",
    "ReceiptImage",
    "ScanBatchResult",
    "ScanOutcome",
    "ScanStatus",
    "parse_expense_date",
    # Audit models
    "AUDIT_COLUMNS",
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
