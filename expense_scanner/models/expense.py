"""
Core Data Models for Expense Scanner

These models define the schemas for all data flowing through the system.
They are designed to:
1. Enforce the record invariants at runtime (non-negative amounts, non-empty merchant)
2. Be immutable once created - edits produce a whole new record
3. Be serializable for storage and logging

DESIGN DECISION: Categories are plain strings, not an enum field.
The built-in categories are an enum, but users can add their own,
so a record's category is validated against the *current* category
set by whoever assigns it, not by the model.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS & FIXED SETS
# =============================================================================

class ExpenseCategory(str, Enum):
    """
    Built-in expense categories.

    These can never be removed by the user. OTHERS is the catch-all
    every unrecognized category collapses into.
    """
    FOOD = "Food"
    TRAVEL = "Travel"
    BILLS = "Bills"
    SHOPPING = "Shopping"
    HEALTH = "Health"
    ENTERTAINMENT = "Entertainment"
    RENT = "Rent"
    OTHERS = "Others"


BUILT_IN_CATEGORIES: tuple[str, ...] = tuple(c.value for c in ExpenseCategory)

# The extraction prompt only offers these; Rent is a manual-entry category.
FIXED_EXTRACTION_CATEGORIES: tuple[str, ...] = tuple(
    c.value for c in ExpenseCategory if c is not ExpenseCategory.RENT
)

CATCH_ALL_CATEGORY = ExpenseCategory.OTHERS.value
UNKNOWN_MERCHANT = "Unknown Store"
DEFAULT_PAYMENT_METHOD = "Card"
DEFAULT_CURRENCY = "INR"

# Largest amount a record may hold; keeps totals inside the Decimal context.
MAX_AMOUNT = Decimal("1e15")

BUILT_IN_CURRENCIES: tuple[str, ...] = ("INR", "USD", "EUR", "GBP")

BUILT_IN_CATEGORY_GLYPHS = MappingProxyType({
    "Food": "🍔",
    "Travel": "✈️",
    "Bills": "📄",
    "Shopping": "🛍️",
    "Health": "💊",
    "Entertainment": "🎬",
    "Rent": "🏠",
    "Others": "📦",
})
CUSTOM_CATEGORY_GLYPH = "🏷️"


class DateRangeKind(str, Enum):
    """Date-range presets offered by the expense list filter."""
    ALL_TIME = "all_time"
    THIS_MONTH = "this_month"
    LAST_MONTH = "last_month"
    CUSTOM = "custom"

    @property
    def label(self) -> str:
        return _DATE_RANGE_LABELS[self]


_DATE_RANGE_LABELS = {
    DateRangeKind.ALL_TIME: "All Time",
    DateRangeKind.THIS_MONTH: "This Month",
    DateRangeKind.LAST_MONTH: "Last Month",
    DateRangeKind.CUSTOM: "Custom",
}


class ScanStatus(str, Enum):
    """
    Outcome of scanning a single receipt image.

    Only EXTRACTED records are usable by default. DEFAULTED means the
    model answered but nothing usable came out of it.
    """
    EXTRACTED = "extracted"
    DEFAULTED = "defaulted"
    FAILED = "failed"          # Service unreachable, timed out, or refused
    CANCELLED = "cancelled"    # Never attempted, batch was cancelled


def parse_expense_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a stored expense date.

    Accepts plain ISO dates and ISO datetimes (the date part is kept).
    Returns None for anything unparseable instead of raising.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def _today_iso() -> str:
    return date.today().isoformat()


# =============================================================================
# CORE EXPENSE MODEL
# =============================================================================

class ExpenseRecord(BaseModel):
    """
    A single stored expense.

    Records are frozen. Editing an expense means building a full
    replacement with the same id (see `replace`).

    `date` is kept as the `YYYY-MM-DD` string it was stored as. Records
    created by this package always carry a valid calendar date, but rows
    written by older versions may not, and the query engine has to cope.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique expense ID"
    )
    merchant: str = Field(
        default=UNKNOWN_MERCHANT,
        min_length=1,
        max_length=200,
        description="Store / restaurant / payee name"
    )
    amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        le=MAX_AMOUNT,
        description="Amount paid"
    )
    currency: str = Field(
        default=DEFAULT_CURRENCY,
        min_length=1,
        max_length=10,
        description="Currency code (not checked against ISO-4217)"
    )
    date: str = Field(
        default_factory=_today_iso,
        description="Expense date as YYYY-MM-DD"
    )
    category: str = Field(
        default=CATCH_ALL_CATEGORY,
        min_length=1,
        max_length=100,
    )
    payment_method: str = Field(
        default=DEFAULT_PAYMENT_METHOD,
        min_length=1,
        max_length=50,
    )

    @field_validator('currency')
    @classmethod
    def uppercase_currency(cls, v: str) -> str:
        return v.upper()

    def replace(self, **changes) -> "ExpenseRecord":
        """Return a validated copy with `changes` applied; the id is kept."""
        changes.pop("id", None)
        data = self.model_dump()
        data.update(changes)
        return ExpenseRecord.model_validate(data)


# =============================================================================
# QUERY MODELS
# =============================================================================

class FilterCriteria(BaseModel):
    """
    Active filters for the expense list.

    `category=None` means every category.
    """
    model_config = ConfigDict(frozen=True)

    date_range: DateRangeKind = DateRangeKind.ALL_TIME
    start: Optional[date] = None
    end: Optional[date] = None
    category: Optional[str] = None

    @model_validator(mode='after')
    def validate_custom_range(self) -> 'FilterCriteria':
        """A custom range needs both ends. Order is deliberately not checked."""
        if self.date_range == DateRangeKind.CUSTOM:
            if self.start is None or self.end is None:
                raise ValueError("Custom date range requires both start and end")
        return self

    @classmethod
    def all_time(cls, category: Optional[str] = None) -> "FilterCriteria":
        return cls(date_range=DateRangeKind.ALL_TIME, category=category)

    @classmethod
    def this_month(cls, category: Optional[str] = None) -> "FilterCriteria":
        return cls(date_range=DateRangeKind.THIS_MONTH, category=category)

    @classmethod
    def last_month(cls, category: Optional[str] = None) -> "FilterCriteria":
        return cls(date_range=DateRangeKind.LAST_MONTH, category=category)

    @classmethod
    def custom(
        cls,
        start: date,
        end: date,
        category: Optional[str] = None,
    ) -> "FilterCriteria":
        return cls(
            date_range=DateRangeKind.CUSTOM,
            start=start,
            end=end,
            category=category,
        )


class ExpenseQueryResult(BaseModel):
    """
    Filtered, sorted view of the expense list plus its aggregates.
    """

    executed_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    expenses: list[ExpenseRecord] = Field(
        default_factory=list,
        description="Matching expenses, newest first"
    )
    total: Decimal = Field(
        default=Decimal("0"),
        description="Sum of amounts over the matching expenses"
    )
    totals_by_category: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Per-category totals, largest first"
    )
    description: str = Field(
        default="",
        description="Human-readable description of the filters applied"
    )

    @property
    def count(self) -> int:
        return len(self.expenses)

    @property
    def is_empty(self) -> bool:
        return not self.expenses


# =============================================================================
# SCANNING MODELS
# =============================================================================

class ReceiptImage(BaseModel):
    """A receipt photo handed to the scanner."""

    upload_id: UUID = Field(
        default_factory=uuid4,
        description="Unique upload identifier"
    )
    filename: str = "receipt.jpg"
    mime_type: str = "image/jpeg"
    data: bytes = Field(
        ...,
        repr=False,
        description="Raw image bytes"
    )

    @field_validator('mime_type')
    @classmethod
    def validate_mime_type(cls, v: str) -> str:
        """Only allow image types."""
        allowed = {'image/jpeg', 'image/png', 'image/webp', 'image/heic'}
        if v.lower() not in allowed:
            raise ValueError(f"Unsupported image type: {v}. Allowed: {allowed}")
        return v.lower()

    @property
    def file_size_bytes(self) -> int:
        return len(self.data)


class ScanOutcome(BaseModel):
    """What happened to one image of a batch."""

    index: int = Field(ge=0)
    upload_id: Optional[UUID] = None
    filename: Optional[str] = None
    status: ScanStatus
    record: Optional[ExpenseRecord] = None
    error_message: Optional[str] = None

    @property
    def is_usable(self) -> bool:
        return self.status == ScanStatus.EXTRACTED and self.record is not None


class ScanBatchResult(BaseModel):
    """
    Result of scanning a batch of receipts.

    The caller only needs `usable_count` to decide between the
    "N receipts processed" and "could not extract data" notices.
    """

    batch_id: UUID = Field(default_factory=uuid4)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    outcomes: list[ScanOutcome] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def records(self) -> list[ExpenseRecord]:
        """Usable records, in submission order."""
        return [o.record for o in self.outcomes if o.is_usable]

    @property
    def defaulted_records(self) -> list[ExpenseRecord]:
        return [
            o.record for o in self.outcomes
            if o.status == ScanStatus.DEFAULTED and o.record is not None
        ]

    @property
    def processed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status != ScanStatus.CANCELLED)

    @property
    def usable_count(self) -> int:
        return len(self.records)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status == ScanStatus.FAILED)

    @property
    def summary_message(self) -> str:
        if self.usable_count > 0:
            return f"{self.usable_count} receipts processed"
        return "Could not extract data from the receipts."


# =============================================================================
# PREFERENCES
# =============================================================================

class Preferences(BaseModel):
    """
    Persisted user customization.

    Built-in categories and currencies are never stored; only what the
    user added on top of them.
    """

    custom_categories: list[str] = Field(default_factory=list)
    category_glyphs: dict[str, str] = Field(
        default_factory=dict,
        description="Glyphs for user-added categories"
    )
    custom_currencies: list[str] = Field(default_factory=list)
    selected_currency: str = DEFAULT_CURRENCY
