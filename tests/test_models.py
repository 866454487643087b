"""
Tests for Expense Scanner

Test strategy:
1. Unit tests for individual components (models, normalizer, queries)
2. Integration tests for flows (with a fake extraction service)
3. No real API calls in tests
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from expense_scanner.models.expense import (
    BUILT_IN_CATEGORIES,
    BUILT_IN_CATEGORY_GLYPHS,
    FIXED_EXTRACTION_CATEGORIES,
    MAX_AMOUNT,
    DateRangeKind,
    ExpenseCategory,
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
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestExpenseModels:
    """Tests for expense-related Pydantic models."""

    def test_expense_record_creation(self):
        """Test ExpenseRecord model creation."""
        record = ExpenseRecord(
            merchant="Big Bazaar",
            amount=Decimal("1234.50"),
            currency="INR",
            date="2024-03-01",
            category="Shopping",
            payment_method="Cash",
        )
        assert record.merchant == "Big Bazaar"
        assert record.amount == Decimal("1234.50")
        assert record.id is not None

    def test_expense_record_defaults(self):
        """Test that an empty record carries the sentinel values."""
        record = ExpenseRecord()
        assert record.merchant == "Unknown Store"
        assert record.amount == Decimal("0")
        assert record.currency == "INR"
        assert record.category == "Others"
        assert record.payment_method == "Card"
        assert parse_expense_date(record.date) == date.today()

    def test_expense_record_strips_whitespace(self):
        """Test that whitespace is stripped from the merchant."""
        record = ExpenseRecord(merchant="  Starbucks  ")
        assert record.merchant == "Starbucks"

    def test_expense_record_uppercases_currency(self):
        """Test currency codes are stored upper-case."""
        assert ExpenseRecord(currency="usd").currency == "USD"

    def test_expense_record_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            ExpenseRecord(amount=Decimal("-100"))

    def test_expense_record_rejects_oversized_amount(self):
        """Test amounts above MAX_AMOUNT are rejected."""
        assert ExpenseRecord(amount=MAX_AMOUNT).amount == MAX_AMOUNT
        with pytest.raises(ValidationError):
            ExpenseRecord(amount=Decimal("1e999999999"))

    def test_expense_record_rejects_blank_merchant(self):
        """Test merchant must not be empty."""
        with pytest.raises(ValidationError):
            ExpenseRecord(merchant="   ")

    def test_expense_record_is_frozen(self):
        """Test records cannot be mutated in place."""
        record = ExpenseRecord()
        with pytest.raises(ValidationError):
            record.amount = Decimal("5")

    def test_expense_record_replace_keeps_id(self):
        """Test replace() returns a validated copy with the same id."""
        record = ExpenseRecord(merchant="Old")
        edited = record.replace(merchant="New", id=uuid4())
        assert edited.id == record.id
        assert edited.merchant == "New"
        assert record.merchant == "Old"

    def test_expense_record_replace_validates(self):
        """Test replace() rejects invalid values."""
        with pytest.raises(ValidationError):
            ExpenseRecord().replace(amount=Decimal("-1"))

    def test_expense_record_keeps_unparseable_date(self):
        """Test legacy rows with bad dates still load."""
        record = ExpenseRecord(date="yesterday")
        assert record.date == "yesterday"
        assert parse_expense_date(record.date) is None

    def test_parse_expense_date_accepts_datetime(self):
        """Test ISO datetimes are reduced to their date."""
        assert parse_expense_date("2024-03-05T10:30:00") == date(2024, 3, 5)
        assert parse_expense_date("2024-02-30") is None
        assert parse_expense_date(None) is None

    def test_receipt_image_rejects_non_image(self):
        """Test only image MIME types are accepted."""
        with pytest.raises(ValidationError):
            ReceiptImage(data=b"%PDF", mime_type="application/pdf")

    def test_receipt_image_size(self):
        """Test file size comes from the payload."""
        image = ReceiptImage(data=b"12345", mime_type="IMAGE/PNG")
        assert image.file_size_bytes == 5
        assert image.mime_type == "image/png"


class TestFilterCriteria:
    """Tests for FilterCriteria model."""

    def test_default_is_all_time_all_categories(self):
        """Test the default criteria filter nothing."""
        criteria = FilterCriteria()
        assert criteria.date_range == DateRangeKind.ALL_TIME
        assert criteria.category is None

    def test_custom_requires_both_ends(self):
        """Test a custom range needs start and end."""
        with pytest.raises(ValueError, match="requires both start and end"):
            FilterCriteria(date_range=DateRangeKind.CUSTOM, start=date(2024, 1, 1))

    def test_custom_allows_inverted_range(self):
        """Test start > end is accepted (it simply matches nothing)."""
        criteria = FilterCriteria.custom(date(2024, 2, 1), date(2024, 1, 1))
        assert criteria.start > criteria.end

    def test_date_range_labels(self):
        """Test preset labels shown in the filter chips."""
        assert DateRangeKind.THIS_MONTH.label == "This Month"
        assert DateRangeKind.ALL_TIME.label == "All Time"


class TestScanBatchResult:
    """Tests for ScanBatchResult model."""

    def _outcome(self, index, status, merchant="Shop"):
        record = None
        if status in (ScanStatus.EXTRACTED, ScanStatus.DEFAULTED):
            record = ExpenseRecord(merchant=merchant, amount=Decimal("10"))
        return ScanOutcome(index=index, status=status, record=record)

    def test_counts(self):
        """Test usable, failed and processed counts."""
        result = ScanBatchResult(outcomes=[
            self._outcome(0, ScanStatus.EXTRACTED),
            self._outcome(1, ScanStatus.DEFAULTED),
            self._outcome(2, ScanStatus.FAILED),
            self._outcome(3, ScanStatus.CANCELLED),
        ])
        assert result.usable_count == 1
        assert result.failed_count == 1
        assert result.processed_count == 3
        assert len(result.defaulted_records) == 1

    def test_summary_message_success(self):
        """Test the success notice."""
        result = ScanBatchResult(outcomes=[
            self._outcome(0, ScanStatus.EXTRACTED),
            self._outcome(1, ScanStatus.EXTRACTED),
        ])
        assert result.summary_message == "2 receipts processed"

    def test_summary_message_nothing_usable(self):
        """Test the single failure notice."""
        result = ScanBatchResult(outcomes=[self._outcome(0, ScanStatus.FAILED)])
        assert result.summary_message == "Could not extract data from the receipts."


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.SCAN_BATCH_STARTED,
            description="Scanning 2 receipt(s)",
        )
        assert event.event_type == AuditEventType.SCAN_BATCH_STARTED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_SAVED,
            description="Expense saved",
            details={"merchant": "Dominos", "amount": "499"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "expense_saved"
        assert log_dict["details"]["merchant"] == "Dominos"

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            description="Expense deleted",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "expense_deleted"  # event_type
        assert row[10] == "True"  # is_user_action

    def test_audit_event_builder_scan_finished(self):
        """Test a cancelled batch gets its own event type."""
        batch_id = uuid4()
        event = AuditEventBuilder.scan_batch_finished(
            batch_id=batch_id,
            processed=2,
            usable=0,
            failed=2,
            cancelled=True,
        )
        assert event.event_type == AuditEventType.SCAN_BATCH_CANCELLED
        assert event.severity == AuditSeverity.WARNING
        assert event.correlation_id == batch_id

    def test_audit_event_builder_catalog_changed(self):
        """Test category/currency events name their entity type."""
        event = AuditEventBuilder.catalog_changed(AuditEventType.CURRENCY_ADDED, "JPY")
        assert event.entity_type == "currency"
        assert event.details == {"currency": "JPY"}
        assert event.is_user_action is True


class TestCategories:
    """Tests for the built-in category set."""

    def test_all_categories_exist(self):
        """Test that expected categories exist."""
        expected = [
            "Food", "Travel", "Bills", "Shopping",
            "Health", "Entertainment", "Rent", "Others",
        ]
        assert list(BUILT_IN_CATEGORIES) == expected
        for cat in expected:
            assert ExpenseCategory(cat) is not None

    def test_extraction_set_excludes_rent(self):
        """Test the model is only offered the fixed extraction categories."""
        assert "Rent" not in FIXED_EXTRACTION_CATEGORIES
        assert len(FIXED_EXTRACTION_CATEGORIES) == 7

    def test_every_built_in_has_a_glyph(self):
        """Test each built-in category has a display glyph."""
        assert set(BUILT_IN_CATEGORY_GLYPHS) == set(BUILT_IN_CATEGORIES)

    def test_preferences_defaults(self):
        """Test empty preferences."""
        prefs = Preferences()
        assert prefs.custom_categories == []
        assert prefs.selected_currency == "INR"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
