"""
Tests for the receipt response normalizer.

The normalizer must turn anything the model says into a complete
record without raising.
"""

import json
import pytest
from datetime import date
from decimal import Decimal

from expense_scanner.extraction.normalizer import (
    AMOUNT_RULES,
    FieldRule,
    default_record,
    extract_json_object,
    is_default_record,
    normalize,
    normalize_category,
    parse_amount,
    resolve_field,
)
from expense_scanner.models.expense import MAX_AMOUNT


TODAY = date(2024, 3, 15)

FIELDS = ("merchant", "amount", "currency", "date", "category", "payment_method")


def fields_of(record) -> dict:
    return {name: getattr(record, name) for name in FIELDS}


class TestMalformedInput:
    """Anything unusable collapses to the all-defaults record."""

    @pytest.mark.parametrize("raw", [
        None,
        "",
        "   ",
        "Sorry, I cannot read this receipt.",
        "{not json at all}",
        '{"merchant": "Cut off',
        "[1, 2, 3]",
        42,
    ])
    def test_returns_default_record(self, raw):
        """Test garbage input yields the default record."""
        record = normalize(raw, "USD", today=TODAY)
        assert fields_of(record) == {
            "merchant": "Unknown Store",
            "amount": Decimal("0"),
            "currency": "USD",
            "date": "2024-03-15",
            "category": "Others",
            "payment_method": "Card",
        }
        assert is_default_record(record)

    def test_default_record_gets_fresh_id(self):
        """Test every default record has its own id."""
        assert default_record().id != default_record().id

    def test_blank_fallback_currency_uses_inr(self):
        """Test a missing fallback currency falls back to INR."""
        assert normalize(None, "", today=TODAY).currency == "INR"


class TestJsonExtraction:
    """Tests for locating the JSON object in the response."""

    PAYLOAD = {
        "merchant": "Dominos",
        "category": "Food",
        "date": "2024-03-02",
        "currency": "INR",
        "total_amount": 499,
        "payment_method": "UPI",
    }

    @pytest.mark.parametrize("template", [
        "{}",
        "```json\n{}\n```",
        "```\n{}\n```",
        "Here is the data:\n{}\nLet me know if you need more.",
        "```JSON\n{}```",
    ])
    def test_embedded_block_matches_bare_block(self, template):
        """Test prose and fences around the JSON do not change the result."""
        block = json.dumps(self.PAYLOAD)
        wrapped = normalize(template.replace("{}", block), today=TODAY)
        bare = normalize(block, today=TODAY)
        assert fields_of(wrapped) == fields_of(bare)
        assert wrapped.merchant == "Dominos"
        assert wrapped.amount == Decimal("499")

    def test_greedy_match_spans_first_to_last_brace(self):
        """Test nested objects survive the greedy match."""
        text = 'prefix {"merchant": "A", "meta": {"x": 1}} suffix'
        assert extract_json_object(text) == {"merchant": "A", "meta": {"x": 1}}

    def test_non_object_json_is_rejected(self):
        """Test only JSON objects count."""
        assert extract_json_object('"just a string"') is None


class TestAmounts:
    """Tests for amount parsing and key priority."""

    def test_rupee_string_with_separators(self):
        """Test currency symbols and thousands separators are removed."""
        record = normalize(json.dumps({"total_amount": "₹1,234.50"}), today=TODAY)
        assert record.amount == Decimal("1234.50")

    @pytest.mark.parametrize("value, expected", [
        (150, Decimal("150")),
        (99.5, Decimal("99.5")),
        ("$ 12.00", Decimal("12.00")),
        ("€3", Decimal("3")),
        ("150.00 INR", Decimal("150.00")),
    ])
    def test_parse_amount_accepts(self, value, expected):
        """Test the accepted amount shapes."""
        assert parse_amount(value) == expected

    @pytest.mark.parametrize("value", [
        "free", "", None, True, -5, "-12", float("nan"), float("inf"), [], {},
        "1e999999999", "1e16", 10 ** 20,
    ])
    def test_parse_amount_rejects(self, value):
        """Test unusable amounts give None."""
        assert parse_amount(value) is None

    def test_key_priority(self):
        """Test total_amount wins over amount, which wins over total."""
        payload = {"total_amount": 10, "amount": 20, "total": 30}
        assert resolve_field(AMOUNT_RULES, payload, Decimal("0")) == Decimal("10")
        del payload["total_amount"]
        assert resolve_field(AMOUNT_RULES, payload, Decimal("0")) == Decimal("20")
        del payload["amount"]
        assert resolve_field(AMOUNT_RULES, payload, Decimal("0")) == Decimal("30")

    def test_unparseable_key_falls_through(self):
        """Test a bad total_amount does not hide a good amount."""
        record = normalize(
            json.dumps({"total_amount": "N/A", "amount": "75"}), today=TODAY
        )
        assert record.amount == Decimal("75")

    def test_oversized_amount_falls_through(self):
        """Test an amount beyond the record limit is treated as unreadable."""
        record = normalize(
            json.dumps({"total_amount": "1e999999999", "amount": "42"}), today=TODAY
        )
        assert record.amount == Decimal("42")

    def test_largest_amount_is_kept(self):
        """Test the record limit itself is still accepted."""
        assert parse_amount("1e15") == MAX_AMOUNT

    def test_missing_amount_is_zero(self):
        """Test amount defaults to zero, other fields unaffected."""
        record = normalize(json.dumps({"merchant": "Uber"}), today=TODAY)
        assert record.amount == Decimal("0")
        assert record.merchant == "Uber"
        assert not is_default_record(record)


class TestCategories:
    """Tests for category normalization."""

    def test_lowercase_known_category(self):
        """Test case is normalized before matching."""
        record = normalize(json.dumps({"category": "food"}), today=TODAY)
        assert record.category == "Food"

    def test_unknown_category_is_others(self):
        """Test categories outside the set collapse to Others."""
        record = normalize(json.dumps({"category": "groceries"}), today=TODAY)
        assert record.category == "Others"

    def test_rent_is_not_an_extraction_category(self):
        """Test the default set is the fixed extraction set."""
        assert normalize_category("Rent") == "Others"

    def test_known_categories_include_custom(self):
        """Test user categories match when the caller passes them."""
        known = ["Food", "Others", "Pet Care"]
        assert normalize_category("pet care", known) == "Pet Care"
        assert normalize_category("PETS", known) == "Others"

    @pytest.mark.parametrize("value", [None, "", "  ", 7])
    def test_missing_category_is_others(self, value):
        """Test missing or non-string categories."""
        assert normalize_category(value) == "Others"


class TestOtherFields:
    """Tests for merchant, currency, date and payment method."""

    def test_merchant_fallback_keys(self):
        """Test store and name are read when merchant is missing."""
        assert normalize(json.dumps({"store": "DMart"}), today=TODAY).merchant == "DMart"
        assert normalize(json.dumps({"merchant": " ", "name": "Zara"}), today=TODAY).merchant == "Zara"

    def test_currency_uppercased(self):
        """Test currency codes are upper-cased."""
        assert normalize(json.dumps({"currency": "usd"}), today=TODAY).currency == "USD"

    def test_currency_falls_back(self):
        """Test the fallback currency fills a missing currency."""
        assert normalize(json.dumps({"merchant": "X"}), "EUR", today=TODAY).currency == "EUR"

    def test_valid_date_kept(self):
        """Test a valid receipt date is kept."""
        assert normalize(json.dumps({"date": "2023-12-31"}), today=TODAY).date == "2023-12-31"

    @pytest.mark.parametrize("value", ["31/12/2023", "2023-02-30", "", 20231231])
    def test_invalid_date_becomes_today(self, value):
        """Test unusable dates are replaced with today."""
        record = normalize(json.dumps({"date": value}), today=TODAY)
        assert record.date == "2024-03-15"

    def test_payment_method(self):
        """Test payment method with its default."""
        assert normalize(json.dumps({"payment_method": "Cash"}), today=TODAY).payment_method == "Cash"
        assert normalize(json.dumps({"payment_method": None}), today=TODAY).payment_method == "Card"


class TestFieldRule:
    """Tests for FieldRule in isolation."""

    def test_rule_needs_key(self):
        """Test a missing key does not match."""
        rule = FieldRule("merchant", lambda v: v)
        assert rule.apply({}) is None
        assert rule.apply({"merchant": "A"}) == "A"

    def test_resolve_field_default(self):
        """Test the default is used when no rule matches."""
        rules = (FieldRule("a", parse_amount), FieldRule("b", parse_amount))
        assert resolve_field(rules, {"a": "x", "b": "y"}, "fallback") == "fallback"
