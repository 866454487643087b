"""
Receipt Response Normalizer

Turns the free-form text a vision model returns for one receipt into a
fully populated ExpenseRecord.

DESIGN DECISION: This is a TOTAL function. It never raises.
The model may wrap its answer in code fences, add prose around it,
return broken JSON, use other key names, or send amounts as strings
with currency symbols. Each field is resolved on its own from a
prioritized list of rules, and a field that cannot be resolved falls
back to its default without affecting the others.

Whether an all-defaults record counts as a failed scan is the caller's
decision (see `is_default_record`).
"""

import json
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Optional

from pydantic import ValidationError

from expense_scanner.models.expense import (
    CATCH_ALL_CATEGORY,
    DEFAULT_CURRENCY,
    DEFAULT_PAYMENT_METHOD,
    FIXED_EXTRACTION_CATEGORIES,
    MAX_AMOUNT,
    UNKNOWN_MERCHANT,
    ExpenseRecord,
    parse_expense_date,
)


_CODE_FENCE = re.compile(r"```(?:json)?\n?", re.IGNORECASE)
# Greedy: first "{" to the last "}" in the text.
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_AMOUNT_NOISE = re.compile(r"[₹$€£,\s]")
_LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")

_MAX_MERCHANT_LENGTH = 200
_MAX_CURRENCY_LENGTH = 10
_MAX_PAYMENT_METHOD_LENGTH = 50


# =============================================================================
# VALUE COERCION
# =============================================================================

def _as_text(value: Any) -> Optional[str]:
    """Non-blank strings only, stripped."""
    if not isinstance(value, str):
        return None
    text = value.strip()
    return text or None


def _as_merchant(value: Any) -> Optional[str]:
    text = _as_text(value)
    return text[:_MAX_MERCHANT_LENGTH] if text else None


def _as_payment_method(value: Any) -> Optional[str]:
    text = _as_text(value)
    return text[:_MAX_PAYMENT_METHOD_LENGTH] if text else None


def _as_currency(value: Any) -> Optional[str]:
    text = _as_text(value)
    if text is None or len(text) > _MAX_CURRENCY_LENGTH:
        return None
    return text.upper()


def _as_iso_date(value: Any) -> Optional[str]:
    parsed = parse_expense_date(_as_text(value))
    return parsed.isoformat() if parsed else None


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Coerce a model-supplied amount to a non-negative Decimal.

    Numbers are taken as-is. Strings lose currency symbols, thousands
    separators and whitespace, then the leading number is parsed
    ("150.00 INR" -> 150.00). Returns None when nothing usable is found,
    including negative, non-finite and out-of-range values.
    """
    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        text = str(value)
    elif isinstance(value, str):
        text = _AMOUNT_NOISE.sub("", value)
        match = _LEADING_NUMBER.match(text)
        if not match:
            return None
        text = match.group(0)
    else:
        return None

    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None

    if not amount.is_finite() or amount < 0 or amount > MAX_AMOUNT:
        return None
    return amount


# =============================================================================
# FIELD RULES
# =============================================================================

@dataclass(frozen=True)
class FieldRule:
    """
    One way of reading a field from the parsed payload.

    A rule matches when `key` is present and `coerce` returns a value.
    """
    key: str
    coerce: Callable[[Any], Optional[Any]]

    def apply(self, payload: dict) -> Optional[Any]:
        if self.key not in payload:
            return None
        return self.coerce(payload[self.key])


def resolve_field(rules: Iterable[FieldRule], payload: dict, default: Any) -> Any:
    """Return the value of the first matching rule, or `default`."""
    for rule in rules:
        value = rule.apply(payload)
        if value is not None:
            return value
    return default


MERCHANT_RULES = (
    FieldRule("merchant", _as_merchant),
    FieldRule("store", _as_merchant),
    FieldRule("name", _as_merchant),
)

AMOUNT_RULES = (
    FieldRule("total_amount", parse_amount),
    FieldRule("amount", parse_amount),
    FieldRule("total", parse_amount),
)

CURRENCY_RULES = (
    FieldRule("currency", _as_currency),
)

DATE_RULES = (
    FieldRule("date", _as_iso_date),
)

PAYMENT_METHOD_RULES = (
    FieldRule("payment_method", _as_payment_method),
    FieldRule("payment", _as_payment_method),
)


def normalize_category(
    value: Any,
    known_categories: Optional[Iterable[str]] = None,
) -> str:
    """
    Map a model-supplied category onto the recognized category set.

    The value is capitalized ("food" -> "Food") and checked against the
    set. Failing that, a case-insensitive match returns the set's own
    spelling, so multi-word user categories ("Pet Care") still match.
    Anything else becomes the catch-all category.
    """
    text = _as_text(value)
    if text is None:
        return CATCH_ALL_CATEGORY

    known = list(known_categories) if known_categories is not None else list(
        FIXED_EXTRACTION_CATEGORIES
    )

    capitalized = text[0].upper() + text[1:].lower()
    if capitalized in known:
        return capitalized

    folded = text.casefold()
    for name in known:
        if name.casefold() == folded:
            return name

    return CATCH_ALL_CATEGORY


# =============================================================================
# ENTRY POINTS
# =============================================================================

def extract_json_object(raw_text: Any) -> Optional[dict]:
    """
    Pull the JSON object out of a model response.

    Returns None when there is no {...} block, when it does not parse,
    or when it parses to something other than an object.
    """
    if not isinstance(raw_text, str):
        return None

    cleaned = _CODE_FENCE.sub("", raw_text).strip()
    match = _JSON_OBJECT.search(cleaned)
    if not match:
        return None

    try:
        payload = json.loads(match.group(0))
    except (ValueError, RecursionError):
        return None

    return payload if isinstance(payload, dict) else None


def _fallback_currency(fallback_currency: Optional[str]) -> str:
    return _as_currency(fallback_currency) or DEFAULT_CURRENCY


def default_record(
    fallback_currency: Optional[str] = DEFAULT_CURRENCY,
    today: Optional[date] = None,
) -> ExpenseRecord:
    """The record produced when nothing could be extracted."""
    return ExpenseRecord(
        merchant=UNKNOWN_MERCHANT,
        amount=Decimal("0"),
        currency=_fallback_currency(fallback_currency),
        date=(today or date.today()).isoformat(),
        category=CATCH_ALL_CATEGORY,
        payment_method=DEFAULT_PAYMENT_METHOD,
    )


def is_default_record(record: ExpenseRecord) -> bool:
    """True when a record carries no extracted merchant and no amount."""
    return record.merchant == UNKNOWN_MERCHANT and record.amount == 0


def normalize(
    raw_text: Any,
    fallback_currency: Optional[str] = DEFAULT_CURRENCY,
    *,
    today: Optional[date] = None,
    known_categories: Optional[Iterable[str]] = None,
) -> ExpenseRecord:
    """
    Convert a raw model response into an ExpenseRecord.

    Args:
        raw_text: Whatever the model returned (may be None or garbage)
        fallback_currency: Currency used when the receipt names none
        today: Date used when the receipt has no usable date
        known_categories: Recognized category names. Defaults to the
            fixed extraction set.

    Returns:
        A fully populated record with a fresh id. Never raises.
    """
    today = today or date.today()
    payload = extract_json_object(raw_text)
    if payload is None:
        return default_record(fallback_currency, today)

    try:
        return ExpenseRecord(
            merchant=resolve_field(MERCHANT_RULES, payload, UNKNOWN_MERCHANT),
            amount=resolve_field(AMOUNT_RULES, payload, Decimal("0")),
            currency=resolve_field(
                CURRENCY_RULES, payload, _fallback_currency(fallback_currency)
            ),
            date=resolve_field(DATE_RULES, payload, today.isoformat()),
            category=normalize_category(payload.get("category"), known_categories),
            payment_method=resolve_field(
                PAYMENT_METHOD_RULES, payload, DEFAULT_PAYMENT_METHOD
            ),
        )
    except ValidationError:
        return default_record(fallback_currency, today)
