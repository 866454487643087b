"""Receipt extraction package: Gemini transport plus response normalization."""

from expense_scanner.extraction.gemini_service import (
    RECEIPT_PROMPT,
    ApiKeyMissingError,
    ExtractionError,
    ExtractionServiceError,
    ExtractionTimeoutError,
    ReceiptExtractionService,
)
from expense_scanner.extraction.normalizer import (
    FieldRule,
    default_record,
    extract_json_object,
    is_default_record,
    normalize,
    normalize_category,
    parse_amount,
)

__all__ = [
    "RECEIPT_PROMPT",
    "ApiKeyMissingError",
    "ExtractionError",
    "ExtractionServiceError",
    "ExtractionTimeoutError",
    "FieldRule",
    "ReceiptExtractionService",
    "default_record",
    "extract_json_object",
    "is_default_record",
    "normalize",
    "normalize_category",
    "parse_amount",
]
