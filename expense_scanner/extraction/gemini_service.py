"""
Receipt Extraction Service using Gemini

DESIGN DECISION: We use a general vision-language model instead of a
dedicated receipt OCR product because:
1. One request returns the fields we need, already roughly structured
2. It copes with handwritten and regional receipts
3. Category suggestion comes for free

The price is that the answer is free-form text. This service ONLY
transports: it sends the image with a fixed prompt and returns the raw
text. Making sense of that text is the normalizer's job.

One request per image. Batching and concurrency are decided by the
caller (see ReceiptScanFlow).
"""

import asyncio
from typing import Optional

import google.generativeai as genai
import structlog

from expense_scanner.config import GeminiSettings, get_settings
from expense_scanner.models.expense import FIXED_EXTRACTION_CATEGORIES


logger = structlog.get_logger(__name__)


RECEIPT_PROMPT = f"""You are a receipt scanner. Look at this receipt image and extract the data.

RESPOND WITH ONLY THIS JSON FORMAT (no other text):
{{"merchant":"STORE NAME HERE","category":"Food","date":"2024-01-01","currency":"INR","total_amount":100,"payment_method":"Card"}}

EXTRACTION RULES:
1. merchant = Name of store/shop/restaurant (top of receipt usually)
2. category = Pick ONE: {", ".join(FIXED_EXTRACTION_CATEGORIES)}
3. date = Date on receipt in YYYY-MM-DD format
4. currency = INR if you see ₹ or Rs, USD if $, EUR if €
5. total_amount = The FINAL TOTAL amount paid (look for "Total", "Grand Total", "Amount", "Net Amount") - JUST THE NUMBER, no currency symbol
6. payment_method = Cash, Card, or UPI

IMPORTANT:
- total_amount MUST be a number like 150 or 299.50, NOT a string
- Look carefully for the biggest/final amount at bottom of receipt
- If you see ₹150 or Rs.150 or Rs 150, return 150 as total_amount

Return ONLY the JSON, nothing else:"""


class ExtractionError(Exception):
    """Base exception for receipt extraction errors."""
    pass


class ApiKeyMissingError(ExtractionError):
    """No Gemini API key is configured."""
    pass


class ExtractionServiceError(ExtractionError):
    """The extraction service could not be reached or refused the request."""
    pass


class ExtractionTimeoutError(ExtractionServiceError):
    """The extraction service did not answer in time."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Extraction timed out after {timeout_seconds:g}s")


class ReceiptExtractionService:
    """
    Sends receipt images to Gemini and returns the raw response text.

    IMPORTANT BOUNDARIES:
    1. This service does NOT parse the response
    2. Every failure is raised as an ExtractionServiceError subclass
    3. Every request is bounded by a timeout
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._model: Optional[genai.GenerativeModel] = None

    def _get_model(self) -> genai.GenerativeModel:
        """Configure Google Generative AI on first use."""
        if not self._settings.is_configured:
            raise ApiKeyMissingError(
                "Please add your Gemini API key (GEMINI_API_KEY) before scanning receipts"
            )
        if self._model is None:
            genai.configure(api_key=self._settings.api_key)
            self._model = genai.GenerativeModel(
                model_name=self._settings.model_name,
                generation_config={
                    "temperature": self._settings.temperature,
                    "max_output_tokens": self._settings.max_tokens,
                }
            )
        return self._model

    async def analyze_receipt(
        self,
        image_bytes: bytes,
        mime_type: str = "image/jpeg",
    ) -> str:
        """
        Ask the model to read one receipt.

        Returns:
            The raw response text (possibly empty of any JSON)

        Raises:
            ApiKeyMissingError: No API key configured
            ExtractionTimeoutError: No answer within the configured timeout
            ExtractionServiceError: Transport failure or blocked/empty response
        """
        model = self._get_model()
        timeout = self._settings.request_timeout_seconds

        try:
            response = await asyncio.wait_for(
                model.generate_content_async(
                    [
                        RECEIPT_PROMPT,
                        {"mime_type": mime_type, "data": image_bytes},
                    ]
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise ExtractionTimeoutError(timeout)
        except Exception as e:
            raise ExtractionServiceError(f"Gemini request failed: {e}") from e

        try:
            # .text raises when the candidate was blocked or has no parts
            text = response.text
        except (ValueError, IndexError, AttributeError) as e:
            raise ExtractionServiceError(f"Gemini returned no text: {e}") from e

        logger.debug(
            "gemini_response_received",
            model=self._settings.model_name,
            response_chars=len(text or ""),
        )
        return text or ""
