"""
Tests for the Gemini transport and its configuration.

The generative model is replaced by a fake; no request leaves the test.
"""

import asyncio
import pytest

from expense_scanner.config import AppSettings, GeminiSettings
from expense_scanner.extraction import (
    RECEIPT_PROMPT,
    ApiKeyMissingError,
    ExtractionServiceError,
    ExtractionTimeoutError,
    ReceiptExtractionService,
)


class FakeResponse:
    def __init__(self, text=None, blocked=False):
        self._text = text
        self._blocked = blocked

    @property
    def text(self):
        if self._blocked:
            raise ValueError("response was blocked")
        return self._text


class FakeModel:
    """Mimics GenerativeModel.generate_content_async."""

    def __init__(self, response=None, error=None, delay=0.0):
        self.response = response
        self.error = error
        self.delay = delay
        self.requests = []

    async def generate_content_async(self, contents):
        self.requests.append(contents)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.response


def service_with(model, timeout=30.0):
    service = ReceiptExtractionService(
        GeminiSettings(api_key="test-key", request_timeout_seconds=timeout)
    )
    service._model = model
    return service


class TestReceiptExtractionService:
    """Tests for ReceiptExtractionService."""

    def test_missing_key(self):
        """Test no request is attempted without an API key."""
        service = ReceiptExtractionService(GeminiSettings(api_key="   "))
        with pytest.raises(ApiKeyMissingError):
            asyncio.run(service.analyze_receipt(b"img"))

    def test_returns_raw_text(self):
        """Test the response text is returned untouched."""
        model = FakeModel(FakeResponse('```json\n{"merchant": "X"}\n```'))
        text = asyncio.run(service_with(model).analyze_receipt(b"img", "image/png"))
        assert text == '```json\n{"merchant": "X"}\n```'

        prompt, image = model.requests[0]
        assert prompt == RECEIPT_PROMPT
        assert image == {"mime_type": "image/png", "data": b"img"}

    def test_transport_error(self):
        """Test transport failures are wrapped."""
        model = FakeModel(error=RuntimeError("503 Service Unavailable"))
        with pytest.raises(ExtractionServiceError, match="503"):
            asyncio.run(service_with(model).analyze_receipt(b"img"))

    def test_blocked_response(self):
        """Test a blocked candidate is a service error."""
        model = FakeModel(FakeResponse(blocked=True))
        with pytest.raises(ExtractionServiceError, match="no text"):
            asyncio.run(service_with(model).analyze_receipt(b"img"))

    def test_timeout(self):
        """Test slow answers raise ExtractionTimeoutError."""
        model = FakeModel(FakeResponse("{}"), delay=0.1)
        with pytest.raises(ExtractionTimeoutError) as exc_info:
            asyncio.run(service_with(model, timeout=0.01).analyze_receipt(b"img"))
        assert exc_info.value.timeout_seconds == 0.01

    def test_empty_text(self):
        """Test an empty answer comes back as an empty string."""
        model = FakeModel(FakeResponse(None))
        assert asyncio.run(service_with(model).analyze_receipt(b"img")) == ""

    def test_prompt_offers_fixed_categories(self):
        """Test the prompt lists the extraction categories and not Rent."""
        assert "Food, Travel, Bills, Shopping, Health, Entertainment, Others" in RECEIPT_PROMPT
        assert "Rent" not in RECEIPT_PROMPT


class TestSettings:
    """Tests for configuration defaults."""

    def test_gemini_defaults(self, monkeypatch):
        """Test the Gemini defaults."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        settings = GeminiSettings()
        assert settings.is_configured is False
        assert settings.request_timeout_seconds == 30.0

    def test_app_defaults(self, monkeypatch):
        """Test sequential extraction and JSON storage by default."""
        for name in ("MAX_CONCURRENT_EXTRACTIONS", "STORAGE_BACKEND", "MAX_UPLOAD_SIZE_MB"):
            monkeypatch.delenv(name, raising=False)
        settings = AppSettings()
        assert settings.max_concurrent_extractions == 1
        assert settings.storage_backend == "json"
        assert settings.max_upload_size_bytes == 10 * 1024 * 1024

    def test_rejects_unknown_backend(self):
        """Test the storage backend is validated."""
        with pytest.raises(ValueError):
            AppSettings(storage_backend="postgres")
