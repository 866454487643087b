"""
Shared test fixtures.

No test talks to Gemini or Google Sheets: scanning goes through
FakeExtractionService, storage through the in-memory backend.
"""

from datetime import date

import pytest

from expense_scanner.audit import AuditLogger
from expense_scanner.services.storage import InMemoryExpenseStorage

from tests.factories import TODAY


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def storage() -> InMemoryExpenseStorage:
    return InMemoryExpenseStorage()


@pytest.fixture
def audit_logger(storage) -> AuditLogger:
    return AuditLogger(storage)
