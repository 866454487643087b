"""
Local JSON File Storage

DESIGN DECISION: The default backend is a single JSON document on disk,
the same shape of data a phone keeps in its key-value store:

    {
        "expenses": [ {...}, {...} ],
        "preferences": { "custom_categories": [...], ... }
    }

Every write rewrites the whole file through a temporary file and an
atomic rename, so a crash never leaves a half-written document.

Rows that no longer validate are skipped on read (and logged) rather
than failing the whole load. Dates are NOT re-validated here: old rows
with unparseable dates are kept and the query engine shows them.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from expense_scanner.models.expense import ExpenseRecord, Preferences
from expense_scanner.services.storage.interface import (
    ExpenseStorageInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)


class JsonFileExpenseStorage(ExpenseStorageInterface):
    """Expense and preference storage in one JSON file."""

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_document(self) -> dict:
        if not self._path.exists():
            return {"expenses": [], "preferences": {}}
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                document = json.load(fh)
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read {self._path}: {e}")
        if not isinstance(document, dict):
            raise StorageError(f"Unexpected document in {self._path}")
        document.setdefault("expenses", [])
        document.setdefault("preferences", {})
        return document

    def _write_document(self, document: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=f".{self._path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self._path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write {self._path}: {e}")

    def _load_expenses(self, document: dict) -> list[ExpenseRecord]:
        expenses = []
        for idx, row in enumerate(document["expenses"]):
            try:
                expenses.append(ExpenseRecord.model_validate(row))
            except ValidationError as e:
                logger.warning(
                    "skipped_malformed_expense",
                    path=str(self._path),
                    row_index=idx,
                    error_count=e.error_count(),
                )
        return expenses

    @staticmethod
    def _dump_expenses(expenses: list[ExpenseRecord]) -> list[dict]:
        return [expense.model_dump(mode="json") for expense in expenses]

    async def add_expenses(self, expenses: list[ExpenseRecord]) -> int:
        document = self._read_document()
        document["expenses"] = self._dump_expenses(expenses) + document["expenses"]
        self._write_document(document)
        return len(expenses)

    async def get_expense(self, expense_id: UUID) -> Optional[ExpenseRecord]:
        for expense in self._load_expenses(self._read_document()):
            if expense.id == expense_id:
                return expense
        return None

    async def update_expense(self, expense: ExpenseRecord) -> bool:
        document = self._read_document()
        rows = document["expenses"]
        for idx, row in enumerate(rows):
            if isinstance(row, dict) and row.get("id") == str(expense.id):
                rows[idx] = expense.model_dump(mode="json")
                self._write_document(document)
                return True
        raise NotFoundError(f"Expense not found: {expense.id}")

    async def delete_expense(self, expense_id: UUID) -> bool:
        document = self._read_document()
        rows = document["expenses"]
        kept = [
            row for row in rows
            if not (isinstance(row, dict) and row.get("id") == str(expense_id))
        ]
        if len(kept) == len(rows):
            return False
        document["expenses"] = kept
        self._write_document(document)
        return True

    async def list_expenses(self) -> list[ExpenseRecord]:
        return self._load_expenses(self._read_document())

    async def load_preferences(self) -> Preferences:
        raw = self._read_document()["preferences"]
        try:
            return Preferences.model_validate(raw or {})
        except ValidationError as e:
            logger.warning(
                "preferences_reset",
                path=str(self._path),
                error_count=e.error_count(),
            )
            return Preferences()

    async def save_preferences(self, preferences: Preferences) -> bool:
        document = self._read_document()
        document["preferences"] = preferences.model_dump(mode="json")
        self._write_document(document)
        return True
