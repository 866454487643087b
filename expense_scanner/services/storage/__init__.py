"""
Storage Services Package

Provides the abstract storage interfaces and their implementations:
in-memory (tests), local JSON file (default) and Google Sheets.
"""

from expense_scanner.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    ExpenseStorageInterface,
    NotFoundError,
    StorageError,
)
from expense_scanner.services.storage.json_file import JsonFileExpenseStorage
from expense_scanner.services.storage.memory import InMemoryExpenseStorage

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ExpenseStorageInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryExpenseStorage",
    "JsonFileExpenseStorage",
]
