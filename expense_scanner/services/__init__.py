"""Services package."""

from expense_scanner.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    ExpenseStorageInterface,
    InMemoryExpenseStorage,
    JsonFileExpenseStorage,
    NotFoundError,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "ExpenseStorageInterface",
    "InMemoryExpenseStorage",
    "JsonFileExpenseStorage",
    "NotFoundError",
    "StorageError",
]
