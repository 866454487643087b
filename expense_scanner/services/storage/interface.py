"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the default on-device JSON file and offer Google Sheets as an option
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The core owns no storage format. It needs exactly two things:
the ordered expense list and the user's preferences.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from expense_scanner.models.audit import AuditEvent
from expense_scanner.models.expense import ExpenseRecord, Preferences


class ExpenseStorageInterface(ABC):
    """
    Abstract interface for expense storage operations.

    Storage keeps expenses in display order: the most recently added
    batch first.
    """

    @abstractmethod
    async def add_expenses(self, expenses: list[ExpenseRecord]) -> int:
        """
        Store new expenses ahead of the existing ones.

        Args:
            expenses: New records, in the order they should appear

        Returns:
            Number of records stored

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get_expense(self, expense_id: UUID) -> Optional[ExpenseRecord]:
        """
        Retrieve an expense by its ID.

        Returns:
            The expense if found, None otherwise
        """
        pass

    @abstractmethod
    async def update_expense(self, expense: ExpenseRecord) -> bool:
        """
        Replace the stored expense that has the same ID.

        Raises:
            NotFoundError: If no expense has this ID
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: UUID) -> bool:
        """
        Delete an expense by ID.

        Returns:
            True if an expense was removed, False if none had this ID
        """
        pass

    @abstractmethod
    async def list_expenses(self) -> list[ExpenseRecord]:
        """Every stored expense, in stored order."""
        pass

    @abstractmethod
    async def load_preferences(self) -> Preferences:
        """Stored preferences, or defaults when nothing was saved yet."""
        pass

    @abstractmethod
    async def save_preferences(self, preferences: Preferences) -> bool:
        """Overwrite the stored preferences."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
