"""
In-memory storage.

Used by tests and by callers that persist elsewhere. Holds records and
audit events in plain lists; nothing survives the process.
"""

from typing import Optional
from uuid import UUID

from expense_scanner.models.audit import AuditEvent
from expense_scanner.models.expense import ExpenseRecord, Preferences
from expense_scanner.services.storage.interface import (
    AuditStorageInterface,
    ExpenseStorageInterface,
    NotFoundError,
)


class InMemoryExpenseStorage(ExpenseStorageInterface, AuditStorageInterface):
    """Expense, preference and audit storage backed by Python lists."""

    def __init__(
        self,
        expenses: Optional[list[ExpenseRecord]] = None,
        preferences: Optional[Preferences] = None,
    ):
        self._expenses: list[ExpenseRecord] = list(expenses or [])
        self._preferences = preferences or Preferences()
        self._events: list[AuditEvent] = []

    async def add_expenses(self, expenses: list[ExpenseRecord]) -> int:
        self._expenses[:0] = expenses
        return len(expenses)

    async def get_expense(self, expense_id: UUID) -> Optional[ExpenseRecord]:
        for expense in self._expenses:
            if expense.id == expense_id:
                return expense
        return None

    async def update_expense(self, expense: ExpenseRecord) -> bool:
        for idx, existing in enumerate(self._expenses):
            if existing.id == expense.id:
                self._expenses[idx] = expense
                return True
        raise NotFoundError(f"Expense not found: {expense.id}")

    async def delete_expense(self, expense_id: UUID) -> bool:
        before = len(self._expenses)
        self._expenses = [e for e in self._expenses if e.id != expense_id]
        return len(self._expenses) < before

    async def list_expenses(self) -> list[ExpenseRecord]:
        return list(self._expenses)

    async def load_preferences(self) -> Preferences:
        return self._preferences.model_copy(deep=True)

    async def save_preferences(self, preferences: Preferences) -> bool:
        self._preferences = preferences.model_copy(deep=True)
        return True

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
