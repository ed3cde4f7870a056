"""
In-Memory Storage

Keeps expenses and audit events in process memory. Used by the test
suite and as the fallback backend when Google Sheets is not configured
(data is lost on restart; the UI says so).
"""

from typing import Optional
from uuid import UUID

from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.expense import Expense
from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    ExpenseStorageInterface,
    NotFoundError,
)


class InMemoryExpenseStorage(ExpenseStorageInterface):
    """Dict-backed expense table keyed by id."""

    def __init__(self, expenses: Optional[list[Expense]] = None):
        self._rows: dict[str, Expense] = {}
        for expense in expenses or []:
            self._rows[expense.id] = expense.model_copy()

    async def list_expenses(self) -> list[Expense]:
        rows = [expense.model_copy() for expense in self._rows.values()]
        rows.sort(key=lambda e: e.created_at, reverse=True)
        return rows

    async def create_expense(self, expense: Expense) -> Expense:
        if expense.id in self._rows:
            raise DuplicateError(f"Expense already exists: {expense.id}")
        self._rows[expense.id] = expense.model_copy()
        return expense.model_copy()

    async def update_expense(self, expense: Expense) -> Expense:
        if expense.id not in self._rows:
            raise NotFoundError(f"Expense not found: {expense.id}")
        self._rows[expense.id] = expense.model_copy()
        return expense.model_copy()

    async def delete_expense(self, expense_id: str) -> None:
        self._rows.pop(expense_id, None)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
