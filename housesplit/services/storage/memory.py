"""
In-Memory Storage Implementation

Used for tests and for embedding the engine in a process that keeps
its own records. Mirrors what the real store gives us:
- record-level replace (last write wins)
- a change notification after every mutation

Listeners are called synchronously with (table, action, record_id).
Consumers are expected to re-snapshot and recompute on each call.
"""

from typing import Callable, Optional
from uuid import UUID

from housesplit.models.audit import AuditEvent
from housesplit.models.expense import Expense
from housesplit.models.settlement import Settlement
from housesplit.periods import normalize_periods
from housesplit.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    ExpenseStorageInterface,
    NotFoundError,
    PeriodFilter,
    SettlementStorageInterface,
)

ChangeListener = Callable[[str, str, UUID], None]


class _Notifier:
    """Keeps change listeners for one store."""

    table = ""

    def __init__(self):
        self._listeners: list[ChangeListener] = []

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        """
        Register a change listener.

        Returns a function that removes it again.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self, action: str, record_id: UUID) -> None:
        for listener in list(self._listeners):
            listener(self.table, action, record_id)


class InMemoryExpenseStorage(_Notifier, ExpenseStorageInterface):
    """Expense storage backed by a dict."""

    table = "expenses"

    def __init__(self, expenses: Optional[list[Expense]] = None):
        super().__init__()
        self._expenses: dict[UUID, Expense] = {}
        for expense in expenses or []:
            self._expenses[expense.id] = expense

    async def save_expense(self, expense: Expense) -> bool:
        if expense.id in self._expenses:
            raise DuplicateError(f"Expense already exists: {expense.id}")
        self._expenses[expense.id] = expense
        self._notify("insert", expense.id)
        return True

    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        return self._expenses.get(expense_id)

    async def update_expense(self, expense: Expense) -> bool:
        if expense.id not in self._expenses:
            raise NotFoundError(f"Expense not found: {expense.id}")
        self._expenses[expense.id] = expense
        self._notify("update", expense.id)
        return True

    async def delete_expense(self, expense_id: UUID) -> bool:
        if expense_id not in self._expenses:
            raise NotFoundError(f"Expense not found: {expense_id}")
        del self._expenses[expense_id]
        self._notify("delete", expense_id)
        return True

    async def list_expenses(self, periods: PeriodFilter = None) -> list[Expense]:
        wanted = normalize_periods(periods)
        return [
            e for e in self._expenses.values()
            if wanted is None or e.period in wanted
        ]


class InMemorySettlementStorage(_Notifier, SettlementStorageInterface):
    """
    Settlement storage backed by a dict.

    Enforces one record per (debtor, creditor, period), the way a
    unique index would in a real backend.
    """

    table = "settlements"

    def __init__(self, settlements: Optional[list[Settlement]] = None):
        super().__init__()
        self._settlements: dict[UUID, Settlement] = {}
        for settlement in settlements or []:
            self._settlements[settlement.id] = settlement

    async def save_settlement(self, settlement: Settlement) -> bool:
        if settlement.id in self._settlements:
            raise DuplicateError(f"Settlement already exists: {settlement.id}")
        if any(s.key == settlement.key for s in self._settlements.values()):
            raise DuplicateError(
                f"Settlement already recorded for {settlement.key}"
            )
        self._settlements[settlement.id] = settlement
        self._notify("insert", settlement.id)
        return True

    async def update_settlement(self, settlement: Settlement) -> bool:
        if settlement.id not in self._settlements:
            raise NotFoundError(f"Settlement not found: {settlement.id}")
        self._settlements[settlement.id] = settlement
        self._notify("update", settlement.id)
        return True

    async def get_settlement(self, settlement_id: UUID) -> Optional[Settlement]:
        return self._settlements.get(settlement_id)

    async def list_settlements(
        self,
        periods: PeriodFilter = None,
    ) -> list[Settlement]:
        wanted = normalize_periods(periods)
        return [
            s for s in self._settlements.values()
            if wanted is None or s.period in wanted
        ]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
