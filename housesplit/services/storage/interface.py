"""
Abstract Storage Interface

DESIGN DECISION: The record store is an external collaborator.
The engine never owns durability. It reads snapshots and writes single
records through this interface, so that:
1. Any CRUD backend with change notification can be plugged in
2. In-memory storage can be used for testing
3. Concurrency arbitration stays with the backend (last write wins
   per record)

The interface is intentionally small - just the operations the
settlement flows need.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional, Union
from uuid import UUID

from housesplit.models.audit import AuditEvent
from housesplit.models.expense import Expense
from housesplit.models.settlement import Settlement

PeriodFilter = Union[str, Iterable[str], None]


class ExpenseStorageInterface(ABC):
    """
    Abstract interface for expense storage operations.
    """

    @abstractmethod
    async def save_expense(self, expense: Expense) -> bool:
        """
        Save a new expense.

        Raises:
            DuplicateError: If an expense with this ID already exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        """Retrieve an expense by ID, or None."""
        pass

    @abstractmethod
    async def update_expense(self, expense: Expense) -> bool:
        """
        Replace an existing expense.

        Raises:
            NotFoundError: If the expense doesn't exist
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: UUID) -> bool:
        """
        Delete an expense by ID.

        Raises:
            NotFoundError: If the expense doesn't exist
        """
        pass

    @abstractmethod
    async def list_expenses(self, periods: PeriodFilter = None) -> list[Expense]:
        """
        List expenses, optionally restricted to one or more periods.

        Returns expenses in insertion order.
        """
        pass


class SettlementStorageInterface(ABC):
    """
    Abstract interface for settlement storage.

    Settlements are never deleted through this interface.
    """

    @abstractmethod
    async def save_settlement(self, settlement: Settlement) -> bool:
        """
        Save a new settlement.

        Raises:
            DuplicateError: If a settlement with this ID or key already exists
        """
        pass

    @abstractmethod
    async def update_settlement(self, settlement: Settlement) -> bool:
        """
        Replace an existing settlement.

        Raises:
            NotFoundError: If the settlement doesn't exist
        """
        pass

    @abstractmethod
    async def get_settlement(self, settlement_id: UUID) -> Optional[Settlement]:
        pass

    @abstractmethod
    async def list_settlements(
        self,
        periods: PeriodFilter = None,
    ) -> list[Settlement]:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.
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


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class TransientStorageError(StorageError):
    """The store was temporarily unavailable; the write may be retried."""
    pass
