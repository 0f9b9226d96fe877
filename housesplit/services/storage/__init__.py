"""
Storage Services Package

Provides the abstract interfaces for the external record store and an
in-memory implementation.
"""

from housesplit.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    ExpenseStorageInterface,
    NotFoundError,
    SettlementStorageInterface,
    StorageError,
    TransientStorageError,
)
from housesplit.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryExpenseStorage,
    InMemorySettlementStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ExpenseStorageInterface",
    "SettlementStorageInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    "TransientStorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryExpenseStorage",
    "InMemorySettlementStorage",
]
