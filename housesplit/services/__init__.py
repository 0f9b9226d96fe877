"""Services package."""

from housesplit.services.storage import (
    AuditStorageInterface,
    DuplicateError,
    ExpenseStorageInterface,
    InMemoryAuditStorage,
    InMemoryExpenseStorage,
    InMemorySettlementStorage,
    NotFoundError,
    SettlementStorageInterface,
    StorageError,
    TransientStorageError,
)

__all__ = [
    "AuditStorageInterface",
    "DuplicateError",
    "ExpenseStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryExpenseStorage",
    "InMemorySettlementStorage",
    "NotFoundError",
    "SettlementStorageInterface",
    "StorageError",
    "TransientStorageError",
]
