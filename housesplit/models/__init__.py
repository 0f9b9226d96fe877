"""
Data Models Package

This package contains all Pydantic models used by housesplit.
All data flowing through the engine must conform to these schemas.
"""

from housesplit.models.expense import (
    CustomAmountSplit,
    CustomPercentSplit,
    EqualSplit,
    Expense,
    ExpenseDraft,
    SplitKind,
    SplitStrategy,
    build_split,
    custom_amounts_balance,
    has_participants,
    is_positive_amount,
    percentages_balance,
    shares_total,
)
from housesplit.models.settlement import (
    Settlement,
    SettlementStatus,
    Transfer,
)
from housesplit.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from housesplit.models.validation import ValidationIssue, ValidationResult

__all__ = [
    # Expense models
    "CustomAmountSplit",
    "CustomPercentSplit",
    "EqualSplit",
    "Expense",
    "ExpenseDraft",
    "SplitKind",
    "SplitStrategy",
    "build_split",
    "custom_amounts_balance",
    "has_participants",
    "is_positive_amount",
    "percentages_balance",
    "shares_total",
    # Settlement models
    "Settlement",
    "SettlementStatus",
    "Transfer",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
