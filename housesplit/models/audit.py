"""
Audit Models for housesplit

Every change to money-relevant data is logged for audit purposes.
This provides:
1. Traceability of who marked what as paid, and when it was confirmed
2. Debugging information when balances look wrong
3. Ability to reconstruct history for a period

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from housesplit.models.expense import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Expenses
    EXPENSE_SAVED = "expense_saved"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    EXPENSE_VALIDATION_FAILED = "expense_validation_failed"
    EXPENSE_RECORD_SKIPPED = "expense_record_skipped"

    # Settlements
    SETTLEMENT_MARKED_PAID = "settlement_marked_paid"
    SETTLEMENT_CONFIRMED = "settlement_confirmed"
    SETTLEMENT_TRANSITION_REJECTED = "settlement_transition_rejected"

    # Ledger
    BALANCE_DRIFT_DETECTED = "balance_drift_detected"
    PERIOD_SETTLED = "period_settled"
    BUDGET_THRESHOLD_REACHED = "budget_threshold_reached"

    # System events
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity ('expense', 'settlement', 'period')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    period: Optional[str] = Field(
        default=None,
        description="Period the event belongs to, if any"
    )
    actor: Optional[str] = Field(
        default=None,
        description="Member who triggered the event, if known"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "period": self.period,
            "actor": self.actor,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_saved(expense, correlation_id)
        event = AuditEventBuilder.settlement_confirmed(settlement, actor, correlation_id)
    """

    @staticmethod
    def expense_saved(
        expense_id: UUID,
        payer: str,
        amount: str,
        period: str,
        correlation_id: Optional[UUID] = None,
        updated: bool = False,
    ) -> AuditEvent:
        verb = "updated" if updated else "saved"
        return AuditEvent(
            event_type=(
                AuditEventType.EXPENSE_UPDATED
                if updated
                else AuditEventType.EXPENSE_SAVED
            ),
            entity_type="expense",
            entity_id=expense_id,
            period=period,
            actor=payer,
            correlation_id=correlation_id,
            description=f"Expense {verb}: {payer} paid {amount}",
            details={"amount": amount},
        )

    @staticmethod
    def expense_deleted(
        expense_id: UUID,
        actor: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            entity_type="expense",
            entity_id=expense_id,
            actor=actor,
            correlation_id=correlation_id,
            description="Expense deleted",
        )

    @staticmethod
    def expense_validation_failed(
        draft_id: UUID,
        issues: list[dict],
        actor: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="expense_draft",
            entity_id=draft_id,
            actor=actor,
            correlation_id=correlation_id,
            description=f"Expense rejected with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def expense_record_skipped(
        record_id: Optional[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_RECORD_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="expense",
            correlation_id=correlation_id,
            description="Malformed expense record skipped",
            details={"record_id": record_id, "reason": reason},
        )

    @staticmethod
    def settlement_marked_paid(
        settlement_id: UUID,
        debtor: str,
        creditor: str,
        amount: str,
        period: str,
        has_proof: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_MARKED_PAID,
            entity_type="settlement",
            entity_id=settlement_id,
            period=period,
            actor=debtor,
            correlation_id=correlation_id,
            description=f"{debtor} marked {amount} to {creditor} as paid",
            details={
                "creditor": creditor,
                "amount": amount,
                "has_proof": has_proof,
            },
        )

    @staticmethod
    def settlement_confirmed(
        settlement_id: UUID,
        debtor: str,
        creditor: str,
        amount: str,
        period: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_CONFIRMED,
            entity_type="settlement",
            entity_id=settlement_id,
            period=period,
            actor=creditor,
            correlation_id=correlation_id,
            description=f"{creditor} confirmed receiving {amount} from {debtor}",
            details={"debtor": debtor, "amount": amount},
        )

    @staticmethod
    def settlement_transition_rejected(
        settlement_id: Optional[UUID],
        error_code: str,
        error_message: str,
        actor: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_TRANSITION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="settlement",
            entity_id=settlement_id,
            actor=actor,
            correlation_id=correlation_id,
            description="Settlement transition rejected",
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def balance_drift_detected(
        period: str,
        drift: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_DRIFT_DETECTED,
            severity=AuditSeverity.WARNING,
            entity_type="period",
            period=period,
            correlation_id=correlation_id,
            description=f"Balances for {period} do not sum to zero (drift {drift})",
            details={"drift": drift},
        )

    @staticmethod
    def budget_threshold_reached(
        category: str,
        period: str,
        spent: str,
        limit: str,
        percent: str,
        exceeded: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_THRESHOLD_REACHED,
            severity=AuditSeverity.WARNING,
            entity_type="period",
            period=period,
            correlation_id=correlation_id,
            description=(
                f"Budget for {category} exceeded ({spent} / {limit})"
                if exceeded
                else f"Budget for {category} at {percent}%"
            ),
            details={
                "category": category,
                "spent": spent,
                "limit": limit,
                "percent": percent,
                "exceeded": exceeded,
            },
        )

    @staticmethod
    def period_settled(
        period: str,
        transfer_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERIOD_SETTLED,
            entity_type="period",
            period=period,
            correlation_id=correlation_id,
            description=f"All {transfer_count} transfers for {period} confirmed",
            details={"transfer_count": transfer_count},
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
