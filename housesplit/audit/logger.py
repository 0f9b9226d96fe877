"""
Audit Logger

DESIGN DECISION: Every money-relevant action is logged.
Marking a payment, confirming it, and saving an expense all leave a
trace, both in the structured local log and (if configured) in the
audit store.

The audit logger:
- Is async, like the storage it writes to
- Gracefully handles storage failures (doesn't break the flow if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from housesplit.models.audit import AuditEvent, AuditEventBuilder
from housesplit.services.storage import AuditStorageInterface


structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit store (for history), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("housesplit.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_expense_saved(
        self,
        expense_id: UUID,
        payer: str,
        amount: str,
        period: str,
        correlation_id: Optional[UUID] = None,
        updated: bool = False,
    ) -> None:
        await self.log(AuditEventBuilder.expense_saved(
            expense_id=expense_id,
            payer=payer,
            amount=amount,
            period=period,
            correlation_id=correlation_id,
            updated=updated,
        ))

    async def log_expense_deleted(
        self,
        expense_id: UUID,
        actor: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_deleted(
            expense_id=expense_id,
            actor=actor,
            correlation_id=correlation_id,
        ))

    async def log_expense_rejected(
        self,
        draft_id: UUID,
        issues: list[dict],
        actor: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an expense that failed validation."""
        await self.log(AuditEventBuilder.expense_validation_failed(
            draft_id=draft_id,
            issues=issues,
            actor=actor,
            correlation_id=correlation_id,
        ))

    async def log_record_skipped(
        self,
        record_id: Optional[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_record_skipped(
            record_id=record_id,
            reason=reason,
            correlation_id=correlation_id,
        ))

    async def log_settlement_paid(
        self,
        settlement_id: UUID,
        debtor: str,
        creditor: str,
        amount: str,
        period: str,
        has_proof: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_marked_paid(
            settlement_id=settlement_id,
            debtor=debtor,
            creditor=creditor,
            amount=amount,
            period=period,
            has_proof=has_proof,
            correlation_id=correlation_id,
        ))

    async def log_settlement_confirmed(
        self,
        settlement_id: UUID,
        debtor: str,
        creditor: str,
        amount: str,
        period: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_confirmed(
            settlement_id=settlement_id,
            debtor=debtor,
            creditor=creditor,
            amount=amount,
            period=period,
            correlation_id=correlation_id,
        ))

    async def log_transition_rejected(
        self,
        settlement_id: Optional[UUID],
        error_code: str,
        error_message: str,
        actor: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_transition_rejected(
            settlement_id=settlement_id,
            error_code=error_code,
            error_message=error_message,
            actor=actor,
            correlation_id=correlation_id,
        ))

    async def log_balance_drift(
        self,
        period: str,
        drift: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.balance_drift_detected(
            period=period,
            drift=drift,
            correlation_id=correlation_id,
        ))

    async def log_budget_threshold(
        self,
        category: str,
        period: str,
        spent: str,
        limit: str,
        percent: str,
        exceeded: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.budget_threshold_reached(
            category=category,
            period=period,
            spent=spent,
            limit=limit,
            percent=percent,
            exceeded=exceeded,
            correlation_id=correlation_id,
        ))

    async def log_period_settled(
        self,
        period: str,
        transfer_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.period_settled(
            period=period,
            transfer_count=transfer_count,
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., marking a payment).
    Pass it through all subsequent operations.
    """
    return uuid4()
