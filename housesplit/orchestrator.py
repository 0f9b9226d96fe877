"""
Main Orchestrator for housesplit

This module ties the pure engine to the external record store and
defines the end-to-end flows for:
1. Expenses (draft -> validate -> save/update/delete, record import)
2. Settlements (snapshot -> transition -> persist)
3. Ledger (snapshot -> balances, transfers, net)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No draft is stored without passing validation
- Imported records that do not parse are skipped, never half-saved
- No settlement moves except through the tracker's transitions
- Every mutation is audited

The engine never holds derived state. Every ledger request reads a
fresh snapshot from storage and recomputes.

Writes that fail with TransientStorageError are retried (tenacity);
any other StorageError propagates to the caller.
"""

from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence
from uuid import UUID

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from housesplit.audit import AuditLogger, create_correlation_id
from housesplit.config import get_settings
from housesplit.engine import (
    BudgetState,
    BudgetUsage,
    PeriodLedger,
    budget_usage,
    build_period_ledger,
    category_totals,
    load_expenses,
)
from housesplit.models.expense import Expense, ExpenseDraft, utcnow
from housesplit.models.settlement import Settlement, SettlementStatus, Transfer
from housesplit.models.validation import ValidationResult
from housesplit.services.storage import (
    AuditStorageInterface,
    ExpenseStorageInterface,
    InMemoryAuditStorage,
    InMemoryExpenseStorage,
    InMemorySettlementStorage,
    NotFoundError,
    SettlementStorageInterface,
    StorageError,
    TransientStorageError,
)
from housesplit.settlement import tracker
from housesplit.settlement.tracker import SettlementError
from housesplit.validation import ExpenseValidator


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(TransientStorageError),
    reraise=True,
)
async def _persist(operation, *args):
    """Run a storage write, retrying while the store is unavailable."""
    return await operation(*args)


class ExpenseFlow:
    """
    Orchestrates expense changes.

    Flow:
    1. Draft -> two-stage validation
    2. Rejected drafts are audited and returned with their issues
    3. Valid drafts become Expenses and are persisted

    Who may edit or delete an expense is decided by the caller.
    """

    def __init__(
        self,
        expense_storage: ExpenseStorageInterface,
        validator: Optional[ExpenseValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        budgets: Optional[Mapping[str, Decimal]] = None,
    ):
        """
        Args:
            budgets: Monthly limit per category. Defaults to configuration.
        """
        self._storage = expense_storage
        self._validator = validator or ExpenseValidator()
        self._audit_logger = audit_logger
        if budgets is None:
            budgets = get_settings().household.budgets
        self._budgets = dict(budgets)

    async def _reject(
        self,
        draft: ExpenseDraft,
        result: ValidationResult,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in result.issues
                if i.severity == "error"
            ]
            await self._audit_logger.log_expense_rejected(
                draft_id=draft.draft_id,
                issues=issues,
                actor=draft.payer,
                correlation_id=correlation_id,
            )

    async def _check_budget(self, expense: Expense, correlation_id: UUID) -> None:
        """Audit a category that reached its warning share or its limit."""
        if not self._audit_logger or expense.category not in self._budgets:
            return
        totals = category_totals(
            await self._storage.list_expenses(expense.period),
        )
        usage = budget_usage(
            totals, {expense.category: self._budgets[expense.category]},
        )[expense.category]
        if usage.state == BudgetState.OK:
            return
        await self._audit_logger.log_budget_threshold(
            category=usage.category,
            period=expense.period,
            spent=str(usage.spent),
            limit=str(usage.limit),
            percent=str(usage.percent),
            exceeded=usage.state == BudgetState.EXCEEDED,
            correlation_id=correlation_id,
        )

    async def submit(
        self,
        draft: ExpenseDraft,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[ValidationResult, Optional[Expense]]:
        """
        Validate and save a new expense.

        Returns:
            (validation_result, expense). expense is None when the
            draft was rejected.
        """
        correlation_id = correlation_id or create_correlation_id()

        result = self._validator.validate(draft)
        if not result.is_valid:
            await self._reject(draft, result, correlation_id)
            return result, None

        expense = draft.to_expense()
        try:
            await _persist(self._storage.save_expense, expense)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation="save_expense",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_expense_saved(
                expense_id=expense.id,
                payer=expense.payer,
                amount=str(expense.amount),
                period=expense.period,
                correlation_id=correlation_id,
            )
        await self._check_budget(expense, correlation_id)
        return result, expense

    async def edit(
        self,
        expense_id: UUID,
        draft: ExpenseDraft,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[ValidationResult, Optional[Expense]]:
        """
        Replace an existing expense with a validated draft.

        The expense keeps its ID and creation time.

        Raises:
            NotFoundError: If the expense doesn't exist
        """
        correlation_id = correlation_id or create_correlation_id()

        existing = await self._storage.get_expense(expense_id)
        if existing is None:
            raise NotFoundError(f"Expense not found: {expense_id}")

        result = self._validator.validate(draft)
        if not result.is_valid:
            await self._reject(draft, result, correlation_id)
            return result, None

        expense = draft.to_expense(expense_id=expense_id).model_copy(update={
            "created_at": existing.created_at,
            "updated_at": utcnow(),
        })
        await _persist(self._storage.update_expense, expense)

        if self._audit_logger:
            await self._audit_logger.log_expense_saved(
                expense_id=expense.id,
                payer=expense.payer,
                amount=str(expense.amount),
                period=expense.period,
                correlation_id=correlation_id,
                updated=True,
            )
        await self._check_budget(expense, correlation_id)
        return result, expense

    async def delete(
        self,
        expense_id: UUID,
        actor: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete an expense.

        Raises:
            NotFoundError: If the expense doesn't exist
        """
        correlation_id = correlation_id or create_correlation_id()

        await _persist(self._storage.delete_expense, expense_id)

        if self._audit_logger:
            await self._audit_logger.log_expense_deleted(
                expense_id=expense_id,
                actor=actor,
                correlation_id=correlation_id,
            )

    async def import_records(
        self,
        records: Iterable[Mapping[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> tuple[list[Expense], list[tuple[Optional[str], str]]]:
        """
        Load stored expense records into this store.

        Records that no longer parse are skipped and audited; the rest
        are saved as they are, without the membership checks a new
        draft goes through.

        Returns:
            (imported_expenses, [(record_id, reason), ...] for skipped records)
        """
        correlation_id = correlation_id or create_correlation_id()

        skipped: list[tuple[Optional[str], str]] = []
        expenses = load_expenses(records, skipped=skipped)

        if self._audit_logger:
            for record_id, reason in skipped:
                await self._audit_logger.log_record_skipped(
                    record_id=record_id,
                    reason=reason,
                    correlation_id=correlation_id,
                )

        for expense in expenses:
            await _persist(self._storage.save_expense, expense)
            if self._audit_logger:
                await self._audit_logger.log_expense_saved(
                    expense_id=expense.id,
                    payer=expense.payer,
                    amount=str(expense.amount),
                    period=expense.period,
                    correlation_id=correlation_id,
                )
        return expenses, skipped


class SettlementFlow:
    """
    Orchestrates the payment confirmation workflow.

    Flow:
    1. Debtor marks a transfer as paid (optionally with proof)
    2. Creditor confirms receipt
    3. Net balances change only after step 2

    Settlements are never deleted here.
    """

    def __init__(
        self,
        settlement_storage: SettlementStorageInterface,
        expense_storage: Optional[ExpenseStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        members: Optional[Sequence[str]] = None,
    ):
        self._storage = settlement_storage
        self._expense_storage = expense_storage
        self._audit_logger = audit_logger
        self._members = members

    async def status(
        self,
        debtor: str,
        creditor: str,
        period: str,
    ) -> SettlementStatus:
        snapshot = await self._storage.list_settlements(period)
        return tracker.status_of(snapshot, debtor, creditor, period)

    async def mark_paid(
        self,
        debtor: str,
        creditor: str,
        period: str,
        amount: Decimal,
        proof: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Settlement:
        """
        Record a payment from debtor to creditor.

        Creates the settlement on the first call; later calls refresh
        the payment time and proof without moving the status back.
        """
        correlation_id = correlation_id or create_correlation_id()

        snapshot = await self._storage.list_settlements(period)
        existing = tracker.find_settlement(snapshot, debtor, creditor, period)
        settlement = tracker.mark_paid(
            snapshot, debtor, creditor, period, amount, proof=proof,
        )

        if existing is None:
            await _persist(self._storage.save_settlement, settlement)
        else:
            await _persist(self._storage.update_settlement, settlement)

        if self._audit_logger:
            await self._audit_logger.log_settlement_paid(
                settlement_id=settlement.id,
                debtor=debtor,
                creditor=creditor,
                amount=str(settlement.amount),
                period=period,
                has_proof=settlement.proof is not None,
                correlation_id=correlation_id,
            )
        return settlement

    async def mark_transfer_paid(
        self,
        transfer: Transfer,
        period: str,
        proof: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Settlement:
        """Mark a suggested transfer as paid, using its amount."""
        return await self.mark_paid(
            transfer.from_member,
            transfer.to_member,
            period,
            transfer.amount,
            proof=proof,
            correlation_id=correlation_id,
        )

    async def confirm(
        self,
        settlement_id: UUID,
        actor: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Settlement:
        """
        Confirm receipt of a paid settlement.

        Raises:
            SettlementNotFoundError: Nothing was marked as paid
            InvalidTransitionError: Already confirmed
        """
        correlation_id = correlation_id or create_correlation_id()

        snapshot = await self._storage.list_settlements()
        try:
            settlement = tracker.confirm(snapshot, settlement_id)
        except SettlementError as e:
            if self._audit_logger:
                await self._audit_logger.log_transition_rejected(
                    settlement_id=settlement_id,
                    error_code=e.error_code,
                    error_message=str(e),
                    actor=actor,
                    correlation_id=correlation_id,
                )
            raise

        await _persist(self._storage.update_settlement, settlement)

        if self._audit_logger:
            await self._audit_logger.log_settlement_confirmed(
                settlement_id=settlement.id,
                debtor=settlement.debtor,
                creditor=settlement.creditor,
                amount=str(settlement.amount),
                period=settlement.period,
                correlation_id=correlation_id,
            )
            await self._check_period_settled(settlement.period, correlation_id)

        return settlement

    async def _check_period_settled(
        self,
        period: str,
        correlation_id: UUID,
    ) -> None:
        """Audit the moment the last transfer of a period is confirmed."""
        if self._expense_storage is None:
            return
        ledger = build_period_ledger(
            await self._expense_storage.list_expenses(period),
            await self._storage.list_settlements(period),
            period,
            members=self._members,
        )
        if ledger.is_settled:
            await self._audit_logger.log_period_settled(
                period=period,
                transfer_count=len(ledger.transfers),
                correlation_id=correlation_id,
            )


class LedgerFlow:
    """
    Builds period ledgers from fresh storage snapshots.

    Call period_ledger again after every change notification from the
    store; nothing is cached between calls.
    """

    def __init__(
        self,
        expense_storage: ExpenseStorageInterface,
        settlement_storage: SettlementStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        members: Optional[Sequence[str]] = None,
        budgets: Optional[Mapping[str, Decimal]] = None,
    ):
        self._expenses = expense_storage
        self._settlements = settlement_storage
        self._audit_logger = audit_logger
        self._members = members
        if budgets is None:
            budgets = get_settings().household.budgets
        self._budgets = dict(budgets)

    async def period_ledger(
        self,
        period: str,
        correlation_id: Optional[UUID] = None,
    ) -> PeriodLedger:
        """
        Balances, transfers and net balances for one period.

        Drift in the gross balances is reported to the audit log,
        never corrected.
        """
        ledger = build_period_ledger(
            await self._expenses.list_expenses(period),
            await self._settlements.list_settlements(period),
            period,
            members=self._members,
        )

        if ledger.has_drift and self._audit_logger:
            await self._audit_logger.log_balance_drift(
                period=period,
                drift=str(ledger.drift),
                correlation_id=correlation_id,
            )
        return ledger

    async def budget_report(self, period: str) -> dict[str, BudgetUsage]:
        """Spending against every category budget for one period."""
        totals = category_totals(await self._expenses.list_expenses(period))
        return budget_usage(totals, self._budgets)


def create_app_components(
    audit_storage: Optional[AuditStorageInterface] = None,
    members: Optional[Sequence[str]] = None,
    budgets: Optional[Mapping[str, Decimal]] = None,
) -> tuple[ExpenseFlow, SettlementFlow, LedgerFlow]:
    """
    Factory function to wire all flows against in-memory storage.

    Args:
        audit_storage: Where audit events are persisted.
                       Defaults to an in-memory log.
        members: Household members; defaults to configuration.
        budgets: Monthly limit per category; defaults to configuration.

    Returns:
        (expense_flow, settlement_flow, ledger_flow)
    """
    if members is None:
        members = get_settings().household.members_list
    if budgets is None:
        budgets = get_settings().household.budgets

    expense_storage = InMemoryExpenseStorage()
    settlement_storage = InMemorySettlementStorage()
    audit_logger = AuditLogger(audit_storage or InMemoryAuditStorage())

    expense_flow = ExpenseFlow(
        expense_storage=expense_storage,
        validator=ExpenseValidator(members),
        audit_logger=audit_logger,
        budgets=budgets,
    )
    settlement_flow = SettlementFlow(
        settlement_storage=settlement_storage,
        expense_storage=expense_storage,
        audit_logger=audit_logger,
        members=members,
    )
    ledger_flow = LedgerFlow(
        expense_storage=expense_storage,
        settlement_storage=settlement_storage,
        audit_logger=audit_logger,
        members=members,
        budgets=budgets,
    )
    return expense_flow, settlement_flow, ledger_flow
