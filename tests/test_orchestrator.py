"""
Flow tests against in-memory storage.
"""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest
from tenacity import wait_none

from housesplit import orchestrator
from housesplit.audit import AuditLogger
from housesplit.engine import BudgetState
from housesplit.models import AuditEventType, ExpenseDraft, SettlementStatus
from housesplit.orchestrator import (
    ExpenseFlow,
    LedgerFlow,
    SettlementFlow,
    create_app_components,
)
from housesplit.services.storage import (
    InMemoryAuditStorage,
    InMemoryExpenseStorage,
    InMemorySettlementStorage,
    NotFoundError,
    StorageError,
    TransientStorageError,
)
from housesplit.settlement import InvalidTransitionError, SettlementNotFoundError
from housesplit.validation import ExpenseValidator

MEMBERS = ["ana", "ben", "cai"]


def dinner(amount="90", payer="ana", period="2024-05"):
    return ExpenseDraft(
        amount=Decimal(amount),
        payer=payer,
        participants=MEMBERS,
        period=period,
        category="food",
    )


class Household:
    """All three flows wired against the same in-memory stores."""

    def __init__(self):
        self.expenses = InMemoryExpenseStorage()
        self.settlements = InMemorySettlementStorage()
        self.audit = InMemoryAuditStorage()
        logger = AuditLogger(self.audit)
        self.expense_flow = ExpenseFlow(
            self.expenses, validator=ExpenseValidator(MEMBERS), audit_logger=logger,
        )
        self.settlement_flow = SettlementFlow(
            self.settlements, expense_storage=self.expenses, audit_logger=logger,
        )
        self.ledger_flow = LedgerFlow(
            self.expenses, self.settlements, audit_logger=logger, members=MEMBERS,
        )

    async def event_types(self):
        return [e.event_type for e in reversed(await self.audit.get_recent_events())]


class TestExpenseFlow:
    """Tests for submitting, editing and deleting expenses."""

    def test_submit_valid_draft(self):
        async def scenario():
            house = Household()
            result, expense = await house.expense_flow.submit(dinner())
            assert result.is_valid
            assert await house.expenses.get_expense(expense.id) == expense
            assert await house.event_types() == [AuditEventType.EXPENSE_SAVED]

        asyncio.run(scenario())

    def test_rejected_draft_is_not_stored(self):
        async def scenario():
            house = Household()
            result, expense = await house.expense_flow.submit(dinner(payer="zed"))
            assert expense is None
            assert not result.is_valid
            assert await house.expenses.list_expenses() == []
            assert await house.event_types() == [AuditEventType.EXPENSE_VALIDATION_FAILED]

        asyncio.run(scenario())

    def test_edit_keeps_identity(self):
        async def scenario():
            house = Household()
            _, original = await house.expense_flow.submit(dinner())
            _, edited = await house.expense_flow.edit(original.id, dinner(amount="120"))
            assert edited.id == original.id
            assert edited.created_at == original.created_at
            assert edited.updated_at >= original.updated_at
            stored = await house.expenses.get_expense(original.id)
            assert stored.amount == Decimal("120")

        asyncio.run(scenario())

    def test_edit_missing_expense(self):
        async def scenario():
            house = Household()
            with pytest.raises(NotFoundError):
                await house.expense_flow.edit(uuid4(), dinner())

        asyncio.run(scenario())

    def test_delete(self):
        async def scenario():
            house = Household()
            _, expense = await house.expense_flow.submit(dinner())
            await house.expense_flow.delete(expense.id, actor="ana")
            assert await house.expenses.list_expenses() == []
            assert (await house.event_types())[-1] == AuditEventType.EXPENSE_DELETED

        asyncio.run(scenario())

    def test_import_records_skips_malformed(self):
        async def scenario():
            house = Household()
            records = [
                {
                    "amount": "60.00",
                    "paid_by": "ben",
                    "split_among": ["ana", "ben"],
                    "split_type": "percent",
                    "custom_split": {"ana": "50", "ben": "50"},
                    "month": "2024-05",
                },
                {"id": "row-7", "amount": "", "paid_by": "ben", "month": "2024-05"},
            ]
            imported, skipped = await house.expense_flow.import_records(records)
            assert len(imported) == 1
            assert [record_id for record_id, _ in skipped] == ["row-7"]
            assert await house.expenses.list_expenses("2024-05") == imported

            types = await house.event_types()
            assert types == [
                AuditEventType.EXPENSE_RECORD_SKIPPED,
                AuditEventType.EXPENSE_SAVED,
            ]
            events = await house.audit.get_events_by_entity("expense", imported[0].id)
            assert len(events) == 1

        asyncio.run(scenario())


class TestSettlementFlow:
    """Tests for the full payment confirmation workflow."""

    def test_full_lifecycle(self):
        async def scenario():
            house = Household()
            await house.expense_flow.submit(dinner())

            ledger = await house.ledger_flow.period_ledger("2024-05")
            assert len(ledger.transfers) == 2

            paid = []
            for view in ledger.transfers:
                paid.append(await house.settlement_flow.mark_transfer_paid(
                    view.transfer, "2024-05", proof="transfer-receipt",
                ))
            assert await house.settlement_flow.status("ben", "ana", "2024-05") == SettlementStatus.PAID

            ledger = await house.ledger_flow.period_ledger("2024-05")
            assert ledger.net == ledger.balances

            for settlement in paid:
                await house.settlement_flow.confirm(settlement.id, actor="ana")

            ledger = await house.ledger_flow.period_ledger("2024-05")
            assert ledger.is_settled
            assert all(v == 0 for v in ledger.net.values())

            types = await house.event_types()
            assert types.count(AuditEventType.SETTLEMENT_MARKED_PAID) == 2
            assert types.count(AuditEventType.SETTLEMENT_CONFIRMED) == 2
            assert types[-1] == AuditEventType.PERIOD_SETTLED

        asyncio.run(scenario())

    def test_mark_paid_twice_updates_record(self):
        async def scenario():
            house = Household()
            first = await house.settlement_flow.mark_paid("ben", "ana", "2024-05", Decimal("30"))
            second = await house.settlement_flow.mark_paid(
                "ben", "ana", "2024-05", Decimal("30"), proof="img-2",
            )
            assert second.id == first.id
            stored = await house.settlements.list_settlements("2024-05")
            assert len(stored) == 1
            assert stored[0].proof == "img-2"
            assert await house.settlements.get_settlement(first.id) == stored[0]

        asyncio.run(scenario())

    def test_confirm_twice_is_rejected_and_audited(self):
        async def scenario():
            house = Household()
            paid = await house.settlement_flow.mark_paid("ben", "ana", "2024-05", Decimal("30"))
            await house.settlement_flow.confirm(paid.id)
            with pytest.raises(InvalidTransitionError):
                await house.settlement_flow.confirm(paid.id)
            types = await house.event_types()
            assert types[-1] == AuditEventType.SETTLEMENT_TRANSITION_REJECTED

        asyncio.run(scenario())

    def test_confirm_unknown_settlement(self):
        async def scenario():
            house = Household()
            with pytest.raises(SettlementNotFoundError):
                await house.settlement_flow.confirm(uuid4())

        asyncio.run(scenario())

    def test_store_notifies_listeners(self):
        async def scenario():
            house = Household()
            seen = []
            remove = house.settlements.add_listener(
                lambda table, action, record_id: seen.append((table, action))
            )
            paid = await house.settlement_flow.mark_paid("ben", "ana", "2024-05", Decimal("30"))
            await house.settlement_flow.confirm(paid.id)
            remove()
            await house.settlement_flow.mark_paid("cai", "ana", "2024-05", Decimal("30"))
            assert seen == [("settlements", "insert"), ("settlements", "update")]

        asyncio.run(scenario())


class TestLedgerFlow:
    """Tests for ledger snapshots."""

    def test_drift_is_audited(self):
        async def scenario():
            house = Household()
            await house.expense_flow.submit(ExpenseDraft(
                amount=Decimal("100"),
                payer="ana",
                participants=["ana", "ben"],
                split_type="custom",
                shares={"ana": Decimal("50"), "ben": Decimal("49.98")},
                period="2024-05",
            ))
            ledger = await house.ledger_flow.period_ledger("2024-05")
            assert ledger.drift == Decimal("0.02")
            assert ledger.has_drift
            assert (await house.event_types())[-1] == AuditEventType.BALANCE_DRIFT_DETECTED

        asyncio.run(scenario())

    def test_periods_are_independent(self):
        async def scenario():
            house = Household()
            await house.expense_flow.submit(dinner(period="2024-04"))
            ledger = await house.ledger_flow.period_ledger("2024-05")
            assert ledger.expense_count == 0
            assert ledger.transfers == []

        asyncio.run(scenario())


class FlakyExpenseStorage(InMemoryExpenseStorage):
    """Fails the first few writes."""

    def __init__(self, failures, error=TransientStorageError):
        super().__init__()
        self.failures = failures
        self.error = error
        self.attempts = 0

    async def save_expense(self, expense):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self.error("store unavailable")
        return await super().save_expense(expense)


class TestStorageRetries:
    """Tests for retrying writes against an unreliable store."""

    @pytest.fixture(autouse=True)
    def no_backoff(self, monkeypatch):
        monkeypatch.setattr(orchestrator._persist.retry, "wait", wait_none())

    def test_transient_failure_is_retried(self):
        async def scenario():
            storage = FlakyExpenseStorage(failures=2)
            flow = ExpenseFlow(storage, validator=ExpenseValidator(MEMBERS))
            _, expense = await flow.submit(dinner())
            assert storage.attempts == 3
            assert await storage.get_expense(expense.id) == expense

        asyncio.run(scenario())

    def test_gives_up_after_three_attempts(self):
        async def scenario():
            storage = FlakyExpenseStorage(failures=5)
            audit = InMemoryAuditStorage()
            flow = ExpenseFlow(
                storage,
                validator=ExpenseValidator(MEMBERS),
                audit_logger=AuditLogger(audit),
            )
            with pytest.raises(TransientStorageError):
                await flow.submit(dinner())
            assert storage.attempts == 3
            events = await audit.get_recent_events()
            assert events[0].event_type == AuditEventType.STORAGE_ERROR

        asyncio.run(scenario())

    def test_permanent_failure_is_not_retried(self):
        async def scenario():
            storage = FlakyExpenseStorage(failures=1, error=StorageError)
            flow = ExpenseFlow(storage, validator=ExpenseValidator(MEMBERS))
            with pytest.raises(StorageError):
                await flow.submit(dinner())
            assert storage.attempts == 1

        asyncio.run(scenario())


class TestAppComponents:
    """Tests for the factory."""

    def test_create_app_components(self):
        async def scenario():
            audit = InMemoryAuditStorage()
            expense_flow, settlement_flow, ledger_flow = create_app_components(
                audit_storage=audit, members=MEMBERS,
            )
            await expense_flow.submit(dinner(payer="ben"))
            ledger = await ledger_flow.period_ledger("2024-05")
            assert ledger.balances["ben"] == Decimal("60")
            assert len(await audit.get_recent_events()) == 1

        asyncio.run(scenario())

    def test_tied_debtors_settle_in_member_order(self):
        """a and b both owe 10; the settled audit follows the configured order."""
        async def scenario():
            audit = InMemoryAuditStorage()
            expense_flow, settlement_flow, ledger_flow = create_app_components(
                audit_storage=audit, members=["a", "b", "c", "d"],
            )
            for payer, debtor, amount in [("d", "b", "5"), ("c", "b", "5"), ("c", "a", "10")]:
                _, expense = await expense_flow.submit(ExpenseDraft(
                    amount=Decimal(amount),
                    payer=payer,
                    participants=[debtor],
                    period="2024-05",
                ))
                assert expense is not None

            ledger = await ledger_flow.period_ledger("2024-05")
            assert [
                (v.transfer.from_member, v.transfer.to_member, v.transfer.amount)
                for v in ledger.transfers
            ] == [
                ("a", "c", Decimal("10")),
                ("b", "c", Decimal("5")),
                ("b", "d", Decimal("5")),
            ]

            for view in ledger.transfers:
                paid = await settlement_flow.mark_transfer_paid(view.transfer, "2024-05")
                await settlement_flow.confirm(paid.id)

            assert (await ledger_flow.period_ledger("2024-05")).is_settled
            events = await audit.get_recent_events()
            assert events[0].event_type == AuditEventType.PERIOD_SETTLED
            assert [e.event_type for e in events].count(AuditEventType.PERIOD_SETTLED) == 1

        asyncio.run(scenario())

class TestBudgets:
    """Tests for category budget alerts and reports."""

    def _flows(self, audit):
        expenses = InMemoryExpenseStorage()
        budgets = {"food": Decimal("100"), "rent": Decimal("900")}
        expense_flow = ExpenseFlow(
            expenses,
            validator=ExpenseValidator(MEMBERS),
            audit_logger=AuditLogger(audit),
            budgets=budgets,
        )
        ledger_flow = LedgerFlow(
            expenses, InMemorySettlementStorage(), members=MEMBERS, budgets=budgets,
        )
        return expense_flow, ledger_flow

    def test_warning_when_budget_nearly_spent(self):
        """90 of a 100 budget is flagged but not exceeded."""
        async def scenario():
            audit = InMemoryAuditStorage()
            expense_flow, _ = self._flows(audit)
            await expense_flow.submit(dinner(amount="45"))
            assert len(await audit.get_recent_events()) == 1

            await expense_flow.submit(dinner(amount="45"))
            latest = (await audit.get_recent_events())[0]
            assert latest.event_type == AuditEventType.BUDGET_THRESHOLD_REACHED
            assert latest.details["category"] == "food"
            assert latest.details["percent"] == "90.0"
            assert latest.details["exceeded"] is False

        asyncio.run(scenario())

    def test_exceeded_budget(self):
        async def scenario():
            audit = InMemoryAuditStorage()
            expense_flow, _ = self._flows(audit)
            await expense_flow.submit(dinner(amount="120"))
            latest = (await audit.get_recent_events())[0]
            assert latest.event_type == AuditEventType.BUDGET_THRESHOLD_REACHED
            assert latest.details["exceeded"] is True

        asyncio.run(scenario())

    def test_other_periods_do_not_count(self):
        """April spending does not count against May."""
        async def scenario():
            audit = InMemoryAuditStorage()
            expense_flow, _ = self._flows(audit)
            await expense_flow.submit(dinner(amount="85", period="2024-04"))
            await expense_flow.submit(dinner(amount="10"))
            alerts = [
                e for e in await audit.get_recent_events()
                if e.event_type == AuditEventType.BUDGET_THRESHOLD_REACHED
            ]
            assert [e.period for e in alerts] == ["2024-04"]

        asyncio.run(scenario())

    def test_budget_report(self):
        async def scenario():
            audit = InMemoryAuditStorage()
            expense_flow, ledger_flow = self._flows(audit)
            await expense_flow.submit(dinner(amount="85"))
            report = await ledger_flow.budget_report("2024-05")
            assert report["food"].state == BudgetState.WARNING
            assert report["food"].percent == Decimal("85.0")
            assert report["rent"].spent == Decimal("0")
            assert report["rent"].state == BudgetState.OK

        asyncio.run(scenario())



if __name__ == "__main__":
    pytest.main([__file__, "-v"])
