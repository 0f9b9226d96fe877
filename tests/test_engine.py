"""
Tests for the settlement engine: splits, balances, simplification and
reconciliation. Everything here is pure, so no storage is involved.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from housesplit.engine import (
    BudgetState,
    aggregate_balances,
    apply_transfers,
    budget_usage,
    category_totals,
    conservation_drift,
    load_expenses,
    paid_totals,
    reconcile_balances,
    resolve_split,
    round_balances,
    simplify_debts,
    to_cents,
)
from housesplit.models import (
    CustomAmountSplit,
    CustomPercentSplit,
    EqualSplit,
    Expense,
    Settlement,
    SettlementStatus,
    Transfer,
)

CONFIRMED_AT = datetime(2024, 6, 1, tzinfo=timezone.utc)


def make_expense(amount, payer, participants, split=None, period="2024-05",
                 category="other"):
    return Expense(
        amount=Decimal(amount),
        payer=payer,
        participants=participants,
        split=split or EqualSplit(),
        period=period,
        category=category,
    )


def make_settlement(debtor, creditor, amount, status=SettlementStatus.CONFIRMED,
                    period="2024-05"):
    return Settlement(
        debtor=debtor,
        creditor=creditor,
        period=period,
        amount=Decimal(amount),
        status=status,
        confirmed_at=CONFIRMED_AT if status == SettlementStatus.CONFIRMED else None,
    )


class TestResolveSplit:
    """Tests for per-expense contributions."""

    def test_equal_split_credits_payer(self):
        """90 paid by ana, split three ways."""
        expense = make_expense("90", "ana", ["ana", "ben", "cai"])
        assert resolve_split(expense) == {
            "ana": Decimal("60"),
            "ben": Decimal("-30"),
            "cai": Decimal("-30"),
        }

    def test_payer_outside_split(self):
        """The payer is credited even when not sharing the cost."""
        expense = make_expense("50", "ana", ["ben", "cai"])
        contributions = resolve_split(expense)
        assert contributions["ana"] == Decimal("50")
        assert contributions["ben"] == Decimal("-25")

    def test_percent_split(self):
        """100 paid by ana, split 50/30/20."""
        expense = make_expense(
            "100", "ana", ["ana", "ben", "cai"],
            split=CustomPercentSplit(shares={"ana": 50, "ben": 30, "cai": 20}),
        )
        assert resolve_split(expense) == {
            "ana": Decimal("50"),
            "ben": Decimal("-30"),
            "cai": Decimal("-20"),
        }

    def test_custom_amount_split(self):
        """Fixed amounts are debited as given."""
        expense = make_expense(
            "80", "ben", ["ana", "ben"],
            split=CustomAmountSplit(shares={"ana": Decimal("20"), "ben": Decimal("60")}),
        )
        assert resolve_split(expense) == {"ben": Decimal("20"), "ana": Decimal("-20")}

    def test_equal_split_keeps_full_precision(self):
        """Thirds are not rounded per expense."""
        expense = make_expense("100", "ana", ["ana", "ben", "cai"])
        contributions = resolve_split(expense)
        assert contributions["ben"] == -(Decimal("100") / 3)
        assert abs(sum(contributions.values())) < Decimal("0.01")

    def test_non_positive_amount_contributes_nothing(self):
        """Zero-amount records slip past validation and are ignored."""
        expense = Expense.model_construct(
            amount=Decimal("0"),
            payer="ana",
            participants=["ana", "ben"],
            split=EqualSplit(),
            period="2024-05",
        )
        assert resolve_split(expense) == {}

    def test_no_participants_contributes_nothing(self):
        """No participants contributes nothing."""
        expense = Expense.model_construct(
            amount=Decimal("10"),
            payer="ana",
            participants=[],
            split=EqualSplit(),
            period="2024-05",
        )
        assert resolve_split(expense) == {}


class TestAggregateBalances:
    """Tests for balance aggregation."""

    def test_members_seeded_in_order(self):
        """Configured members appear first, at zero."""
        balances = aggregate_balances([], "2024-05", ["ana", "ben", "cai"])
        assert list(balances) == ["ana", "ben", "cai"]
        assert all(v == 0 for v in balances.values())

    def test_filters_by_period(self):
        """Filters by period."""
        expenses = [
            make_expense("40", "ana", ["ana", "ben"], period="2024-05"),
            make_expense("100", "ben", ["ana", "ben"], period="2024-04"),
        ]
        balances = aggregate_balances(expenses, "2024-05", ["ana", "ben"])
        assert balances == {"ana": Decimal("20"), "ben": Decimal("-20")}

    def test_multiple_periods(self):
        """Several periods are summed together."""
        expenses = [
            make_expense("40", "ana", ["ana", "ben"], period="2024-05"),
            make_expense("100", "ben", ["ana", "ben"], period="2024-04"),
        ]
        balances = aggregate_balances(expenses, ["2024-04", "2024-05"])
        assert balances == {"ana": Decimal("-30"), "ben": Decimal("30")}

    def test_balances_conserve(self):
        """Gross balances sum to zero."""
        expenses = [
            make_expense("100", "ana", ["ana", "ben", "cai"]),
            make_expense("37.45", "ben", ["ben", "cai"]),
            make_expense(
                "60", "cai", ["ana", "cai"],
                split=CustomPercentSplit(shares={"ana": 25, "cai": 75}),
            ),
        ]
        balances = aggregate_balances(expenses, "2024-05")
        assert abs(conservation_drift(balances)) < Decimal("0.01")

    def test_paid_totals(self):
        """Paid totals."""
        expenses = [
            make_expense("40", "ana", ["ana", "ben"]),
            make_expense("15.50", "ana", ["ben"]),
        ]
        totals = paid_totals(expenses, "2024-05", ["ana", "ben"])
        assert totals == {"ana": Decimal("55.50"), "ben": Decimal("0")}


class TestLoadExpenses:
    """Tests for reading stored records."""

    def test_skips_malformed_records(self):
        """Bad amounts are skipped, the rest still load."""
        records = [
            {
                "id": "4b1c2a0e-0000-4000-8000-000000000001",
                "amount": "30.00",
                "paid_by": "ana",
                "split_among": ["ana", "ben"],
                "split_type": "equal",
                "month": "2024-05",
            },
            {"id": "broken", "amount": "-5", "paid_by": "ana", "month": "2024-05"},
            {"id": "garbled", "amount": "n/a", "paid_by": "ana", "month": "2024-05"},
        ]
        skipped = []
        expenses = load_expenses(records, skipped=skipped)
        assert len(expenses) == 1
        assert [record_id for record_id, _ in skipped] == ["broken", "garbled"]

    def test_blank_custom_share_counts_as_zero(self):
        """A custom split saved with an empty share still loads."""
        records = [{
            "amount": "100",
            "paid_by": "a",
            "split_among": ["a", "b", "c"],
            "split_type": "custom",
            "custom_split": {"a": "50", "b": "50", "c": ""},
            "month": "2024-05",
        }]
        skipped = []
        expenses = load_expenses(records, skipped=skipped)
        assert skipped == []
        assert expenses[0].split.shares["c"] == Decimal("0")

        balances = aggregate_balances(expenses, "2024-05", ["a", "b", "c"])
        assert balances == {
            "a": Decimal("50"),
            "b": Decimal("-50"),
            "c": Decimal("0"),
        }


class TestSimplifyDebts:
    """Tests for greedy debt simplification."""

    def test_worked_example(self):
        """A owes 30, B owes 10; C is owed 25 and D 15."""
        balances = {
            "A": Decimal("-30"),
            "B": Decimal("-10"),
            "C": Decimal("25"),
            "D": Decimal("15"),
        }
        assert simplify_debts(balances) == [
            Transfer(from_member="A", to_member="C", amount=Decimal("25")),
            Transfer(from_member="A", to_member="D", amount=Decimal("5")),
            Transfer(from_member="B", to_member="D", amount=Decimal("10")),
        ]

    def test_all_square_gives_no_transfers(self):
        """All square gives no transfers."""
        assert simplify_debts({"A": Decimal("0"), "B": Decimal("0.004")}) == []

    def test_transfers_settle_every_balance(self):
        """Applying the transfers leaves every balance near zero."""
        balances = {
            "ana": Decimal("41.17"),
            "ben": Decimal("-12.05"),
            "cai": Decimal("-29.12"),
            "dee": Decimal("7.30"),
            "eli": Decimal("-7.30"),
        }
        transfers = simplify_debts(balances)
        settled = apply_transfers(balances, transfers)
        assert all(abs(v) <= Decimal("0.01") for v in settled.values())
        assert len(transfers) <= len(balances) - 1

    def test_transfer_totals_match_balances(self):
        """Transfer totals match balances."""
        balances = {"A": Decimal("-20"), "B": Decimal("-5"), "C": Decimal("25")}
        transfers = simplify_debts(balances)
        out_of_a = sum(t.amount for t in transfers if t.from_member == "A")
        into_c = sum(t.amount for t in transfers if t.to_member == "C")
        assert out_of_a == Decimal("20")
        assert into_c == Decimal("25")

    def test_no_self_or_empty_transfers(self):
        """No self or empty transfers."""
        balances = {"A": Decimal("-0.50"), "B": Decimal("0.25"), "C": Decimal("0.25")}
        for transfer in simplify_debts(balances):
            assert transfer.from_member != transfer.to_member
            assert transfer.amount > 0

    def test_deterministic(self):
        """Ties are broken by input order."""
        balances = {"A": Decimal("-10"), "B": Decimal("-10"), "C": Decimal("10"), "D": Decimal("10")}
        first = simplify_debts(balances)
        assert simplify_debts(dict(balances)) == first
        assert first[0] == Transfer(from_member="A", to_member="C", amount=Decimal("10"))

    def test_thirds_round_to_cents(self):
        """100 split three ways, paid by ana."""
        balances = aggregate_balances(
            [make_expense("100", "ana", ["ana", "ben", "cai"])],
            "2024-05",
        )
        transfers = simplify_debts(balances)
        assert [t.amount for t in transfers] == [Decimal("33.33"), Decimal("33.33")]
        assert all(t.to_member == "ana" for t in transfers)

    def test_custom_epsilon(self):
        """Custom epsilon."""
        balances = {"A": Decimal("-0.40"), "B": Decimal("0.40")}
        assert simplify_debts(balances, epsilon=Decimal("0.50")) == []

    def test_to_cents_rounds_half_up(self):
        """Halves round away from zero."""
        assert to_cents(Decimal("0.125")) == Decimal("0.13")
        assert to_cents(Decimal("-0.125")) == Decimal("-0.13")

    def test_round_balances(self):
        """Round balances."""
        assert round_balances({"A": Decimal("1") / 3}) == {"A": Decimal("0.33")}


class TestReconcileBalances:
    """Tests for net balances."""

    def test_only_confirmed_settlements_count(self):
        """A paid but unconfirmed settlement leaves balances alone."""
        gross = {"ana": Decimal("20"), "ben": Decimal("-20")}
        settlements = [make_settlement("ben", "ana", "20", status=SettlementStatus.PAID)]
        assert reconcile_balances(gross, settlements, "2024-05") == gross

    def test_confirmed_settlement_moves_balances(self):
        """Confirmed settlement moves balances."""
        gross = {"ana": Decimal("20"), "ben": Decimal("-20")}
        settlements = [make_settlement("ben", "ana", "20")]
        assert reconcile_balances(gross, settlements, "2024-05") == {
            "ana": Decimal("0"),
            "ben": Decimal("0"),
        }

    def test_other_periods_ignored(self):
        """Settlements from another month do not apply."""
        gross = {"ana": Decimal("20"), "ben": Decimal("-20")}
        settlements = [make_settlement("ben", "ana", "20", period="2024-04")]
        assert reconcile_balances(gross, settlements, "2024-05") == gross

    def test_gross_is_not_mutated(self):
        """Gross is not mutated."""
        gross = {"ana": Decimal("20"), "ben": Decimal("-20")}
        reconcile_balances(gross, [make_settlement("ben", "ana", "5")], "2024-05")
        assert gross["ana"] == Decimal("20")

class TestCategoryTotals:
    """Tests for spending per category."""

    def test_largest_first(self):
        """Totals come back sorted by amount."""
        expenses = [
            make_expense("20", "ana", ["ana", "ben"], category="transport"),
            make_expense("90", "ben", ["ana", "ben"], category="groceries"),
            make_expense("15", "ana", ["ben"], category="transport"),
        ]
        totals = category_totals(expenses)
        assert list(totals) == ["groceries", "transport"]
        assert totals["transport"] == Decimal("35")

    def test_period_filter(self):
        """Only expenses in the requested months are counted."""
        expenses = [
            make_expense("40", "ana", ["ana", "ben"], category="groceries"),
            make_expense("60", "ana", ["ana", "ben"], category="groceries", period="2024-04"),
        ]
        assert category_totals(expenses, "2024-05") == {"groceries": Decimal("40")}
        assert category_totals(expenses, ["2024-04", "2024-05"]) == {"groceries": Decimal("100")}


class TestBudgetUsage:
    """Tests for comparing spending with category budgets."""

    LIMITS = {"groceries": Decimal("1000")}

    @pytest.mark.parametrize("spent,state", [
        ("799", BudgetState.OK),
        ("800", BudgetState.WARNING),
        ("999.99", BudgetState.WARNING),
        ("1000", BudgetState.EXCEEDED),
        ("1250", BudgetState.EXCEEDED),
    ])
    def test_states(self, spent, state):
        """Warning from 80%, exceeded from 100%."""
        usage = budget_usage({"groceries": Decimal(spent)}, self.LIMITS, Decimal("80"))
        assert usage["groceries"].state == state

    def test_percent_is_rounded(self):
        """Percentages keep one decimal place."""
        usage = budget_usage({"groceries": Decimal("333")}, self.LIMITS, Decimal("80"))
        assert usage["groceries"].percent == Decimal("33.3")

    def test_budget_without_spending(self):
        """A budgeted category with nothing spent shows 0%."""
        usage = budget_usage({}, self.LIMITS, Decimal("80"))
        assert usage["groceries"].spent == Decimal("0")
        assert usage["groceries"].percent == Decimal("0.0")
        assert usage["groceries"].state == BudgetState.OK

    def test_unbudgeted_categories_left_out(self):
        """Categories without a positive limit are not reported."""
        totals = {"groceries": Decimal("10"), "fun": Decimal("500")}
        limits = {"groceries": Decimal("100"), "fun": Decimal("0")}
        assert list(budget_usage(totals, limits, Decimal("80"))) == ["groceries"]



if __name__ == "__main__":
    pytest.main([__file__, "-v"])
