"""
Settlement Engine Package

Pure functions over expense and settlement snapshots. Nothing in this
package performs I/O or keeps state between calls.
"""

from housesplit.engine.balances import (
    aggregate_balances,
    conservation_drift,
    load_expenses,
    paid_totals,
)
from housesplit.engine.budgets import (
    BudgetState,
    BudgetUsage,
    budget_usage,
    category_totals,
)
from housesplit.engine.ledger import PeriodLedger, TransferView, build_period_ledger
from housesplit.engine.reconcile import reconcile_balances
from housesplit.engine.simplifier import (
    apply_transfers,
    round_balances,
    simplify_debts,
    to_cents,
)
from housesplit.engine.splits import resolve_split

__all__ = [
    "BudgetState",
    "BudgetUsage",
    "PeriodLedger",
    "TransferView",
    "aggregate_balances",
    "apply_transfers",
    "budget_usage",
    "build_period_ledger",
    "category_totals",
    "conservation_drift",
    "load_expenses",
    "paid_totals",
    "reconcile_balances",
    "resolve_split",
    "round_balances",
    "simplify_debts",
    "to_cents",
]
