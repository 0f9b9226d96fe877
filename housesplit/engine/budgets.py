"""
Category spending and budgets.

Spending per category is summed over whole expense amounts, regardless
of how an expense is split. Budgets are monthly limits per category:
usage at or above the warning share is flagged, and usage at or above
100% counts as exceeded.
"""

from decimal import Decimal
from enum import Enum
from typing import Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from housesplit.config import get_settings
from housesplit.engine.balances import PeriodFilter
from housesplit.models.expense import Expense
from housesplit.periods import normalize_periods

HUNDRED = Decimal("100")


class BudgetState(str, Enum):
    OK = "ok"
    WARNING = "warning"
    EXCEEDED = "exceeded"


class BudgetUsage(BaseModel):
    """Spending of one category against its monthly limit."""
    model_config = ConfigDict(frozen=True)

    category: str
    spent: Decimal
    limit: Decimal
    percent: Decimal
    state: BudgetState


def category_totals(
    expenses: Iterable[Expense],
    periods: PeriodFilter = None,
) -> dict[str, Decimal]:
    """
    Total spent per category, largest first.

    Ties keep the order in which the categories first appear.
    """
    wanted = normalize_periods(periods)
    totals: dict[str, Decimal] = {}
    for expense in expenses:
        if wanted is not None and expense.period not in wanted:
            continue
        if expense.amount is None or expense.amount <= 0:
            continue
        totals[expense.category] = (
            totals.get(expense.category, Decimal("0")) + expense.amount
        )
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


def budget_usage(
    totals: Mapping[str, Decimal],
    limits: Mapping[str, Decimal],
    warning_percent: Optional[Decimal] = None,
) -> dict[str, BudgetUsage]:
    """
    Compare category totals with their limits.

    Only categories with a positive limit are reported; a category with
    a limit but no spending shows up at 0%.
    """
    if warning_percent is None:
        warning_percent = get_settings().engine.budget_warning_percent

    usage: dict[str, BudgetUsage] = {}
    for category, limit in limits.items():
        if limit <= 0:
            continue
        spent = totals.get(category, Decimal("0"))
        percent = spent * HUNDRED / limit
        if percent >= HUNDRED:
            state = BudgetState.EXCEEDED
        elif percent >= warning_percent:
            state = BudgetState.WARNING
        else:
            state = BudgetState.OK
        usage[category] = BudgetUsage(
            category=category,
            spent=spent,
            limit=limit,
            percent=percent.quantize(Decimal("0.1")),
            state=state,
        )
    return usage
