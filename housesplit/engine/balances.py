"""
Balance aggregation.

Sums split contributions per member for a period (or set of periods).
Stateless: every call recomputes from the expenses it is given. With a
handful of members and at most a few hundred expenses per period there
is nothing worth caching.
"""

from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

import structlog
from pydantic import ValidationError

from housesplit.engine.splits import resolve_split
from housesplit.models.expense import Expense
from housesplit.periods import normalize_periods

logger = structlog.get_logger(__name__)

PeriodFilter = Union[str, Iterable[str], None]


def _seed(members: Optional[Sequence[str]]) -> dict[str, Decimal]:
    return {member: Decimal("0") for member in members or ()}


def _in_periods(expenses: Iterable[Expense], periods: PeriodFilter):
    wanted = normalize_periods(periods)
    for expense in expenses:
        if wanted is None or expense.period in wanted:
            yield expense


def aggregate_balances(
    expenses: Iterable[Expense],
    periods: PeriodFilter = None,
    members: Optional[Sequence[str]] = None,
) -> dict[str, Decimal]:
    """
    Compute the gross balance of every member.

    Args:
        expenses: Expense snapshot (may span several periods)
        periods: A period key, several keys, or None for all
        members: Canonical member order. Each member gets an entry, even
            at zero; members found only in expenses follow in order of
            first appearance.

    Returns:
        {member: signed balance}, unrounded
    """
    balances = _seed(members)
    for expense in _in_periods(expenses, periods):
        for member, value in resolve_split(expense).items():
            balances[member] = balances.get(member, Decimal("0")) + value
    return balances


def paid_totals(
    expenses: Iterable[Expense],
    periods: PeriodFilter = None,
    members: Optional[Sequence[str]] = None,
) -> dict[str, Decimal]:
    """Total amount each member paid out, before any splitting."""
    totals = _seed(members)
    for expense in _in_periods(expenses, periods):
        if expense.amount is None or expense.amount <= 0:
            continue
        totals[expense.payer] = totals.get(expense.payer, Decimal("0")) + expense.amount
    return totals


def conservation_drift(balances: Mapping[str, Decimal]) -> Decimal:
    """
    Sum of all balances.

    Zero (within a cent) when every expense debits exactly what it
    credits. Anything larger points at share data that was admitted
    with rounding slack and is reported, not fixed.
    """
    return sum(balances.values(), Decimal("0"))


def load_expenses(
    records: Iterable[Mapping[str, Any]],
    skipped: Optional[list[tuple[Optional[str], str]]] = None,
) -> list[Expense]:
    """
    Parse stored expense records, skipping the ones that are malformed.

    A bad row upstream must not take the whole period down, so invalid
    records are logged and dropped here. Pass a list as ``skipped`` to
    collect (record_id, reason) for every dropped record.
    """
    expenses = []
    for record in records:
        try:
            expenses.append(Expense.from_record(record))
        except (ValidationError, ValueError, TypeError) as e:
            record_id = record.get("id")
            logger.warning(
                "expense_record_skipped",
                record_id=record_id,
                error=str(e),
            )
            if skipped is not None:
                skipped.append((record_id, str(e)))
    return expenses
