"""
Split resolution.

Turns one expense into signed per-member contributions:
positive is a credit (the payer fronted money), negative is a debit
(the member consumed part of it).

No rounding happens here. An equal split of 100 among three members
debits each one 100/3 at full Decimal precision; only values shown to
people or turned into transfers are rounded to cents.
"""

from decimal import Decimal

from housesplit.models.expense import (
    CustomAmountSplit,
    CustomPercentSplit,
    Expense,
)

HUNDRED = Decimal("100")


def _add(contributions: dict[str, Decimal], member: str, value: Decimal) -> None:
    contributions[member] = contributions.get(member, Decimal("0")) + value


def resolve_split(expense: Expense) -> dict[str, Decimal]:
    """
    Resolve an expense into {member: signed contribution}.

    The payer is credited the full amount and need not be a participant.
    Expenses with no participants or a non-positive amount can only
    arrive here by skipping validation; they contribute nothing.
    """
    amount = expense.amount
    participants = expense.participants
    if amount is None or amount <= 0 or not participants:
        return {}

    contributions: dict[str, Decimal] = {}
    _add(contributions, expense.payer, amount)

    split = expense.split
    if isinstance(split, CustomAmountSplit):
        for member, share in split.shares.items():
            _add(contributions, member, -Decimal(share))
    elif isinstance(split, CustomPercentSplit):
        for member, pct in split.shares.items():
            _add(contributions, member, -(amount * Decimal(pct) / HUNDRED))
    else:
        share = amount / len(participants)
        for member in participants:
            _add(contributions, member, -share)

    return contributions
