"""
Debt simplification.

Collapses a balance map into point-to-point transfers that bring every
balance to zero.

ALGORITHM: greedy largest-debtor against largest-creditor.
1. Round balances to cents. Debtors are below -epsilon, creditors above
   +epsilon.
2. Sort both sides by magnitude, largest first. The sort is stable, so
   ties keep the order of the input map; pass balances in a canonical
   member order to get reproducible output.
3. Walk both lists with two cursors, moving min(debt, credit) each step
   and advancing whichever side is used up.

This gives at most n-1 transfers for n non-zero members. It is NOT
guaranteed to find the smallest possible number of transfers; that is
a harder combinatorial problem and out of scope here.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Optional

from housesplit.config import get_settings
from housesplit.models.settlement import Transfer

CENT = Decimal("0.01")


def to_cents(value: Decimal) -> Decimal:
    """Round a money value to cents, halves away from zero."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def round_balances(balances: Mapping[str, Decimal]) -> dict[str, Decimal]:
    return {member: to_cents(value) for member, value in balances.items()}


def simplify_debts(
    balances: Mapping[str, Decimal],
    epsilon: Optional[Decimal] = None,
) -> list[Transfer]:
    """
    Turn balances into an ordered list of transfers.

    Args:
        balances: {member: signed balance}; positive means owed money
        epsilon: Amounts at or below this count as zero
            (defaults to the engine zero threshold)

    Returns:
        Transfers in the order they were matched
    """
    if epsilon is None:
        epsilon = get_settings().engine.zero_threshold

    debtors: list[list] = []
    creditors: list[list] = []
    for member, value in balances.items():
        rounded = to_cents(value)
        if rounded < -epsilon:
            debtors.append([member, -rounded])
        elif rounded > epsilon:
            creditors.append([member, rounded])

    debtors.sort(key=lambda entry: entry[1], reverse=True)
    creditors.sort(key=lambda entry: entry[1], reverse=True)

    transfers: list[Transfer] = []
    di = ci = 0
    while di < len(debtors) and ci < len(creditors):
        debtor, creditor = debtors[di], creditors[ci]
        amount = min(debtor[1], creditor[1])
        if amount > epsilon:
            transfers.append(Transfer(
                from_member=debtor[0],
                to_member=creditor[0],
                amount=to_cents(amount),
            ))
        debtor[1] -= amount
        creditor[1] -= amount
        if debtor[1] < epsilon:
            di += 1
        if creditor[1] < epsilon:
            ci += 1

    return transfers


def apply_transfers(
    balances: Mapping[str, Decimal],
    transfers: list[Transfer],
) -> dict[str, Decimal]:
    """
    Balances after every transfer has been paid.

    The payer's balance rises by the amount, the receiver's falls.
    """
    result = dict(balances)
    for transfer in transfers:
        result[transfer.from_member] = (
            result.get(transfer.from_member, Decimal("0")) + transfer.amount
        )
        result[transfer.to_member] = (
            result.get(transfer.to_member, Decimal("0")) - transfer.amount
        )
    return result
