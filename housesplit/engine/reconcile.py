"""
Reconciled (net) balances.

Gross balances come from expenses alone. Net balances additionally
count settlements the creditor has confirmed. A payment that is only
marked as paid does not move anything yet: until the receiver
acknowledges it, the debt is still outstanding.
"""

from decimal import Decimal
from typing import Iterable, Mapping

from housesplit.models.settlement import Settlement, SettlementStatus


def reconcile_balances(
    balances: Mapping[str, Decimal],
    settlements: Iterable[Settlement],
    period: str,
) -> dict[str, Decimal]:
    """
    Apply confirmed settlements of ``period`` to gross balances.

    The debtor moves up by the amount and the creditor down, so the
    total stays at zero.
    """
    net = dict(balances)
    for settlement in settlements:
        if settlement.period != period:
            continue
        if settlement.status != SettlementStatus.CONFIRMED:
            continue
        net[settlement.debtor] = (
            net.get(settlement.debtor, Decimal("0")) + settlement.amount
        )
        net[settlement.creditor] = (
            net.get(settlement.creditor, Decimal("0")) - settlement.amount
        )
    return net
