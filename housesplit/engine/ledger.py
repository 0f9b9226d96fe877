"""
Period Ledger

One read-only view of a period, rebuilt from snapshots every time:
- gross balances from expenses
- suggested transfers
- the settlement status of each transfer
- net balances after confirmed payments

Callers re-snapshot their store and call build_period_ledger again
after every change notification. Nothing here is cached.
"""

from decimal import Decimal
from typing import Iterable, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from housesplit.config import get_settings
from housesplit.engine.balances import (
    aggregate_balances,
    conservation_drift,
    paid_totals,
)
from housesplit.engine.reconcile import reconcile_balances
from housesplit.engine.simplifier import simplify_debts, to_cents
from housesplit.models.expense import Expense
from housesplit.models.settlement import Settlement, SettlementStatus, Transfer
from housesplit.settlement.tracker import find_settlement, status_of


class TransferView(BaseModel):
    """A suggested transfer together with its payment progress."""
    model_config = ConfigDict(frozen=True)

    transfer: Transfer
    status: SettlementStatus = SettlementStatus.PENDING
    settlement_id: Optional[UUID] = None
    proof: Optional[str] = None


class PeriodLedger(BaseModel):
    """
    Balances, transfers and settlement progress for one period.

    Balances are kept at full precision; use the *_display helpers or
    to_cents for anything shown to people.
    """

    period: str
    balances: dict[str, Decimal] = Field(default_factory=dict)
    net: dict[str, Decimal] = Field(default_factory=dict)
    paid_totals: dict[str, Decimal] = Field(default_factory=dict)
    transfers: list[TransferView] = Field(default_factory=list)
    settlements: list[Settlement] = Field(default_factory=list)
    total_expenses: Decimal = Decimal("0")
    expense_count: int = 0
    drift: Decimal = Field(
        default=Decimal("0"),
        description="Sum of gross balances; non-zero means inconsistent share data"
    )

    @property
    def is_settled(self) -> bool:
        """At least one transfer, and every transfer confirmed."""
        return bool(self.transfers) and all(
            view.status == SettlementStatus.CONFIRMED
            for view in self.transfers
        )

    @property
    def has_drift(self) -> bool:
        return abs(self.drift) > get_settings().engine.zero_threshold

    def debts_of(self, member: str) -> list[TransferView]:
        """Transfers the member still has to make (not yet confirmed)."""
        return [
            view for view in self.transfers
            if view.transfer.from_member == member
            and view.status != SettlementStatus.CONFIRMED
        ]

    def awaiting_confirmation(self, member: str) -> list[TransferView]:
        """Transfers to the member that were paid but not yet confirmed."""
        return [
            view for view in self.transfers
            if view.transfer.to_member == member
            and view.status == SettlementStatus.PAID
        ]

    def status_of(self, debtor: str, creditor: str) -> SettlementStatus:
        """Status of a payment key, whether or not it is a current transfer."""
        return status_of(self.settlements, debtor, creditor, self.period)

    def balances_display(self) -> dict[str, Decimal]:
        return {m: to_cents(v) for m, v in self.balances.items()}

    def net_display(self) -> dict[str, Decimal]:
        return {m: to_cents(v) for m, v in self.net.items()}

    def summary_text(self, currency: Optional[str] = None) -> str:
        """Plain-text summary of the period."""
        currency = currency or get_settings().household.currency
        lines = [
            f"Period: {self.period}",
            f"Total expenses: {to_cents(self.total_expenses)} {currency}",
            f"Expenses: {self.expense_count}",
            "",
            "Net balances:",
        ]
        for member, value in self.net_display().items():
            lines.append(f"  {member}: {value:+} {currency}")

        lines.append("")
        if not self.transfers:
            lines.append("Transfers: none, all square")
        else:
            lines.append(f"Transfers ({len(self.transfers)}):")
            for view in self.transfers:
                t = view.transfer
                lines.append(
                    f"  {t.from_member} -> {t.to_member}: "
                    f"{t.amount} {currency} [{view.status.value}]"
                )
        if self.is_settled:
            lines.append("")
            lines.append("Period settled.")
        return "\n".join(lines)


def build_period_ledger(
    expenses: Iterable[Expense],
    settlements: Iterable[Settlement],
    period: str,
    members: Optional[Sequence[str]] = None,
) -> PeriodLedger:
    """
    Recompute everything for a period from the given snapshots.

    Args:
        expenses: Expense snapshot; other periods are ignored
        settlements: Settlement snapshot; other periods are ignored
        period: The period key
        members: Canonical member order (defaults to configured members)
    """
    if members is None:
        members = get_settings().household.members_list

    period_expenses = [e for e in expenses if e.period == period]
    period_settlements = [s for s in settlements if s.period == period]

    balances = aggregate_balances(period_expenses, period, members)
    views = []
    for transfer in simplify_debts(balances):
        settlement = find_settlement(
            period_settlements,
            transfer.from_member,
            transfer.to_member,
            period,
        )
        views.append(TransferView(
            transfer=transfer,
            status=settlement.status if settlement else SettlementStatus.PENDING,
            settlement_id=settlement.id if settlement else None,
            proof=settlement.proof if settlement else None,
        ))

    return PeriodLedger(
        period=period,
        balances=balances,
        net=reconcile_balances(balances, period_settlements, period),
        paid_totals=paid_totals(period_expenses, period, members),
        transfers=views,
        settlements=period_settlements,
        total_expenses=sum(
            (e.amount for e in period_expenses if e.amount and e.amount > 0),
            Decimal("0"),
        ),
        expense_count=len(period_expenses),
        drift=conservation_drift(balances),
    )
