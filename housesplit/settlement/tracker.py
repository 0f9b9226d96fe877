"""
Settlement Tracker

State machine for one (debtor, creditor, period):

    pending  --mark_paid-->  paid  --confirm-->  confirmed

- pending is implicit: no record exists yet
- mark_paid is meant for the debtor, confirm for the creditor
- confirmed is terminal

DESIGN DECISION: Transitions are pure functions over a snapshot.
They return the new record and leave persisting it to the caller
(see SettlementFlow). The store arbitrates concurrent writes.

IMPORTANT: There is no dispute or rollback transition. A wrong
confirmation is corrected administratively in the store.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from housesplit.models.expense import utcnow
from housesplit.models.settlement import Settlement, SettlementStatus


class SettlementError(Exception):
    """Base exception for settlement transitions."""

    error_code = "settlement_error"


class SettlementNotFoundError(SettlementError):
    """The settlement a transition refers to does not exist."""

    error_code = "not_found"


class InvalidTransitionError(SettlementError):
    """The settlement is not in a state that allows this transition."""

    error_code = "invalid_transition"

    def __init__(self, message: str, current: SettlementStatus):
        super().__init__(message)
        self.current = current


def find_settlement(
    settlements: Iterable[Settlement],
    debtor: str,
    creditor: str,
    period: str,
) -> Optional[Settlement]:
    """Look up the record for a (debtor, creditor, period) key."""
    key = (debtor, creditor, period)
    for settlement in settlements:
        if settlement.key == key:
            return settlement
    return None


def status_of(
    settlements: Iterable[Settlement],
    debtor: str,
    creditor: str,
    period: str,
) -> SettlementStatus:
    """Current status for a key; PENDING when nothing was recorded."""
    settlement = find_settlement(settlements, debtor, creditor, period)
    return settlement.status if settlement else SettlementStatus.PENDING


def mark_paid(
    settlements: Iterable[Settlement],
    debtor: str,
    creditor: str,
    period: str,
    amount: Decimal,
    proof: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Settlement:
    """
    Record that the debtor paid the creditor.

    Creates a PAID record when none exists. Otherwise refreshes paid_at
    (and proof, when one is given) without touching the status of an
    already paid or confirmed record and without changing the amount.

    Returns:
        The new or updated settlement. Nothing is persisted here.
    """
    now = now or utcnow()
    existing = find_settlement(settlements, debtor, creditor, period)

    if existing is None:
        return Settlement(
            debtor=debtor,
            creditor=creditor,
            period=period,
            amount=amount,
            status=SettlementStatus.PAID,
            proof=proof,
            paid_at=now,
            created_at=now,
        )

    update: dict = {"paid_at": now}
    if proof is not None:
        update["proof"] = proof
    return existing.model_copy(update=update)


def confirm(
    settlements: Iterable[Settlement],
    settlement_id: UUID,
    now: Optional[datetime] = None,
) -> Settlement:
    """
    Record that the creditor received the payment.

    Raises:
        SettlementNotFoundError: No settlement has this ID
        InvalidTransitionError: The settlement is not PAID
    """
    current = next((s for s in settlements if s.id == settlement_id), None)
    if current is None:
        raise SettlementNotFoundError(f"Settlement not found: {settlement_id}")

    if current.status != SettlementStatus.PAID:
        raise InvalidTransitionError(
            f"Cannot confirm settlement {settlement_id}: "
            f"status is {current.status.value}",
            current=current.status,
        )

    return current.model_copy(update={
        "status": SettlementStatus.CONFIRMED,
        "confirmed_at": now or utcnow(),
    })


def confirm_pair(
    settlements: Iterable[Settlement],
    debtor: str,
    creditor: str,
    period: str,
    now: Optional[datetime] = None,
) -> Settlement:
    """
    Confirm by key instead of ID.

    Raises SettlementNotFoundError when the debtor never marked the
    payment as paid.
    """
    settlements = list(settlements)
    existing = find_settlement(settlements, debtor, creditor, period)
    if existing is None:
        raise SettlementNotFoundError(
            f"No payment recorded from {debtor} to {creditor} for {period}"
        )
    return confirm(settlements, existing.id, now=now)
