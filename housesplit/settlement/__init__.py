"""Settlement tracking package."""

from housesplit.settlement.tracker import (
    InvalidTransitionError,
    SettlementError,
    SettlementNotFoundError,
    confirm,
    confirm_pair,
    find_settlement,
    mark_paid,
    status_of,
)

__all__ = [
    "InvalidTransitionError",
    "SettlementError",
    "SettlementNotFoundError",
    "confirm",
    "confirm_pair",
    "find_settlement",
    "mark_paid",
    "status_of",
]
