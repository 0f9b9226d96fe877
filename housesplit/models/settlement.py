"""
Settlement Models for housesplit

A Transfer is a suggestion: "A should pay B this much".
A Settlement is what actually happened: A says they paid, B confirms.

DESIGN DECISION: Settlement status only moves forward.
    pending (no record) -> paid -> confirmed
There is no transition back. Corrections are an administrative action
on the store, outside the engine.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Mapping, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from housesplit.models.expense import utcnow
from housesplit.periods import Period


class SettlementStatus(str, Enum):
    """
    Payment progress for one (debtor, creditor, period).

    PENDING is never stored: it is what a missing record means.
    """
    PENDING = "pending"
    PAID = "paid"
    CONFIRMED = "confirmed"


class Transfer(BaseModel):
    """A suggested payment that moves balances toward zero."""
    model_config = ConfigDict(frozen=True)

    from_member: str
    to_member: str
    amount: Annotated[Decimal, Field(gt=0)]

    @model_validator(mode="after")
    def distinct_members(self) -> "Transfer":
        if self.from_member == self.to_member:
            raise ValueError("A transfer needs two different members")
        return self


class Settlement(BaseModel):
    """
    The tracked record of one member paying another.

    Keyed by (debtor, creditor, period). The amount is the suggested
    transfer at the time the record was created and is not updated
    afterwards.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    debtor: str = Field(..., min_length=1)
    creditor: str = Field(..., min_length=1)
    period: Period
    amount: Annotated[Decimal, Field(gt=0)]
    status: SettlementStatus = SettlementStatus.PAID
    proof: Optional[str] = Field(
        default=None,
        description="Opaque reference to a payment proof"
    )
    paid_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def validate_parties(self) -> "Settlement":
        if self.debtor == self.creditor:
            raise ValueError("Debtor and creditor must be different members")
        if self.status == SettlementStatus.PENDING:
            raise ValueError("Pending settlements are not stored")
        if self.status == SettlementStatus.CONFIRMED and self.confirmed_at is None:
            raise ValueError("Confirmed settlements need a confirmation time")
        return self

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.debtor, self.creditor, self.period)

    def to_record(self) -> dict:
        """Convert to the flat record shape kept by the external store."""
        return {
            "id": str(self.id),
            "from_user": self.debtor,
            "to_user": self.creditor,
            "settle_month": self.period,
            "amount": f"{self.amount:.2f}",
            "status": self.status.value,
            "proof": self.proof,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "confirmed_at": (
                self.confirmed_at.isoformat() if self.confirmed_at else None
            ),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Settlement":
        def stamp(name: str) -> Optional[datetime]:
            value = record.get(name)
            return datetime.fromisoformat(str(value)) if value else None

        try:
            amount = Decimal(str(record.get("amount")))
        except InvalidOperation as e:
            raise ValueError(f"Unreadable amount in record: {e}") from e

        data: dict[str, Any] = {
            "debtor": record.get("from_user"),
            "creditor": record.get("to_user"),
            "period": record.get("settle_month"),
            "amount": amount,
            "status": SettlementStatus(record.get("status")),
            "proof": record.get("proof"),
            "paid_at": stamp("paid_at"),
            "confirmed_at": stamp("confirmed_at"),
        }
        if record.get("id"):
            data["id"] = UUID(str(record["id"]))
        if record.get("created_at"):
            data["created_at"] = stamp("created_at")
        return cls(**data)
