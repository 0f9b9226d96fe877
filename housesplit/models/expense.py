"""
Expense Models for housesplit

These models define the strict schemas for every expense entering the
settlement engine.

DESIGN DECISION: The split strategy is a closed tagged variant.
Each strategy carries exactly the data its resolution rule needs:
- EqualSplit carries nothing
- CustomAmountSplit carries fixed amounts per participant
- CustomPercentSplit carries percentages per participant

Share totals are checked once, when the Expense is constructed, instead
of ad hoc wherever a split is used.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from housesplit.config import get_settings
from housesplit.periods import Period


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class SplitKind(str, Enum):
    """How an expense is divided among its participants."""
    EQUAL = "equal"
    CUSTOM_AMOUNT = "custom"
    CUSTOM_PERCENT = "percent"


# =============================================================================
# VALIDATION PREDICATES
# =============================================================================

def is_positive_amount(amount: Optional[Decimal]) -> bool:
    return amount is not None and amount > 0


def has_participants(participants: Optional[list[str]]) -> bool:
    return bool(participants)


def shares_total(shares: Mapping[str, Decimal]) -> Decimal:
    return sum((Decimal(v) for v in shares.values()), Decimal("0"))


def custom_amounts_balance(
    shares: Mapping[str, Decimal],
    amount: Decimal,
    tolerance: Optional[Decimal] = None,
) -> bool:
    """Do fixed shares add up to the expense amount (within tolerance)?"""
    if tolerance is None:
        tolerance = get_settings().engine.amount_tolerance
    return abs(shares_total(shares) - amount) <= tolerance


def percentages_balance(
    shares: Mapping[str, Decimal],
    tolerance: Optional[Decimal] = None,
) -> bool:
    """Do percentage shares add up to 100 (within tolerance)?"""
    if tolerance is None:
        tolerance = get_settings().engine.percent_tolerance
    return abs(shares_total(shares) - Decimal("100")) <= tolerance


# =============================================================================
# SPLIT STRATEGIES
# =============================================================================

ShareValue = Annotated[Decimal, Field(ge=0)]


class EqualSplit(BaseModel):
    """Every participant owes the same fraction of the amount."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["equal"] = "equal"


class CustomAmountSplit(BaseModel):
    """Each listed participant owes a fixed amount."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["custom"] = "custom"
    shares: dict[str, ShareValue] = Field(..., min_length=1)


class CustomPercentSplit(BaseModel):
    """Each listed participant owes a percentage of the amount."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["percent"] = "percent"
    shares: dict[str, ShareValue] = Field(..., min_length=1)


SplitStrategy = Annotated[
    Union[EqualSplit, CustomAmountSplit, CustomPercentSplit],
    Field(discriminator="kind"),
]


def build_split(
    kind: Union[SplitKind, str],
    shares: Optional[Mapping[str, Any]] = None,
) -> Union[EqualSplit, CustomAmountSplit, CustomPercentSplit]:
    """Build the split variant for a kind; shares are ignored for equal splits."""
    kind = SplitKind(kind)
    if kind == SplitKind.CUSTOM_AMOUNT:
        return CustomAmountSplit(shares=dict(shares or {}))
    if kind == SplitKind.CUSTOM_PERCENT:
        return CustomPercentSplit(shares=dict(shares or {}))
    return EqualSplit()


# =============================================================================
# CORE EXPENSE MODEL
# =============================================================================

class Expense(BaseModel):
    """
    One recorded outlay, admitted to the settlement engine.

    CRITICAL: An Expense can only be built from valid data.
    Records that bypass validation (model_construct, raw store rows)
    are tolerated by the engine but never produced here.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique expense ID"
    )
    amount: Annotated[
        Decimal,
        Field(gt=0, decimal_places=2, description="Amount paid out")
    ]
    payer: str = Field(
        ...,
        min_length=1,
        description="Member credited with the amount"
    )
    participants: list[str] = Field(
        ...,
        min_length=1,
        description="Members debited for the amount"
    )
    split: SplitStrategy = Field(
        default_factory=EqualSplit,
        description="How the amount is divided among participants"
    )
    period: Period = Field(
        ...,
        description="Year-month bucket (YYYY-MM)"
    )

    # Informational only
    category: str = Field(default="other", max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("participants")
    @classmethod
    def distinct_participants(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError("Participants must be distinct")
        return v

    @model_validator(mode="after")
    def validate_shares(self) -> "Expense":
        """Check custom shares against participants and totals."""
        if isinstance(self.split, EqualSplit):
            return self

        unknown = set(self.split.shares) - set(self.participants)
        if unknown:
            raise ValueError(
                f"Shares given for non-participants: {sorted(unknown)}"
            )

        if isinstance(self.split, CustomAmountSplit):
            if not custom_amounts_balance(self.split.shares, self.amount):
                raise ValueError(
                    f"Custom amounts sum to {shares_total(self.split.shares)}, "
                    f"expense is {self.amount}"
                )
        elif not percentages_balance(self.split.shares):
            raise ValueError(
                f"Percentages sum to {shares_total(self.split.shares)}% "
                "(must be 100%)"
            )
        return self

    @property
    def split_kind(self) -> SplitKind:
        return SplitKind(self.split.kind)

    def to_record(self) -> dict:
        """Convert to the flat record shape kept by the external store."""
        shares = getattr(self.split, "shares", None)
        return {
            "id": str(self.id),
            "amount": f"{self.amount:.2f}",
            "paid_by": self.payer,
            "split_among": list(self.participants),
            "split_type": self.split.kind,
            "custom_split": (
                {k: str(v) for k, v in shares.items()} if shares else None
            ),
            "month": self.period,
            "category": self.category,
            "description": self.description,
            "notes": self.notes,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Expense":
        """
        Build an Expense from a stored record.

        Raises ValueError (or pydantic's ValidationError) for records
        that do not describe a valid expense.
        """
        try:
            amount = Decimal(str(record["amount"]))
        except (KeyError, InvalidOperation) as e:
            raise ValueError(f"Unreadable amount in record: {e}") from e

        custom = record.get("custom_split")
        if custom:
            # blank shares count as zero
            custom = {
                member: "0" if share is None or str(share).strip() == "" else share
                for member, share in custom.items()
            }

        data: dict[str, Any] = {
            "amount": amount,
            "payer": record.get("paid_by"),
            "participants": list(record.get("split_among") or []),
            "split": build_split(
                record.get("split_type") or SplitKind.EQUAL,
                custom,
            ),
            "period": record.get("month"),
            "category": record.get("category") or "other",
            "description": record.get("description"),
            "notes": record.get("notes"),
        }
        if record.get("id"):
            data["id"] = UUID(str(record["id"]))
        for stamp in ("created_at", "updated_at"):
            if record.get(stamp):
                data[stamp] = datetime.fromisoformat(str(record[stamp]))
        return cls(**data)


class ExpenseDraft(BaseModel):
    """
    An expense as entered, before validation.

    CRITICAL: This is PROPOSED data. Nothing here has been checked.
    It MUST pass ExpenseValidator before being turned into an Expense.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    draft_id: UUID = Field(default_factory=uuid4)
    amount: Optional[Decimal] = None
    payer: Optional[str] = None
    participants: list[str] = Field(default_factory=list)
    split_type: SplitKind = SplitKind.EQUAL
    shares: dict[str, Decimal] = Field(default_factory=dict)
    period: Optional[str] = None
    category: str = "other"
    description: Optional[str] = None
    notes: Optional[str] = None

    def with_preset(
        self,
        name: str,
        presets: Optional[Mapping[str, list[str]]] = None,
    ) -> "ExpenseDraft":
        """
        Copy of this draft with participants taken from a named preset.

        Presets default to the configured split presets. Raises
        ValueError for an unknown preset name.
        """
        if presets is None:
            presets = get_settings().household.presets
        if name not in presets:
            raise ValueError(f"Unknown split preset: {name!r}")
        return self.model_copy(update={"participants": list(presets[name])})

    def to_expense(self, expense_id: Optional[UUID] = None) -> Expense:
        """
        Turn a validated draft into an Expense.

        Shares are dropped for equal splits.
        """
        data: dict[str, Any] = {
            "amount": self.amount,
            "payer": self.payer,
            "participants": self.participants,
            "split": build_split(self.split_type, self.shares),
            "period": self.period,
            "category": self.category,
            "description": self.description,
            "notes": self.notes,
        }
        if expense_id is not None:
            data["id"] = expense_id
        return Expense(**data)
