"""
Validation result models.

Shared by the expense validator and anything that reports problems
back to a person entering data.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from housesplit.models.expense import utcnow


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'share_mismatch')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage expense validation.

    Stage 1: Schema validation (required fields, share totals)
    Stage 2: Semantic validation (membership, plausibility)
    """

    draft_id: UUID = Field(
        ...,
        description="ID of the draft being validated"
    )
    validated_at: datetime = Field(default_factory=utcnow)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool = Field(
        ...,
        description="True when the draft can be admitted as an Expense"
    )

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")
