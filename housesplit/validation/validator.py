"""
Two-Stage Expense Validation

DESIGN DECISION: Expenses are validated before they are admitted.
The engine itself assumes valid input, so every rule that protects the
balances runs here, at the edge.

STAGE 1 - SCHEMA VALIDATION:
- Positive amount with at most two decimals
- Payer and at least one participant
- A well-formed period key
- Custom shares that belong to participants and add up
  (amounts within 0.02 of the total, percentages within 0.5 of 100)

STAGE 2 - SEMANTIC VALIDATION:
- Payer and participants are household members
- Unusually large amounts
- Participants who end up owing nothing

IMPORTANT: Validation NEVER fixes share data.
It reports issues; the person entering the expense corrects them.
"""

from decimal import Decimal
from typing import Optional, Sequence

from housesplit.config import get_settings
from housesplit.models.expense import (
    ExpenseDraft,
    SplitKind,
    custom_amounts_balance,
    has_participants,
    is_positive_amount,
    percentages_balance,
    shares_total,
)
from housesplit.models.validation import ValidationIssue, ValidationResult
from housesplit.periods import parse_period


class ExpenseValidator:
    """
    Validates expense drafts through a two-stage pipeline.

    Stage 2 only runs when stage 1 passes.
    """

    def __init__(self, members: Optional[Sequence[str]] = None):
        """
        Args:
            members: Known household members. Defaults to the configured
                     members; when empty, membership checks are skipped.
        """
        if members is None:
            members = get_settings().household.members_list
        self._members = list(members)
        self._settings = get_settings().engine

    def _validate_schema(
        self,
        draft: ExpenseDraft,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if draft.amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Amount is required",
                severity="error",
            ))
        elif not is_positive_amount(draft.amount):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            ))
        elif draft.amount != draft.amount.quantize(Decimal("0.01")):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_format",
                message=f"Amount {draft.amount} has more than two decimals",
                severity="error",
                suggested_fix="Round the amount to cents",
            ))

        if not draft.payer:
            issues.append(ValidationIssue(
                field="payer",
                issue_type="missing",
                message="Who paid is required",
                severity="error",
            ))

        if not has_participants(draft.participants):
            issues.append(ValidationIssue(
                field="participants",
                issue_type="missing",
                message="Select at least one person to split with",
                severity="error",
            ))
        elif len(set(draft.participants)) != len(draft.participants):
            issues.append(ValidationIssue(
                field="participants",
                issue_type="duplicate",
                message="A participant is listed more than once",
                severity="error",
            ))

        if draft.period is None:
            issues.append(ValidationIssue(
                field="period",
                issue_type="missing",
                message="Period is required",
                severity="error",
            ))
        else:
            try:
                parse_period(draft.period)
            except ValueError as e:
                issues.append(ValidationIssue(
                    field="period",
                    issue_type="invalid_format",
                    message=str(e),
                    severity="error",
                ))

        if draft.split_type != SplitKind.EQUAL:
            issues.extend(self._validate_shares(draft))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_shares(self, draft: ExpenseDraft) -> list[ValidationIssue]:
        """Custom split checks. Shares are reported, never adjusted."""
        issues = []

        if not draft.shares:
            issues.append(ValidationIssue(
                field="shares",
                issue_type="missing",
                message="Custom splits need a share for each participant",
                severity="error",
            ))
            return issues

        negative = [m for m, v in draft.shares.items() if v < 0]
        if negative:
            issues.append(ValidationIssue(
                field="shares",
                issue_type="invalid_value",
                message=f"Shares cannot be negative: {', '.join(negative)}",
                severity="error",
            ))

        outsiders = [m for m in draft.shares if m not in draft.participants]
        if outsiders:
            issues.append(ValidationIssue(
                field="shares",
                issue_type="unknown_participant",
                message=f"Shares given for non-participants: {', '.join(outsiders)}",
                severity="error",
                suggested_fix="Remove the share or add the person to the split",
            ))

        total = shares_total(draft.shares)
        if draft.split_type == SplitKind.CUSTOM_AMOUNT:
            if is_positive_amount(draft.amount) and not custom_amounts_balance(
                draft.shares, draft.amount, self._settings.amount_tolerance
            ):
                issues.append(ValidationIssue(
                    field="shares",
                    issue_type="share_mismatch",
                    message=f"Amounts add up to {total}, expense is {draft.amount}",
                    severity="error",
                    suggested_fix="Adjust the amounts so they match the total",
                ))
        elif not percentages_balance(draft.shares, self._settings.percent_tolerance):
            issues.append(ValidationIssue(
                field="shares",
                issue_type="share_mismatch",
                message=f"Percentages add up to {total}% (must be 100%)",
                severity="error",
                suggested_fix="Adjust the percentages so they add up to 100",
            ))

        return issues

    def _validate_semantic(
        self,
        draft: ExpenseDraft,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if self._members:
            if draft.payer not in self._members:
                issues.append(ValidationIssue(
                    field="payer",
                    issue_type="unknown_member",
                    message=f"{draft.payer} is not a household member",
                    severity="error",
                ))
            strangers = [p for p in draft.participants if p not in self._members]
            if strangers:
                issues.append(ValidationIssue(
                    field="participants",
                    issue_type="unknown_member",
                    message=f"Not household members: {', '.join(strangers)}",
                    severity="error",
                ))

        if draft.amount > self._settings.max_expense_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({draft.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if draft.split_type != SplitKind.EQUAL:
            missing = [p for p in draft.participants if not draft.shares.get(p)]
            if missing:
                issues.append(ValidationIssue(
                    field="shares",
                    issue_type="zero_share",
                    message=f"These participants owe nothing: {', '.join(missing)}",
                    severity="warning",
                ))

        if draft.payer not in draft.participants:
            issues.append(ValidationIssue(
                field="participants",
                issue_type="payer_excluded",
                message=f"{draft.payer} paid but is not part of the split",
                severity="info",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(self, draft: ExpenseDraft) -> ValidationResult:
        """
        Run the full two-stage validation pipeline.

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(draft)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(draft)
            all_issues.extend(semantic_issues)

        warnings = [i.message for i in all_issues if i.severity == "warning"]

        return ValidationResult(
            draft_id=draft.draft_id,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Short text for the person entering the expense."""
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []
        errors = [i for i in result.issues if i.severity == "error"]
        if errors:
            lines.append("Please fix the following:")
            for issue in errors:
                lines.append(f"   - {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     ({issue.suggested_fix})")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   - {warning}")

        return "\n".join(lines)
