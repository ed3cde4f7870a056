"""
Draft Validation

Checks an ExpenseDraft before it reaches the confirmation surface.

Two kinds of check:

SCHEMA CHECKS:
- Amount present and non-zero
- Currency known to the currency table
- Category in the user's current set

SEMANTIC CHECKS:
- Future date
- Very old date
- Suspiciously large amount

IMPORTANT: Validation NEVER fixes anything and NEVER blocks a save.
The draft schema already guarantees a storable record; these are hints
for the human reviewing it. Every issue is a warning or info.
"""

from datetime import date, timedelta
from typing import Iterable, Optional

from expense_tracker.config import AppSettings, get_settings
from expense_tracker.data.currencies import format_currency, is_supported_currency
from expense_tracker.models.expense import (
    DEFAULT_CATEGORIES,
    ExpenseDraft,
    ValidationIssue,
    ValidationResult,
)


class ExpenseValidator:
    """Reports anything in a draft worth a second look."""

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _check_schema(
        self,
        draft: ExpenseDraft,
        categories: list[str],
    ) -> list[ValidationIssue]:
        issues = []

        if draft.amount == 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="No amount was recognized",
                severity="warning",
                suggested_fix="Enter the amount manually",
            ))

        if not is_supported_currency(draft.currency):
            issues.append(ValidationIssue(
                field="currency",
                issue_type="unknown_currency",
                message=f"Currency {draft.currency} is not in the currency list",
                severity="warning",
                suggested_fix="Check the currency code",
            ))

        if draft.category not in categories:
            issues.append(ValidationIssue(
                field="category",
                issue_type="unknown_category",
                message=f"Category '{draft.category}' is not one of your categories",
                severity="warning",
                suggested_fix="Pick a category from the list",
            ))

        if not draft.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="No description was recognized",
                severity="info",
            ))

        return issues

    def _check_semantics(
        self,
        draft: ExpenseDraft,
        today: date,
    ) -> list[ValidationIssue]:
        issues = []

        if draft.expense_date > today:
            issues.append(ValidationIssue(
                field="expense_date",
                issue_type="future_date",
                message=f"Date {draft.expense_date.isoformat()} is in the future",
                severity="warning",
                suggested_fix="Check the date",
            ))

        oldest = today - timedelta(days=self._settings.old_expense_days)
        if draft.expense_date < oldest:
            issues.append(ValidationIssue(
                field="expense_date",
                issue_type="old_date",
                message=(
                    f"Date {draft.expense_date.isoformat()} is more than "
                    f"{self._settings.old_expense_days} days ago"
                ),
                severity="warning",
                suggested_fix="Check the date",
            ))

        if draft.amount > self._settings.max_expense_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=(
                    f"Amount {format_currency(draft.amount, draft.currency)} "
                    "is unusually large"
                ),
                severity="warning",
                suggested_fix="Check the amount was heard correctly",
            ))

        return issues

    def validate(
        self,
        draft: ExpenseDraft,
        categories: Optional[Iterable[str]] = None,
        today: Optional[date] = None,
    ) -> ValidationResult:
        categories = list(categories) if categories else list(DEFAULT_CATEGORIES)
        today = today or date.today()

        issues = self._check_schema(draft, categories)
        issues.extend(self._check_semantics(draft, today))

        return ValidationResult(
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Short text for the confirmation surface."""
        if not result.warnings:
            return "✅ Everything looks fine. Please confirm the details."

        lines = ["⚠️ Please check the following:"]
        for issue in result.issues:
            if issue.severity != "warning":
                continue
            lines.append(f"   • {issue.message}")
            if issue.suggested_fix:
                lines.append(f"     💡 {issue.suggested_fix}")

        return "\n".join(lines)
