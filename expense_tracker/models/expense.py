"""
Core Data Models for Voice Expense Tracker

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: We use Pydantic v2 everywhere data crosses a boundary
(model output, storage rows, the settings file). Anything that does not fit
the schema is rejected here rather than deep inside a view.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# CATEGORIES
# =============================================================================

# Canonical vocabulary: dining, shopping, transport, housing, entertainment,
# medical, education, travel, other.
DEFAULT_CATEGORIES: list[str] = [
    "餐饮", "购物", "交通", "住房", "娱乐", "医疗", "教育", "旅行", "其他",
]

FALLBACK_CATEGORY = "其他"

DEFAULT_CURRENCY = "CNY"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_expense_id() -> str:
    return str(uuid4())


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Theme(str, Enum):
    """UI colour theme preference."""
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


class TimeRange(str, Enum):
    """Time windows offered by the statistics view."""
    ALL = "all"
    THIS_WEEK = "this_week"
    THIS_MONTH = "this_month"
    THIS_YEAR = "this_year"
    LAST_WEEK = "last_week"
    LAST_MONTH = "last_month"
    LAST_YEAR = "last_year"
    CUSTOM = "custom"


class GroupBy(str, Enum):
    """How the statistics view buckets expenses."""
    CATEGORY = "category"
    DAY = "day"
    MONTH = "month"
    YEAR = "year"


# =============================================================================
# CORE EXPENSE MODEL
# =============================================================================

class Expense(BaseModel):
    """
    One spending event.

    Identity is `id`. Expenses created in the app get a random id; the
    store hands back the canonical row on insert and update.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=_new_expense_id,
        min_length=1,
        description="Opaque unique identifier"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount in `currency`"
    )
    currency: str = Field(
        ...,
        pattern="^[A-Z]{3}$",
        description="Three-letter currency code"
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="One of the user's categories"
    )
    expense_date: date = Field(
        ...,
        description="Calendar day the money was spent"
    )
    description: str = Field(
        default="",
        max_length=500,
        description="Free text"
    )
    created_at: datetime = Field(
        default_factory=_utcnow,
        description="When the record was created"
    )

    @field_validator('currency', mode='before')
    @classmethod
    def upper_currency(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


class ExpenseDraft(BaseModel):
    """
    An expense as understood from a transcript, NOT yet saved.

    Unless the user opted out of confirmation, this is shown for
    review (and possibly edited) before it becomes an Expense.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = Field(default=DEFAULT_CURRENCY, pattern="^[A-Z]{3}$")
    category: str = Field(default=FALLBACK_CATEGORY, min_length=1)
    expense_date: date = Field(default_factory=date.today)
    description: str = ""

    # What the user said, kept for the confirmation surface
    transcript: Optional[str] = None

    def to_expense(self, expense_id: Optional[str] = None) -> Expense:
        """Turn the (reviewed) draft into a new expense record."""
        fields = dict(
            amount=self.amount,
            currency=self.currency,
            category=self.category,
            expense_date=self.expense_date,
            description=self.description,
        )
        if expense_id:
            fields["id"] = expense_id
        return Expense(**fields)


# =============================================================================
# USER SETTINGS
# =============================================================================

class UserSettings(BaseModel):
    """
    Per-installation preferences.

    Loaded on startup, saved on every change, never versioned.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    default_currency: str = Field(
        default=DEFAULT_CURRENCY,
        pattern="^[A-Z]{3}$",
        description="Currency statistics and conversions normalize to"
    )
    theme: Theme = Theme.SYSTEM
    skip_confirmation: bool = Field(
        default=False,
        description="Save voice-derived expenses without a review step"
    )
    categories: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CATEGORIES),
        description="The user's category set, in display order"
    )

    @field_validator('default_currency', mode='before')
    @classmethod
    def upper_currency(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'suspicious_value', 'future_date')"
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
    """Result of checking a draft before it is confirmed or saved."""

    validated_at: datetime = Field(
        default_factory=_utcnow
    )
    is_valid: bool = Field(
        ...,
        description="No error-level issues were found"
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]


# =============================================================================
# STATISTICS MODELS
# =============================================================================

class StatisticsItem(BaseModel):
    """One bucket of the statistics view."""

    label: str
    amount: Decimal = Field(ge=0)
    count: int = Field(ge=0)
    percentage: float = Field(ge=0.0)


class StatisticsReport(BaseModel):
    """
    Totals for a time window, bucketed and normalized to one currency.

    Amounts are converted; `total` is the sum of the bucket amounts.
    """

    time_range: TimeRange
    group_by: GroupBy
    currency: str
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    expense_count: int = Field(default=0, ge=0)
    total: Decimal = Decimal("0")
    items: list[StatisticsItem] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_window(self) -> 'StatisticsReport':
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("Statistics window end cannot be before start")
        return self

    @property
    def is_empty(self) -> bool:
        return self.expense_count == 0
