"""
Data Models Package

This package contains all Pydantic models used in the Voice Expense Tracker.
All data flowing through the system must conform to these schemas.
"""

from expense_tracker.models.expense import (
    DEFAULT_CATEGORIES,
    DEFAULT_CURRENCY,
    FALLBACK_CATEGORY,
    Expense,
    ExpenseDraft,
    GroupBy,
    StatisticsItem,
    StatisticsReport,
    Theme,
    TimeRange,
    UserSettings,
    ValidationIssue,
    ValidationResult,
)
from expense_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Constants
    "DEFAULT_CATEGORIES",
    "DEFAULT_CURRENCY",
    "FALLBACK_CATEGORY",
    # Expense models
    "Expense",
    "ExpenseDraft",
    "GroupBy",
    "StatisticsItem",
    "StatisticsReport",
    "Theme",
    "TimeRange",
    "UserSettings",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
