"""AI agents package."""

from expense_tracker.agents.expense_agent import (
    AnalysisError,
    ExpenseAnalysisAgent,
    build_system_prompt,
    normalize_amount,
    normalize_category,
    normalize_currency,
    normalize_extraction,
    resolve_expense_date,
)

__all__ = [
    "AnalysisError",
    "ExpenseAnalysisAgent",
    "build_system_prompt",
    "normalize_amount",
    "normalize_category",
    "normalize_currency",
    "normalize_extraction",
    "resolve_expense_date",
]
