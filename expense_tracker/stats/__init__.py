"""Statistics package."""

from expense_tracker.stats.calculator import (
    StatisticsCalculator,
    filter_by_window,
    format_group_label,
    group_key,
    resolve_time_range,
)

__all__ = [
    "StatisticsCalculator",
    "filter_by_window",
    "format_group_label",
    "group_key",
    "resolve_time_range",
]
