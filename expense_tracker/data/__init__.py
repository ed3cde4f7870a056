"""Static reference data."""

from expense_tracker.data.currencies import (
    CURRENCIES,
    Currency,
    format_currency,
    get_currency,
    get_currency_name,
    get_currency_symbol,
    is_supported_currency,
)

__all__ = [
    "CURRENCIES",
    "Currency",
    "format_currency",
    "get_currency",
    "get_currency_name",
    "get_currency_symbol",
    "is_supported_currency",
]
