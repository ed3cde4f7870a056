"""Configuration package."""

from expense_tracker.config.settings import (
    AppSettings,
    ExchangeRateSettings,
    GoogleSheetsSettings,
    OpenAISettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "ExchangeRateSettings",
    "GoogleSheetsSettings",
    "OpenAISettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
