"""User preferences package (settings file + category registry)."""

from expense_tracker.preferences.categories import CategoryRegistry
from expense_tracker.preferences.store import SETTINGS_KEY, SettingsStore

__all__ = ["CategoryRegistry", "SETTINGS_KEY", "SettingsStore"]
