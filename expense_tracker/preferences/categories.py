"""
Category Registry

The user's category labels, stored inside UserSettings.

INVARIANTS:
- Labels are unique (adding or renaming to an existing label is a no-op)
- The set is never empty (removing the last label brings back the fallback)

Every operation returns the resulting list so callers can re-render
without a second read.
"""

from typing import Optional

from expense_tracker.models.expense import DEFAULT_CATEGORIES, FALLBACK_CATEGORY
from expense_tracker.preferences.store import SettingsStore


class CategoryRegistry:
    """Read-modify-write access to the category list."""

    def __init__(self, store: Optional[SettingsStore] = None):
        self._store = store or SettingsStore()

    def list_categories(self) -> list[str]:
        """The user's categories, or the defaults if none are stored."""
        categories = self._store.get().categories
        if not categories:
            return list(DEFAULT_CATEGORIES)
        return list(categories)

    def _save(self, categories: list[str]) -> list[str]:
        self._store.update(categories=categories)
        return list(categories)

    def add(self, category: str) -> list[str]:
        categories = self.list_categories()
        name = category.strip()

        if not name or name in categories:
            return categories

        return self._save([*categories, name])

    def rename(self, old: str, new: str) -> list[str]:
        categories = self.list_categories()
        name = new.strip()

        if old not in categories or not name:
            return categories
        if name in categories and name != old:
            return categories

        renamed = [name if c == old else c for c in categories]
        return self._save(renamed)

    def delete(self, category: str) -> list[str]:
        categories = self.list_categories()

        if category not in categories:
            return categories

        remaining = [c for c in categories if c != category]
        if not remaining:
            remaining = [FALLBACK_CATEGORY]

        return self._save(remaining)

    def reset(self) -> list[str]:
        """Restore the fixed default list."""
        return self._save(list(DEFAULT_CATEGORIES))
