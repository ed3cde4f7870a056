"""
Local Settings Store

The user's preferences live in one JSON file holding a single key
(`userSettings`) whose value is the serialized UserSettings. Reads and
writes are synchronous; there is one user per installation.

DESIGN DECISION: A missing, unreadable or invalid file never stops the
app. We log it and hand back defaults, the next save overwrites it.
"""

import json
from pathlib import Path
from typing import Optional, Union

import structlog
from pydantic import ValidationError

from expense_tracker.config import get_settings
from expense_tracker.models.expense import Theme, UserSettings


SETTINGS_KEY = "userSettings"

logger = structlog.get_logger(__name__)


class SettingsStore:
    """
    Load and save UserSettings from a JSON file.

    The path defaults to AppSettings.settings_path.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self._path = Path(path or get_settings().app.settings_path)

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> UserSettings:
        """Current settings, or defaults if none are stored."""
        if not self._path.exists():
            return UserSettings()

        try:
            blob = json.loads(self._path.read_text(encoding="utf-8"))
            stored = blob.get(SETTINGS_KEY) if isinstance(blob, dict) else None
            if stored is None:
                return UserSettings()
            return UserSettings.model_validate(stored)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(
                "settings_unreadable",
                path=str(self._path),
                error=str(e),
            )
            return UserSettings()

    def save(self, settings: UserSettings) -> None:
        """Overwrite the stored settings."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        blob = {SETTINGS_KEY: settings.model_dump(mode="json")}
        self._path.write_text(
            json.dumps(blob, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )

    def update(self, **changes) -> UserSettings:
        """Read-modify-write a subset of fields."""
        settings = self.get().model_copy(update=changes)
        # Re-validate so bad values never reach the file
        settings = UserSettings.model_validate(settings.model_dump())
        self.save(settings)
        return settings

    # Convenience accessors used across the app

    def get_default_currency(self) -> str:
        return self.get().default_currency

    def set_default_currency(self, currency: str) -> None:
        self.update(default_currency=currency)

    def should_skip_confirmation(self) -> bool:
        return self.get().skip_confirmation

    def set_skip_confirmation(self, skip: bool) -> None:
        self.update(skip_confirmation=skip)

    def set_theme(self, theme: Theme) -> None:
        self.update(theme=theme)
