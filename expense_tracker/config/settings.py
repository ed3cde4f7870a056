"""
Configuration Management for Voice Expense Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OpenAISettings(BaseSettings):
    """OpenAI configuration (Whisper transcription + chat completions)."""

    model_config = SettingsConfigDict(
        env_prefix="OPENAI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        min_length=1,
        description="OpenAI API key"
    )
    chat_model: str = Field(
        default="gpt-4o-mini",
        description="Model used to extract expense fields from text"
    )
    transcription_model: str = Field(
        default="whisper-1",
        description="Speech-to-text model"
    )
    transcription_language: str = Field(
        default="zh",
        description="Language hint sent with every transcription"
    )
    temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class ExchangeRateSettings(BaseSettings):
    """Exchange-rate API and cache configuration."""

    model_config = SettingsConfigDict(
        env_prefix="EXCHANGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_base_url: str = Field(
        default="https://open.er-api.com/v6/latest",
        description="Base URL; the base currency code is appended"
    )
    cache_ttl_hours: int = Field(
        default=24,
        ge=1,
        description="Age after which a cached rate table is stale"
    )
    batch_size: int = Field(
        default=100,
        ge=1,
        description="Maximum currencies converted concurrently"
    )
    cache_path: str = Field(
        default=".expense_tracker/exchange_rates.json",
        description="Where rate tables are persisted between runs (empty to disable)"
    )

    @field_validator('api_base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        min_length=1,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        min_length=1,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    expenses_sheet_name: str = Field(
        default="Expenses",
        description="Name of the sheet for expenses"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Local preferences (the single JSON blob)
    settings_path: str = Field(
        default=".expense_tracker/settings.json",
        description="File holding the user's preferences"
    )

    # Recording
    max_recording_seconds: int = Field(
        default=30,
        ge=1,
        le=300,
        description="Recording auto-stops after this many seconds"
    )

    # Validation thresholds
    max_expense_amount: float = Field(
        default=100000.0,
        description="Amounts above this are flagged for review"
    )
    old_expense_days: int = Field(
        default=365,
        description="Dates older than this many days are flagged for review"
    )

    # List view
    items_per_page: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Expenses shown per page"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def openai(self) -> OpenAISettings:
        return OpenAISettings()

    @property
    def exchange(self) -> ExchangeRateSettings:
        return ExchangeRateSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the ones that failed.
    Useful for startup checks and the settings page.
    """
    results = {}
    settings = get_settings()

    checks = {
        "openai": lambda: settings.openai,
        "exchange": lambda: settings.exchange,
        "google_sheets": lambda: settings.google_sheets,
        "app": lambda: settings.app,
    }

    for name, load in checks.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
