"""
Shared fixtures.

No test talks to a real service: OpenAI is replaced by small stub
clients, HTTP by httpx.MockTransport, storage by the in-memory backend.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from expense_tracker.config import AppSettings, ExchangeRateSettings, OpenAISettings
from expense_tracker.models.expense import Expense
from expense_tracker.preferences import SettingsStore


class FakeTranscriptions:
    def __init__(self, text="", error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAI:
    """Just enough of AsyncOpenAI for the speech and analysis services."""

    def __init__(self, text="", content=None, error=None):
        self.audio = SimpleNamespace(transcriptions=FakeTranscriptions(text, error))
        self.chat = SimpleNamespace(completions=FakeCompletions(content, error))


@pytest.fixture
def fake_openai():
    return FakeOpenAI


@pytest.fixture
def openai_settings():
    return OpenAISettings(api_key="test-key")


@pytest.fixture
def exchange_settings():
    return ExchangeRateSettings(cache_path="")


@pytest.fixture
def app_settings():
    return AppSettings()


@pytest.fixture
def settings_store(tmp_path):
    return SettingsStore(tmp_path / "settings.json")


@pytest.fixture
def make_expense():
    counter = iter(range(1, 10_000))

    def make(
        amount="10",
        currency="CNY",
        category="餐饮",
        expense_date=date(2024, 6, 15),
        description="",
        expense_id=None,
        created_at=None,
    ) -> Expense:
        n = next(counter)
        return Expense(
            id=expense_id or f"exp-{n}",
            amount=Decimal(str(amount)),
            currency=currency,
            category=category,
            expense_date=expense_date,
            description=description,
            created_at=created_at or datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=n),
        )

    return make
