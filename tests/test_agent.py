"""Tests for the expense analysis agent and its field normalizers."""

import asyncio
import json
from datetime import date
from decimal import Decimal

import pytest
from openai import OpenAIError

from expense_tracker.agents import (
    AnalysisError,
    ExpenseAnalysisAgent,
    build_system_prompt,
    normalize_amount,
    normalize_currency,
    normalize_extraction,
    resolve_expense_date,
)
from expense_tracker.models.expense import DEFAULT_CATEGORIES, FALLBACK_CATEGORY


TODAY = date(2024, 6, 15)


class TestResolveExpenseDate:

    @pytest.mark.parametrize("value,expected", [
        (0, TODAY),
        (1, date(2024, 6, 14)),
        (2, date(2024, 6, 13)),
        ("2", date(2024, 6, 13)),
        (" 1 ", date(2024, 6, 14)),
        (3.0, date(2024, 6, 12)),
    ])
    def test_day_offsets(self, value, expected):
        assert resolve_expense_date(value, TODAY) == expected

    def test_iso_date_used_as_is(self):
        assert resolve_expense_date("2024-01-31", TODAY) == date(2024, 1, 31)

    @pytest.mark.parametrize("value", [
        "yesterday", "2024-02-30", "2024/01/01", None, True, -1, 1.5, "", {"d": 1}, "²", "٣",
    ])
    def test_anything_else_is_today(self, value):
        assert resolve_expense_date(value, TODAY) == TODAY

    def test_absurd_offset_is_today(self):
        assert resolve_expense_date(10 ** 9, TODAY) == TODAY


class TestNormalizers:

    @pytest.mark.parametrize("value,expected", [
        (35, Decimal("35")),
        ("35.5", Decimal("35.5")),
        ("1,200", Decimal("1200")),
        (-5, Decimal("0")),
        ("abc", Decimal("0")),
        (None, Decimal("0")),
        (True, Decimal("0")),
        ("NaN", Decimal("0")),
    ])
    def test_amount(self, value, expected):
        assert normalize_amount(value) == expected

    def test_currency(self):
        assert normalize_currency("usd", "CNY") == "USD"
        assert normalize_currency("dollars", "CNY") == "CNY"
        assert normalize_currency(None, "eur") == "EUR"

    def test_extraction_with_all_fields(self):
        draft = normalize_extraction(
            {"amount": 35, "currency": "CNY", "category": "餐饮", "date": 0, "description": "咖啡"},
            categories=DEFAULT_CATEGORIES,
            today=TODAY,
        )
        assert draft.amount == Decimal("35")
        assert draft.currency == "CNY"
        assert draft.category == "餐饮"
        assert draft.expense_date == TODAY
        assert draft.description == "咖啡"

    def test_extraction_defaults(self):
        draft = normalize_extraction({}, categories=["餐饮"], default_currency="USD", today=TODAY)
        assert draft.amount == Decimal("0")
        assert draft.currency == "USD"
        assert draft.category == FALLBACK_CATEGORY
        assert draft.expense_date == TODAY
        assert draft.description == ""

    def test_unknown_category_becomes_fallback(self):
        draft = normalize_extraction({"category": "宇宙飞船"}, categories=DEFAULT_CATEGORIES, today=TODAY)
        assert draft.category == FALLBACK_CATEGORY

    def test_category_must_be_in_users_set(self):
        draft = normalize_extraction({"category": "交通"}, categories=["餐饮", "宠物"], today=TODAY)
        assert draft.category == FALLBACK_CATEGORY

    def test_prompt_lists_categories_and_day_convention(self):
        prompt = build_system_prompt(["餐饮", "宠物"])
        assert "餐饮、宠物" in prompt
        assert "昨天" in prompt
        assert "JSON" in prompt


class TestExpenseAnalysisAgent:

    def _agent(self, fake_openai, openai_settings, content=None, error=None):
        client = fake_openai(content=content, error=error)
        return ExpenseAnalysisAgent(client=client, settings=openai_settings), client

    def test_coffee(self, fake_openai, openai_settings):
        content = json.dumps({"amount": 35, "currency": "CNY", "category": "餐饮", "date": 0, "description": "咖啡"})
        agent, client = self._agent(fake_openai, openai_settings, content=content)

        draft = asyncio.run(agent.analyze_expense_text("买咖啡35元", DEFAULT_CATEGORIES, "CNY", today=TODAY))

        assert draft.amount == Decimal("35")
        assert draft.currency == "CNY"
        assert draft.category == "餐饮"
        assert draft.expense_date == TODAY
        assert draft.transcript == "买咖啡35元"

        call = client.chat.completions.calls[0]
        assert call["model"] == "gpt-4o-mini"
        assert call["temperature"] == 0.3
        assert call["response_format"] == {"type": "json_object"}
        assert call["messages"][0]["role"] == "system"
        assert call["messages"][1] == {"role": "user", "content": "买咖啡35元"}

    def test_day_before_yesterday(self, fake_openai, openai_settings):
        content = json.dumps({"amount": "12", "currency": "usd", "category": "交通", "date": 2})
        agent, _ = self._agent(fake_openai, openai_settings, content=content)

        draft = asyncio.run(agent.analyze_expense_text("前天打车12美元", today=TODAY))
        assert draft.expense_date == date(2024, 6, 13)
        assert draft.currency == "USD"

    def test_garbage_date_is_today(self, fake_openai, openai_settings):
        content = json.dumps({"amount": 5, "date": "sometime"})
        agent, _ = self._agent(fake_openai, openai_settings, content=content)

        draft = asyncio.run(agent.analyze_expense_text("买了个东西", today=TODAY))
        assert draft.expense_date == TODAY

    def test_default_currency_applied(self, fake_openai, openai_settings):
        agent, _ = self._agent(fake_openai, openai_settings, content=json.dumps({"amount": 5}))
        draft = asyncio.run(agent.analyze_expense_text("花了5块", default_currency="EUR", today=TODAY))
        assert draft.currency == "EUR"

    def test_empty_text_rejected(self, fake_openai, openai_settings):
        agent, client = self._agent(fake_openai, openai_settings, content="{}")
        with pytest.raises(AnalysisError):
            asyncio.run(agent.analyze_expense_text("   "))
        assert client.chat.completions.calls == []

    @pytest.mark.parametrize("content", [None, "", "not json", "[1, 2]", '"text"'])
    def test_unusable_response(self, fake_openai, openai_settings, content):
        agent, _ = self._agent(fake_openai, openai_settings, content=content)
        with pytest.raises(AnalysisError):
            asyncio.run(agent.analyze_expense_text("买咖啡35元"))

    def test_api_error(self, fake_openai, openai_settings):
        agent, _ = self._agent(fake_openai, openai_settings, error=OpenAIError("rate limited"))
        with pytest.raises(AnalysisError, match="rate limited"):
            asyncio.run(agent.analyze_expense_text("买咖啡35元"))
