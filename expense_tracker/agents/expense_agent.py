"""
Expense Analysis Agent

Turns a transcript like "昨天打车花了35块" into an ExpenseDraft.

CRITICAL BOUNDARIES:
- CAN: Read amount, currency, category, day and a short description from text
- CANNOT: Save anything (the draft goes to validation and confirmation)
- CANNOT: Invent categories (anything outside the user's set becomes 其他)
- CANNOT: Return dates as free text (the model gives a day offset, we do the calendar)

The LLM is a TRANSLATOR. Whatever it returns is checked field by field
by the pure functions below, which never fail: a bad field gets its
default. Only a response that is not a JSON object at all is an error.
"""

import json
import math
import re
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

import structlog
from openai import AsyncOpenAI, OpenAIError

from expense_tracker.config import OpenAISettings, get_settings
from expense_tracker.models.expense import (
    DEFAULT_CATEGORIES,
    DEFAULT_CURRENCY,
    FALLBACK_CATEGORY,
    ExpenseDraft,
)


logger = structlog.get_logger(__name__)

MAX_DESCRIPTION_LENGTH = 500

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")


class AnalysisError(Exception):
    """The model's answer could not be turned into an expense."""
    pass


# =============================================================================
# FIELD NORMALIZATION
# =============================================================================

def normalize_amount(value: Any) -> Decimal:
    """Non-negative finite number, else 0."""
    if isinstance(value, bool) or value is None:
        return Decimal("0")

    if isinstance(value, str):
        value = value.strip().replace(",", "")

    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")

    if not amount.is_finite() or amount < 0:
        return Decimal("0")
    return amount


def normalize_currency(value: Any, default_currency: str = DEFAULT_CURRENCY) -> str:
    if isinstance(value, str):
        code = value.strip().upper()
        if _CURRENCY_CODE.match(code):
            return code
    return default_currency.upper()


def normalize_category(value: Any, categories: Iterable[str]) -> str:
    if isinstance(value, str):
        name = value.strip()
        if name in set(categories):
            return name
    return FALLBACK_CATEGORY


def _days_ago(days: int, today: date) -> date:
    try:
        return today - timedelta(days=days)
    except OverflowError:
        return today


def resolve_expense_date(value: Any, today: Optional[date] = None) -> date:
    """
    Calendar day for the model's `date` field.

    - N (int, integral float, or digit string) → N days before today
    - "YYYY-MM-DD" that is a real date → that date
    - anything else → today
    """
    today = today or date.today()

    if isinstance(value, bool) or value is None:
        return today

    if isinstance(value, int):
        return _days_ago(value, today) if value >= 0 else today

    if isinstance(value, float):
        if math.isfinite(value) and value >= 0 and value.is_integer():
            return _days_ago(int(value), today)
        return today

    if isinstance(value, str):
        text = value.strip()
        if text.isascii() and text.isdigit():
            return _days_ago(int(text), today)
        if _ISO_DATE.match(text):
            try:
                return date.fromisoformat(text)
            except ValueError:
                return today

    return today


def normalize_extraction(
    payload: dict[str, Any],
    categories: Optional[Iterable[str]] = None,
    default_currency: str = DEFAULT_CURRENCY,
    today: Optional[date] = None,
    transcript: Optional[str] = None,
) -> ExpenseDraft:
    """Build a draft from the model's JSON object, defaulting bad fields."""
    categories = list(categories) if categories else list(DEFAULT_CATEGORIES)

    description = payload.get("description")
    if not isinstance(description, str):
        description = "" if description is None else str(description)

    return ExpenseDraft(
        amount=normalize_amount(payload.get("amount")),
        currency=normalize_currency(payload.get("currency"), default_currency),
        category=normalize_category(payload.get("category"), categories),
        expense_date=resolve_expense_date(payload.get("date"), today),
        description=description.strip()[:MAX_DESCRIPTION_LENGTH],
        transcript=transcript,
    )


def build_system_prompt(categories: Iterable[str]) -> str:
    category_list = "、".join(categories)
    return f"""你是一个记账助手。请从用户的语音转写文本中提取一笔支出，并只返回一个JSON对象，字段如下：
1. amount: 金额数字（不带货币符号）
2. currency: 三位货币代码（如CNY、USD）；没有提到则省略
3. category: 必须是以下类别之一：{category_list}；都不合适时用"{FALLBACK_CATEGORY}"
4. date: 相对今天的天数（整数）
   - "今天"：0
   - "昨天"：1
   - "前天"：2
   - 没有提到日期：0
5. description: 简短的支出描述

不要返回其他字段或解释文字。"""


# =============================================================================
# AGENT
# =============================================================================

class ExpenseAnalysisAgent:
    """
    Extracts structured expense fields from a transcript.

    Usage:
        agent = ExpenseAnalysisAgent()
        draft = await agent.analyze_expense_text("买咖啡35元", categories, "CNY")
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        settings: Optional[OpenAISettings] = None,
    ):
        self._client = client
        self._settings = settings or get_settings().openai

    async def _complete(self, messages: list[dict[str, str]]):
        kwargs = dict(
            model=self._settings.chat_model,
            temperature=self._settings.temperature,
            response_format={"type": "json_object"},
            messages=messages,
        )
        if self._client is not None:
            return await self._client.chat.completions.create(**kwargs)

        # Per call: see WhisperTranscriptionService for why
        async with AsyncOpenAI(api_key=self._settings.api_key) as client:
            return await client.chat.completions.create(**kwargs)

    async def analyze_expense_text(
        self,
        text: str,
        categories: Optional[Iterable[str]] = None,
        default_currency: str = DEFAULT_CURRENCY,
        today: Optional[date] = None,
    ) -> ExpenseDraft:
        """
        Analyze a transcript.

        Raises:
            AnalysisError: Empty input, API failure, or a response that is
                not a JSON object
        """
        text = (text or "").strip()
        if not text:
            raise AnalysisError("Nothing to analyze: the transcript is empty")

        categories = list(categories) if categories else list(DEFAULT_CATEGORIES)
        messages = [
            {"role": "system", "content": build_system_prompt(categories)},
            {"role": "user", "content": text},
        ]

        try:
            response = await self._complete(messages)
        except OpenAIError as e:
            logger.error("analysis_request_failed", error=str(e))
            raise AnalysisError(f"Expense analysis failed: {e}") from e

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise AnalysisError("The model returned an empty response")

        try:
            payload = json.loads(content)
        except ValueError as e:
            logger.warning("analysis_unparseable", content=content[:200])
            raise AnalysisError("Could not parse the model's response") from e

        if not isinstance(payload, dict):
            raise AnalysisError("The model's response is not a JSON object")

        draft = normalize_extraction(
            payload,
            categories=categories,
            default_currency=default_currency,
            today=today,
            transcript=text,
        )
        logger.info(
            "analysis_completed",
            amount=str(draft.amount),
            currency=draft.currency,
            category=draft.category,
        )
        return draft
