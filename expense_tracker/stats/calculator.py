"""
Spending Statistics

Filters expenses to a time window, buckets them, and normalizes every
bucket to one currency through the exchange service.

Windows follow the calendar the user sees:
- Weeks start on Sunday
- "this_*" windows are open-ended (anything dated from the start onwards)
- "last_*" windows are closed on both sides
- "custom" is inclusive on both ends; a missing end is open
"""

import calendar
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from expense_tracker.models.expense import (
    Expense,
    GroupBy,
    StatisticsItem,
    StatisticsReport,
    TimeRange,
)
from expense_tracker.services.exchange import ExchangeRateService


logger = structlog.get_logger(__name__)

Window = tuple[Optional[date], Optional[date]]


def _start_of_week(day: date) -> date:
    # date.weekday() is Monday=0; we want days since Sunday
    return day - timedelta(days=(day.weekday() + 1) % 7)


def resolve_time_range(
    time_range: TimeRange,
    today: Optional[date] = None,
    custom_start: Optional[date] = None,
    custom_end: Optional[date] = None,
) -> Window:
    """
    Inclusive (start, end) bounds for a named window. None means unbounded.

    Raises:
        ValueError: If a custom window ends before it starts
    """
    today = today or date.today()
    time_range = TimeRange(time_range)

    if time_range == TimeRange.THIS_WEEK:
        return _start_of_week(today), None

    if time_range == TimeRange.THIS_MONTH:
        return today.replace(day=1), None

    if time_range == TimeRange.THIS_YEAR:
        return date(today.year, 1, 1), None

    if time_range == TimeRange.LAST_WEEK:
        end = _start_of_week(today) - timedelta(days=1)
        return end - timedelta(days=6), end

    if time_range == TimeRange.LAST_MONTH:
        end = today.replace(day=1) - timedelta(days=1)
        return end.replace(day=1), end

    if time_range == TimeRange.LAST_YEAR:
        return date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)

    if time_range == TimeRange.CUSTOM:
        if custom_start and custom_end and custom_end < custom_start:
            raise ValueError("Custom range ends before it starts")
        return custom_start, custom_end

    return None, None


def filter_by_window(
    expenses: Iterable[Expense],
    start: Optional[date],
    end: Optional[date],
) -> list[Expense]:
    return [
        e for e in expenses
        if (start is None or e.expense_date >= start)
        and (end is None or e.expense_date <= end)
    ]


def group_key(expense: Expense, group_by: GroupBy) -> str:
    """Bucket label: the category, or the date truncated to day/month/year."""
    group_by = GroupBy(group_by)
    if group_by == GroupBy.DAY:
        return expense.expense_date.isoformat()
    if group_by == GroupBy.MONTH:
        return expense.expense_date.strftime("%Y-%m")
    if group_by == GroupBy.YEAR:
        return f"{expense.expense_date.year:04d}"
    return expense.category


def format_group_label(label: str, group_by: GroupBy) -> str:
    """Human label for a bucket key (month keys get the month name)."""
    if GroupBy(group_by) == GroupBy.MONTH:
        year, month = label.split("-")
        return f"{calendar.month_abbr[int(month)]} {year}"
    return label


class StatisticsCalculator:
    """
    Builds StatisticsReports.

    Usage:
        calculator = StatisticsCalculator(exchange_service)
        report = await calculator.build_report(expenses, TimeRange.THIS_MONTH,
                                               GroupBy.CATEGORY, "CNY")
    """

    def __init__(self, exchange_service: ExchangeRateService):
        self._exchange = exchange_service

    async def build_report(
        self,
        expenses: Iterable[Expense],
        time_range: TimeRange = TimeRange.ALL,
        group_by: GroupBy = GroupBy.CATEGORY,
        currency: str = "CNY",
        custom_start: Optional[date] = None,
        custom_end: Optional[date] = None,
        today: Optional[date] = None,
    ) -> StatisticsReport:
        time_range = TimeRange(time_range)
        group_by = GroupBy(group_by)
        currency = currency.upper()

        start, end = resolve_time_range(time_range, today, custom_start, custom_end)
        selected = filter_by_window(expenses, start, end)

        groups: dict[str, list[Expense]] = {}
        for expense in selected:
            groups.setdefault(group_key(expense, group_by), []).append(expense)

        amounts: dict[str, Decimal] = {}
        for label, members in groups.items():
            amounts[label] = await self._exchange.convert_batch_total(members, currency)

        total = sum(amounts.values(), Decimal("0"))

        items = [
            StatisticsItem(
                label=label,
                amount=amount,
                count=len(groups[label]),
                percentage=float(amount / total * 100) if total else 0.0,
            )
            for label, amount in amounts.items()
        ]
        items.sort(key=lambda item: (-item.amount, item.label))

        logger.debug(
            "statistics_built",
            time_range=time_range.value,
            group_by=group_by.value,
            expense_count=len(selected),
            groups=len(items),
        )

        return StatisticsReport(
            time_range=time_range,
            group_by=group_by,
            currency=currency,
            date_from=start,
            date_to=end,
            expense_count=len(selected),
            total=total,
            items=items,
        )
