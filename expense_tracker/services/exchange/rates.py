"""
Exchange Rates: Cache and Converter

DESIGN DECISION: Currency conversion is ADVISORY. Statistics and the
"≈ in your currency" hints are nice to have, never worth blocking the UI.
So this service NEVER raises:
1. Fresh cached table → use it (a fresh table without the target → rate 1)
2. Otherwise fetch the base currency's full table and cache it,
   keeping older rates the new table no longer lists
3. Fetch failed → use the stale cached rate if we have one
4. Nothing at all → rate 1 (no conversion), logged and audited

The cache is an explicit object owned by the service (one per app
instance), optionally persisted to a JSON file between runs.

Concurrent lookups of the same pair share one in-flight request.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from functools import partial
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from expense_tracker.audit import AuditLogger
from expense_tracker.config import ExchangeRateSettings, get_settings
from expense_tracker.models.expense import Expense


logger = structlog.get_logger(__name__)

ONE = Decimal("1")
ZERO = Decimal("0")


class ExchangeRateError(Exception):
    """The rate API answered with something we cannot use."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_decimal(value: Union[Decimal, float, int, str]) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


class RateCacheEntry(BaseModel):
    """One base currency's rate table and when we fetched it."""

    rates: dict[str, float] = Field(default_factory=dict)
    timestamp: datetime

    def is_fresh(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.timestamp < ttl


class ExchangeRateCache:
    """
    Rate tables keyed by base currency.

    Stale entries are kept: they are the fallback when a refresh fails.
    """

    def __init__(
        self,
        ttl: timedelta = timedelta(hours=24),
        path: Optional[Union[str, Path]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._ttl = ttl
        self._path = Path(path) if path else None
        self._clock = clock
        self._entries: dict[str, RateCacheEntry] = {}
        if self._path is not None:
            self.load()

    def get(self, base: str) -> Optional[RateCacheEntry]:
        return self._entries.get(base)

    def is_fresh(self, base: str) -> bool:
        entry = self._entries.get(base)
        return entry is not None and entry.is_fresh(self._clock(), self._ttl)

    def fresh_rate(self, base: str, target: str) -> Optional[float]:
        """Rate from a non-expired table, if it has the target."""
        if not self.is_fresh(base):
            return None
        return self._entries[base].rates.get(target)

    def any_rate(self, base: str, target: str) -> Optional[float]:
        """Rate from whatever table we have, expired or not."""
        entry = self._entries.get(base)
        if entry is None:
            return None
        return entry.rates.get(target)

    def store(self, base: str, rates: dict[str, float]) -> RateCacheEntry:
        entry = RateCacheEntry(rates=rates, timestamp=self._clock())
        self._entries[base] = entry
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def load(self) -> None:
        """Read persisted tables. A broken file just means an empty cache."""
        if self._path is None or not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            self._entries = {
                base: RateCacheEntry.model_validate(entry)
                for base, entry in raw.items()
            }
        except (OSError, ValueError, AttributeError, ValidationError) as e:
            logger.warning("rate_cache_unreadable", path=str(self._path), error=str(e))
            self._entries = {}

    def save(self) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            payload = {
                base: entry.model_dump(mode="json")
                for base, entry in self._entries.items()
            }
            self._path.write_text(json.dumps(payload), encoding="utf-8")
        except OSError as e:
            logger.warning("rate_cache_not_saved", path=str(self._path), error=str(e))

    def __len__(self) -> int:
        return len(self._entries)


class ExchangeRateService:
    """
    Converts amounts between currencies.

    Usage:
        service = ExchangeRateService()
        rate = await service.get_rate("USD", "CNY")
        total = await service.convert_batch_total(expenses, "CNY")
    """

    def __init__(
        self,
        cache: Optional[ExchangeRateCache] = None,
        settings: Optional[ExchangeRateSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = settings or get_settings().exchange
        self._cache = cache if cache is not None else ExchangeRateCache(
            ttl=timedelta(hours=self._settings.cache_ttl_hours),
            path=self._settings.cache_path or None,
        )
        # Tests inject httpx.MockTransport here
        self._transport = transport
        self._audit_logger = audit_logger
        self._pending: dict[str, asyncio.Task] = {}

    @property
    def cache(self) -> ExchangeRateCache:
        return self._cache

    async def _fetch_rate_table(self, base: str) -> dict[str, float]:
        """GET the full rate table for a base currency."""
        url = f"{self._settings.api_base_url}/{base}"
        # A client per request: the UI runs every call on a fresh event loop
        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await client.get(url)
            response.raise_for_status()
            data = response.json()

        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict):
            raise ExchangeRateError(f"No rate table in response for {base}")

        return {
            str(code).upper(): float(value)
            for code, value in rates.items()
            if isinstance(value, (int, float)) and not isinstance(value, bool)
        }

    async def _refresh_rate(self, base: str, target: str) -> Decimal:
        try:
            rates = await self._fetch_rate_table(base)
            previous = self._cache.get(base)
            if previous is not None:
                # Rates the API stopped listing stay as the stale fallback
                rates = {**previous.rates, **rates}
            self._cache.store(base, rates)
            self._cache.save()
            if target not in rates:
                raise ExchangeRateError(f"{target} missing from {base} rate table")
            return _to_decimal(rates[target])
        except (httpx.HTTPError, ValueError, ExchangeRateError) as e:
            logger.warning(
                "exchange_rate_fetch_failed",
                base=base,
                target=target,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    "exchange_rates",
                    str(e),
                    details={"base": base, "target": target},
                )

        stale = self._cache.any_rate(base, target)
        if stale is not None:
            logger.info("exchange_rate_stale_fallback", base=base, target=target)
            return _to_decimal(stale)

        logger.warning("exchange_rate_identity_fallback", base=base, target=target)
        return ONE

    def _forget_pending(self, key: str, task: asyncio.Task) -> None:
        if self._pending.get(key) is task:
            del self._pending[key]

    async def get_rate(self, from_currency: str, to_currency: str) -> Decimal:
        """
        Multiplier converting `from_currency` amounts into `to_currency`.

        Never raises; see the module docstring for the fallback order.
        """
        base = from_currency.upper()
        target = to_currency.upper()

        if base == target:
            return ONE

        cached = self._cache.fresh_rate(base, target)
        if cached is not None:
            return _to_decimal(cached)

        if self._cache.is_fresh(base):
            # The current table does not list the target; refetching will not add it
            logger.debug("exchange_rate_unlisted", base=base, target=target)
            return ONE

        key = f"{base}_{target}"
        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._refresh_rate(base, target))
            self._pending[key] = task
            task.add_done_callback(partial(self._forget_pending, key))

        # Shielded so one caller giving up does not cancel the others
        return await asyncio.shield(task)

    async def convert_amount(
        self,
        amount: Union[Decimal, float, int],
        from_currency: str,
        to_currency: str,
    ) -> Decimal:
        rate = await self.get_rate(from_currency, to_currency)
        return _to_decimal(amount) * rate

    async def convert_batch_total(
        self,
        expenses: Iterable[Expense],
        target_currency: str,
    ) -> Decimal:
        """
        Sum of `expenses` in `target_currency`.

        Amounts are summed per source currency first, so n expenses in k
        currencies cost k lookups, run at most `batch_size` at a time.
        """
        totals: dict[str, Decimal] = {}
        for expense in expenses:
            currency = expense.currency.upper()
            totals[currency] = totals.get(currency, ZERO) + _to_decimal(expense.amount)

        groups = list(totals.items())
        batch_size = self._settings.batch_size
        total = ZERO

        for start in range(0, len(groups), batch_size):
            batch = groups[start:start + batch_size]
            converted = await asyncio.gather(*(
                self.convert_amount(amount, currency, target_currency)
                for currency, amount in batch
            ))
            total += sum(converted, ZERO)

        return total

    async def convert_expenses(
        self,
        expenses: Iterable[Expense],
        target_currency: str,
    ) -> dict[str, Decimal]:
        """Each expense's amount in `target_currency`, keyed by expense id."""
        expenses = list(expenses)
        currencies = sorted({e.currency.upper() for e in expenses})
        rates = await asyncio.gather(*(
            self.get_rate(currency, target_currency) for currency in currencies
        ))
        rate_by_currency = dict(zip(currencies, rates))

        return {
            e.id: _to_decimal(e.amount) * rate_by_currency[e.currency.upper()]
            for e in expenses
        }
