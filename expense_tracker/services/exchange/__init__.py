"""Exchange-rate services package."""

from expense_tracker.services.exchange.rates import (
    ExchangeRateCache,
    ExchangeRateError,
    ExchangeRateService,
    RateCacheEntry,
)

__all__ = [
    "ExchangeRateCache",
    "ExchangeRateError",
    "ExchangeRateService",
    "RateCacheEntry",
]
