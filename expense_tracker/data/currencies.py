"""
Currency Table

Static code → symbol/name mapping for the currencies the app offers.
Pure lookups, no state. Unknown codes fall back to the code itself so
that a record in an unlisted currency still renders.
"""

from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict


class Currency(BaseModel):
    """One supported currency."""
    model_config = ConfigDict(frozen=True)

    code: str
    symbol: str
    name: str


CURRENCIES: list[Currency] = [
    Currency(code="CNY", symbol="¥", name="Chinese Yuan"),
    Currency(code="USD", symbol="$", name="US Dollar"),
    Currency(code="EUR", symbol="€", name="Euro"),
    Currency(code="JPY", symbol="¥", name="Japanese Yen"),
    Currency(code="GBP", symbol="£", name="British Pound"),
    Currency(code="AUD", symbol="A$", name="Australian Dollar"),
    Currency(code="CAD", symbol="C$", name="Canadian Dollar"),
    Currency(code="HKD", symbol="HK$", name="Hong Kong Dollar"),
    Currency(code="SGD", symbol="S$", name="Singapore Dollar"),
    Currency(code="CHF", symbol="Fr", name="Swiss Franc"),
    Currency(code="KRW", symbol="₩", name="South Korean Won"),
    Currency(code="RUB", symbol="₽", name="Russian Ruble"),
    Currency(code="INR", symbol="₹", name="Indian Rupee"),
    Currency(code="BRL", symbol="R$", name="Brazilian Real"),
    Currency(code="MXN", symbol="Mex$", name="Mexican Peso"),
    Currency(code="THB", symbol="฿", name="Thai Baht"),
    Currency(code="MYR", symbol="RM", name="Malaysian Ringgit"),
    Currency(code="IDR", symbol="Rp", name="Indonesian Rupiah"),
    Currency(code="PHP", symbol="₱", name="Philippine Peso"),
    Currency(code="TWD", symbol="NT$", name="New Taiwan Dollar"),
]

_BY_CODE: dict[str, Currency] = {c.code: c for c in CURRENCIES}


def get_currency(code: str) -> Optional[Currency]:
    return _BY_CODE.get(code.upper()) if code else None


def is_supported_currency(code: str) -> bool:
    return get_currency(code) is not None


def get_currency_symbol(code: str) -> str:
    """Symbol for a code, or the code itself if unknown."""
    currency = get_currency(code)
    return currency.symbol if currency else code


def get_currency_name(code: str) -> str:
    """Display name for a code, or the code itself if unknown."""
    currency = get_currency(code)
    return currency.name if currency else code


def format_currency(amount: Union[Decimal, float, int], code: str) -> str:
    """Format an amount with its currency symbol, e.g. '¥35.00'."""
    return f"{get_currency_symbol(code)}{Decimal(str(amount)):,.2f}"
