"""Money primitives — currencies, amounts and minor-unit rounding.

All monetary values use Decimal for exact arithmetic. No floats in finance.
Rounding to a currency's minor units is always ROUND_HALF_UP.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from tradecore.errors import InvalidAmount, UnsupportedCurrency


ZERO = Decimal("0")


@dataclass(frozen=True)
class Currency:
    """An ISO 4217 currency as the marketplace displays it."""
    code: str
    symbol: str
    name: str
    country: str
    minor_units: int = 2

    @property
    def exponent(self) -> Decimal:
        """Quantization exponent for this currency (e.g. 0.01 or 1)."""
        return Decimal(1).scaleb(-self.minor_units)


@dataclass(frozen=True)
class TradeValue:
    """The gross monetary value of a trade. Amount is never negative."""
    amount: Decimal
    currency: str = "USD"

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_amount(self.amount))


class CurrencyRegistry:
    """Lookup table of supported currencies, keyed by ISO code."""

    def __init__(self, currencies: Iterable[Currency]) -> None:
        self._by_code: dict[str, Currency] = {c.code: c for c in currencies}

    def get(self, code: str) -> Currency:
        """Return the currency for a code, failing on unknown codes."""
        currency = self._by_code.get(normalize_code(code))
        if currency is None:
            raise UnsupportedCurrency(f"Unsupported currency: {code!r}")
        return currency

    def find(self, code: str) -> Optional[Currency]:
        return self._by_code.get(normalize_code(code))

    def by_country(self, country: str) -> Optional[Currency]:
        """First currency whose country matches, case-insensitively."""
        wanted = country.strip().lower()
        for currency in self._by_code.values():
            if currency.country.lower() == wanted:
                return currency
        return None

    def codes(self) -> list[str]:
        return sorted(self._by_code)

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and normalize_code(code) in self._by_code

    def __len__(self) -> int:
        return len(self._by_code)


def normalize_code(code: Any) -> str:
    if not isinstance(code, str):
        raise UnsupportedCurrency(f"Currency code must be a string, got {code!r}")
    return code.strip().upper()


def to_amount(value: Any, field_name: str = "amount") -> Decimal:
    """Coerce a monetary input to a finite, non-negative Decimal.

    Floats go through str() so 0.1 stays 0.1. Booleans are rejected.
    """
    if isinstance(value, bool):
        raise InvalidAmount(f"{field_name} must be a number, got {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"{field_name} must be a number, got {value!r}") from None
    if not amount.is_finite():
        raise InvalidAmount(f"{field_name} must be finite, got {value!r}")
    if amount < ZERO:
        raise InvalidAmount(f"{field_name} must be >= 0, got {amount}")
    return amount


def quantize(amount: Decimal, currency: Currency) -> Decimal:
    """Round to the currency's minor units, half-up."""
    return amount.quantize(currency.exponent, rounding=ROUND_HALF_UP)


def format_amount(amount: Any, currency: Optional[Currency], code: str = "USD") -> str:
    """Render an amount for display, e.g. "$1,234.56" or "USh1,235".

    Unknown currencies (``currency is None``) render as "CODE 1,234.56".
    """
    value = to_amount(amount)
    if currency is None:
        return f"{code} {value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):,.2f}"
    rounded = quantize(value, currency)
    return f"{currency.symbol}{rounded:,.{currency.minor_units}f}"
