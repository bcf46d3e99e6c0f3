"""Reference exchange-rate sources.

Live rates come from an external provider outside this package. The fee
engine only needs something that answers "how many units of X per USD",
so the provider is injected as any object with ``rate_for(code)``.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Mapping, Optional, Protocol


class RateSource(Protocol):
    def rate_for(self, code: str) -> Optional[Decimal]:
        """Units of ``code`` per 1 USD, or None when unknown."""


class StaticRateSource:
    """Serves a fixed table of USD reference rates.

    Backed by the fallback rates in config/currencies.json, or by any
    snapshot a caller fetched from a live provider.
    """

    def __init__(self, rates: Mapping[str, Decimal]) -> None:
        self._rates = {code.upper(): Decimal(str(rate)) for code, rate in rates.items()}

    def rate_for(self, code: str) -> Optional[Decimal]:
        return self._rates.get(code.upper())

    def with_overrides(self, overrides: Mapping[str, Decimal]) -> StaticRateSource:
        """Return a new source with some rates replaced (e.g. a live snapshot)."""
        merged = dict(self._rates)
        merged.update({code.upper(): Decimal(str(rate)) for code, rate in overrides.items()})
        return StaticRateSource(merged)
