"""Fee engine — decomposes trade value into fees and estimates FX conversions.

Every trade's gross value is split by three independent rates:

    escrow_fee  = round(gross × ESCROW_FEE_RATE)
    service_fee = round(gross × SERVICE_FEE_RATE)
    fx_spread   = round(gross × FX_SPREAD_RATE)
    total       = escrow_fee + service_fee + fx_spread
    net         = gross − total

Each component is rounded half-up to the currency's minor units and total
is the sum of the ROUNDED components, never a rounding of the combined
rate. The displayed breakdown and the displayed total therefore always
agree to the penny.

FX estimates apply the spread against the buyer:

    local_amount = amount_usd × rate × (1 + FX_SPREAD)

and disclose the spread separately from the reference rate.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from tradecore.errors import UnsupportedCurrency
from tradecore.fees.rates import RateSource, StaticRateSource
from tradecore.models.fees import FeeBreakdown, FXQuote
from tradecore.models.money import TradeValue, format_amount, normalize_code, quantize, to_amount
from tradecore.policy.resolver import PolicyResolver


class FeeEngine:
    """Computes fee breakdowns and FX estimates.

    Usage:
        engine = FeeEngine(resolver)
        breakdown = engine.calculate_trade_fees(Decimal("1000.00"))
        quote = engine.estimate_fx(Decimal("250"), "NGN")
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        rate_source: Optional[RateSource] = None,
    ) -> None:
        self._resolver = resolver
        self._currencies = resolver.currency_registry()
        self._rate_source = rate_source or StaticRateSource(resolver.reference_rates())

    def calculate_trade_fees(
        self,
        gross_amount: Any,
        currency: str = "USD",
    ) -> FeeBreakdown:
        """Compute the fee breakdown and net settlement for a trade.

        gross_amount may be a TradeValue, whose currency then replaces
        the currency argument.

        Raises:
            InvalidAmount: gross_amount is negative, non-finite or not a number.
            UnsupportedCurrency: currency is not in the registry.
        """
        if isinstance(gross_amount, TradeValue):
            gross_amount, currency = gross_amount.amount, gross_amount.currency
        gross = to_amount(gross_amount, "gross_amount")
        cur = self._currencies.get(currency)
        escrow_rate, service_rate, spread_rate = self._resolver.trade_fee_rates()

        escrow_fee = quantize(gross * escrow_rate, cur)
        service_fee = quantize(gross * service_rate, cur)
        fx_spread = quantize(gross * spread_rate, cur)
        total = escrow_fee + service_fee + fx_spread

        return FeeBreakdown(
            gross_amount=gross,
            currency=cur.code,
            escrow_fee=escrow_fee,
            service_fee=service_fee,
            fx_spread=fx_spread,
            total=total,
            net=gross - total,
            escrow_fee_rate=escrow_rate,
            service_fee_rate=service_rate,
            fx_spread_rate=spread_rate,
        )

    def estimate_fx(self, amount_usd: Any, target_currency: str) -> FXQuote:
        """Estimate the local-currency cost of a USD amount, spread included.

        Raises:
            InvalidAmount: amount_usd is negative, non-finite or not a number.
            UnsupportedCurrency: target is unknown or has no usable reference rate.
        """
        amount = to_amount(amount_usd, "amount_usd")
        target = self._currencies.get(normalize_code(target_currency))
        rate = self._rate(target.code)

        spread = self._resolver.fx_spread_rate()
        interbank = amount * rate
        return FXQuote(
            amount_usd=amount,
            target_currency=target.code,
            rate=rate,
            spread_pct=spread * Decimal("100"),
            local_amount=quantize(interbank * (Decimal("1") + spread), target),
            interbank_amount=quantize(interbank, target),
        )

    def convert(self, amount: Any, from_currency: str, to_currency: str) -> Decimal:
        """Convert between two supported currencies at reference rates, no spread.

        Goes through USD. Rounded to the target currency's minor units.
        """
        value = to_amount(amount)
        source = self._currencies.get(from_currency)
        target = self._currencies.get(to_currency)
        if source.code == target.code:
            return value
        from_rate = self._rate(source.code)
        to_rate = self._rate(target.code)
        return quantize(value / from_rate * to_rate, target)

    def _rate(self, code: str) -> Decimal:
        rate = self._rate_source.rate_for(code)
        if rate is None or not rate.is_finite() or rate <= Decimal("0"):
            raise UnsupportedCurrency(f"No reference rate available for {code}")
        return rate

    def format_amount(self, amount: Any, code: str) -> str:
        """Display string for an amount, e.g. "₦387,500.00"."""
        return format_amount(amount, self._currencies.find(code), normalize_code(code))
