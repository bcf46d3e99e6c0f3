"""Commission calculator — the success fee earned only on completed deals.

    rate = ASSISTED            if deal_type is assisted
         = HIGH_VALUE          if deal_value >= HIGH_VALUE_THRESHOLD
         = STANDARD            otherwise
    commission = min(max(deal_value × rate, MINIMUM), deal_value)
    net_payout = deal_value − commission

A waiver zeroes the commission and is reported on the quote.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from tradecore.models.fees import CommissionQuote, DealType, WaiverReason
from tradecore.models.money import CurrencyRegistry, format_amount, quantize, to_amount
from tradecore.policy.resolver import PolicyResolver


class CommissionCalculator:
    """Computes success-fee quotes and their buyer-facing disclosure."""

    def __init__(self, resolver: PolicyResolver) -> None:
        self._resolver = resolver
        self._currencies: CurrencyRegistry = resolver.currency_registry()

    def compute_commission(
        self,
        deal_value: Any,
        deal_type: DealType | str = DealType.STANDARD,
        currency: str = "USD",
        waiver: Optional[WaiverReason | str] = None,
    ) -> CommissionQuote:
        value = to_amount(deal_value, "deal_value")
        cur = self._currencies.get(currency)
        deal_type = DealType(deal_type)
        waiver = WaiverReason(waiver) if waiver is not None else None
        params = self._resolver.commission_params()

        if deal_type == DealType.ASSISTED:
            rate_pct = params["assisted_rate_pct"]
        elif value >= params["high_value_threshold"]:
            rate_pct = params["high_value_rate_pct"]
            deal_type = DealType.HIGH_VALUE
        else:
            rate_pct = params["standard_rate_pct"]
            deal_type = DealType.STANDARD

        if waiver is not None:
            return CommissionQuote(
                deal_value=value,
                currency=cur.code,
                deal_type=deal_type,
                rate_pct=rate_pct,
                commission_amount=Decimal("0"),
                net_payout=value,
                minimum_applied=False,
                waiver=waiver,
            )

        raw = quantize(value * rate_pct / Decimal("100"), cur)
        minimum = params["minimum_commission"]
        commission = max(raw, minimum)
        minimum_applied = raw < minimum
        # Never charge more than the deal is worth.
        commission = min(commission, value)

        return CommissionQuote(
            deal_value=value,
            currency=cur.code,
            deal_type=deal_type,
            rate_pct=rate_pct,
            commission_amount=commission,
            net_payout=value - commission,
            minimum_applied=minimum_applied,
        )

    def disclosure(self, quote: CommissionQuote) -> list[str]:
        """Buyer-facing lines explaining the success fee."""
        cur = self._currencies.find(quote.currency)

        def fmt(amount: Decimal) -> str:
            return format_amount(amount, cur, quote.currency)

        if quote.waived:
            return [
                f"Success fee waived: {quote.waiver.description}.",
                f"Deal value: {fmt(quote.deal_value)}",
                f"Paid to supplier: {fmt(quote.net_payout)}",
            ]
        lines = [
            f"A {quote.rate_pct}% success fee ({fmt(quote.commission_amount)}) "
            "applies only if this deal completes successfully.",
            f"Deal value: {fmt(quote.deal_value)}",
            f"Platform fee: {quote.rate_pct}% ({fmt(quote.commission_amount)})",
            f"Paid to supplier: {fmt(quote.net_payout)}",
        ]
        if quote.minimum_applied:
            lines.append(f"Minimum fee of {fmt(quote.commission_amount)} applied.")
        return lines
