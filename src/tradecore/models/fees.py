"""Fee models — trade fee breakdowns, FX quotes and success-fee commissions.

Invariants enforced by the fee engine and carried by these models:
- escrow_fee + service_fee + fx_spread == total (rounded components summed)
- total + net == gross_amount
- net >= 0
- The FX spread is always disclosed separately, never folded into the rate
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional


class DealType(str, enum.Enum):
    """How a deal was brokered. Drives the success-fee rate."""
    STANDARD = "standard"
    ASSISTED = "assisted"
    HIGH_VALUE = "high_value"


class WaiverReason(str, enum.Enum):
    """Admin overrides that waive the success fee on a deal."""
    FIRST_DEAL = "first_deal"
    HIGH_VOLUME = "high_volume"
    STRATEGIC = "strategic"
    DISPUTE_RESOLUTION = "dispute_resolution"
    TEST_ORDER = "test_order"

    @property
    def description(self) -> str:
        return _WAIVER_DESCRIPTIONS[self]


_WAIVER_DESCRIPTIONS = {
    WaiverReason.FIRST_DEAL: "First deal with this supplier",
    WaiverReason.HIGH_VOLUME: "High volume buyer (10+ deals)",
    WaiverReason.STRATEGIC: "Strategic partnership",
    WaiverReason.DISPUTE_RESOLUTION: "Dispute resolution goodwill",
    WaiverReason.TEST_ORDER: "Test order (sample)",
}


@dataclass(frozen=True)
class FeeBreakdown:
    """Full fee decomposition of one trade's gross value.

    Created fresh on every computation; never mutated.
    """
    gross_amount: Decimal
    currency: str
    escrow_fee: Decimal
    service_fee: Decimal
    fx_spread: Decimal
    total: Decimal
    net: Decimal
    escrow_fee_rate: Decimal
    service_fee_rate: Decimal
    fx_spread_rate: Decimal

    @property
    def combined_rate(self) -> Decimal:
        return self.escrow_fee_rate + self.service_fee_rate + self.fx_spread_rate

    def to_dict(self) -> dict[str, Any]:
        return {
            "gross_amount": str(self.gross_amount),
            "currency": self.currency,
            "escrow_fee": str(self.escrow_fee),
            "service_fee": str(self.service_fee),
            "fx_spread": str(self.fx_spread),
            "total": str(self.total),
            "net": str(self.net),
            "combined_rate": str(self.combined_rate),
        }


@dataclass(frozen=True)
class FXQuote:
    """Estimated conversion of a USD amount into a local currency.

    local_amount includes the spread; interbank_amount does not. The
    difference is what the buyer pays above the reference rate.
    """
    amount_usd: Decimal
    target_currency: str
    rate: Decimal
    spread_pct: Decimal
    local_amount: Decimal
    interbank_amount: Decimal

    @property
    def spread_amount(self) -> Decimal:
        return self.local_amount - self.interbank_amount

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount_usd": str(self.amount_usd),
            "target_currency": self.target_currency,
            "rate": str(self.rate),
            "spread_pct": str(self.spread_pct),
            "local_amount": str(self.local_amount),
            "interbank_amount": str(self.interbank_amount),
        }


@dataclass(frozen=True)
class CommissionQuote:
    """Success fee owed to the platform when a deal completes.

    Invariant: commission_amount + net_payout == deal_value
    """
    deal_value: Decimal
    currency: str
    deal_type: DealType
    rate_pct: Decimal
    commission_amount: Decimal
    net_payout: Decimal
    minimum_applied: bool
    waiver: Optional[WaiverReason] = None

    @property
    def waived(self) -> bool:
        return self.waiver is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "deal_value": str(self.deal_value),
            "currency": self.currency,
            "deal_type": self.deal_type.value,
            "rate_pct": str(self.rate_pct),
            "commission_amount": str(self.commission_amount),
            "net_payout": str(self.net_payout),
            "minimum_applied": self.minimum_applied,
            "waiver": self.waiver.value if self.waiver else None,
        }
