"""Core data models for the trade core."""

from tradecore.models.escrow import (
    DisputeOutcome,
    EscrowDerivation,
    EscrowEventType,
    EscrowRecord,
    EscrowStatus,
    OrderLifecycleEvent,
)
from tradecore.models.fees import (
    CommissionQuote,
    DealType,
    FeeBreakdown,
    FXQuote,
    WaiverReason,
)
from tradecore.models.money import Currency, CurrencyRegistry, TradeValue
from tradecore.models.trust import (
    FlagKind,
    RiskAssessment,
    RiskLevel,
    TrustProfile,
    VerificationTier,
)

__all__ = [
    "CommissionQuote",
    "Currency",
    "CurrencyRegistry",
    "DealType",
    "DisputeOutcome",
    "EscrowDerivation",
    "EscrowEventType",
    "EscrowRecord",
    "EscrowStatus",
    "FeeBreakdown",
    "FlagKind",
    "FXQuote",
    "OrderLifecycleEvent",
    "RiskAssessment",
    "RiskLevel",
    "TradeValue",
    "TrustProfile",
    "VerificationTier",
    "WaiverReason",
]
