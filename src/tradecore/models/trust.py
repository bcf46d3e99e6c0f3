"""Trust profile and risk assessment models.

A TrustProfile is a derived view of a counterparty's history, recomputed
on each scoring request. A RiskAssessment is the pure output of scoring
it: a bounded score, a risk level, and advisory flags that do not feed
back into the score.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from tradecore.errors import InvalidProfile


class VerificationTier(str, enum.Enum):
    UNVERIFIED = "unverified"
    PENDING = "pending"
    VERIFIED = "verified"


class RiskLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FlagKind(str, enum.Enum):
    """Qualitative, advisory signals shown next to a risk badge."""
    SLOW_RESPONDER = "slow_responder"
    HIGH_DISPUTE_RATE = "high_dispute_rate"
    INACTIVE = "inactive"


@dataclass(frozen=True)
class TrustProfile:
    """Behavioural aggregates for one counterparty company."""
    completed_orders: int
    cancelled_orders: int
    disputed_orders: int
    avg_response_hours: float
    verification_tier: VerificationTier
    account_age_days: float

    @staticmethod
    def from_dict(data: dict[str, Any]) -> TrustProfile:
        """Build a profile from a row-shaped mapping. Every field is required."""
        missing = [name for name in PROFILE_FIELDS if name not in data]
        if missing:
            raise InvalidProfile(f"Profile missing fields: {', '.join(missing)}")
        return TrustProfile(**{name: data[name] for name in PROFILE_FIELDS})


PROFILE_FIELDS = (
    "completed_orders",
    "cancelled_orders",
    "disputed_orders",
    "avg_response_hours",
    "verification_tier",
    "account_age_days",
)


@dataclass(frozen=True)
class ScoreComponents:
    """Points contributed by each part of the trust formula."""
    completion: float
    response: float
    verification: float
    tenure: float
    dispute_penalty: float

    @property
    def raw_total(self) -> float:
        return (
            self.completion
            + self.response
            + self.verification
            + self.tenure
            - self.dispute_penalty
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "completion": round(self.completion, 2),
            "response": round(self.response, 2),
            "verification": round(self.verification, 2),
            "tenure": round(self.tenure, 2),
            "dispute_penalty": round(self.dispute_penalty, 2),
        }


@dataclass(frozen=True)
class RiskAssessment:
    """Complete scoring result. Never partial."""
    trust_score: float
    risk_level: RiskLevel
    flags: frozenset[FlagKind] = field(default_factory=frozenset)
    components: ScoreComponents | None = None

    def has_flag(self, flag: FlagKind) -> bool:
        return flag in self.flags

    def to_dict(self) -> dict[str, Any]:
        return {
            "trust_score": self.trust_score,
            "risk_level": self.risk_level.value,
            "flags": sorted(f.value for f in self.flags),
            "components": self.components.to_dict() if self.components else None,
        }
