"""Trust/risk engine — scores counterparties from behavioural aggregates.

Trust model (points on a 0–100 scale, weights from trust_params.json):

    completion   = completed / max(1, completed + cancelled) × 40
    response     = 20 if hours <= 24, linear to 0 at 72, 0 beyond
    verification = unverified 0 | pending 10 | verified 25
    tenure       = min(age_days / 180, 1) × 15
    penalty      = min(disputed × 8, 30)

    score = clamp(completion + response + verification + tenure − penalty, 0, 100)

Risk level: score >= 70 low, 40 <= score < 70 medium, below 40 high.
Classification uses the reported score (rounded to 2 decimals) so the
badge and the number shown next to it always agree.

Flags are advisory and never change the score:
- slow_responder: avg_response_hours > 48
- high_dispute_rate: disputed / max(1, completed) > 0.1
- inactive: caller-supplied (no orders in the last 90 days)

Invariants:
- Holding all else fixed, more disputes never raise the score.
- Holding all else fixed, more completed orders never lower the score.
- Every call returns a complete assessment or raises InvalidProfile.
"""

from __future__ import annotations

import math
from decimal import Decimal
from numbers import Real
from typing import Any

from tradecore.errors import InvalidProfile
from tradecore.models.trust import (
    FlagKind,
    RiskAssessment,
    RiskLevel,
    ScoreComponents,
    TrustProfile,
    VerificationTier,
)
from tradecore.policy.resolver import PolicyResolver


class TrustRiskEngine:
    """Computes trust scores, risk levels and advisory flags."""

    def __init__(self, resolver: PolicyResolver) -> None:
        self._weights = resolver.trust_weights()

    def score_trust(self, profile: TrustProfile, inactive: bool = False) -> RiskAssessment:
        """Score a counterparty.

        ``inactive`` is supplied by the caller (no orders in the last 90
        days) because "now" is environment-dependent.

        Raises:
            InvalidProfile: negative or non-integer counts, negative or
                non-finite hours/age, or an unknown verification tier.
        """
        tier = self.validate_profile(profile)
        components = self.compute_components(profile, tier)
        score = round(max(0.0, min(100.0, components.raw_total)), 2)

        return RiskAssessment(
            trust_score=score,
            risk_level=self.classify(score),
            flags=self._flags(profile, inactive),
            components=components,
        )

    def compute_components(
        self,
        profile: TrustProfile,
        tier: VerificationTier,
    ) -> ScoreComponents:
        w = self._weights
        completed = profile.completed_orders
        finished = max(1, completed + profile.cancelled_orders)

        return ScoreComponents(
            completion=completed / finished * w.completion_points,
            response=self._response_points(float(profile.avg_response_hours)),
            verification=w.verification_points.get(tier.value, 0.0),
            tenure=min(float(profile.account_age_days) / w.tenure_full_credit_days, 1.0)
            * w.tenure_points,
            dispute_penalty=min(
                profile.disputed_orders * w.dispute_penalty_per_dispute,
                w.dispute_penalty_cap,
            ),
        )

    def classify(self, score: float) -> RiskLevel:
        if score >= self._weights.low_risk_min:
            return RiskLevel.LOW
        if score >= self._weights.medium_risk_min:
            return RiskLevel.MEDIUM
        return RiskLevel.HIGH

    @staticmethod
    def validate_profile(profile: TrustProfile) -> VerificationTier:
        """Check a profile and return its parsed verification tier."""
        errors: list[str] = []
        for name in ("completed_orders", "cancelled_orders", "disputed_orders"):
            value = getattr(profile, name)
            if isinstance(value, bool) or not isinstance(value, int):
                errors.append(f"{name} must be an integer, got {value!r}")
            elif value < 0:
                errors.append(f"{name} must be >= 0, got {value}")

        for name in ("avg_response_hours", "account_age_days"):
            value = getattr(profile, name)
            if not _is_non_negative_number(value):
                errors.append(f"{name} must be a finite number >= 0, got {value!r}")

        tier: VerificationTier | None = None
        try:
            tier = VerificationTier(profile.verification_tier)
        except ValueError:
            errors.append(f"unknown verification tier: {profile.verification_tier!r}")

        if errors:
            raise InvalidProfile("; ".join(errors))
        return tier

    def _response_points(self, hours: float) -> float:
        w = self._weights
        if hours <= w.response_full_credit_hours:
            return w.response_points
        if hours >= w.response_zero_credit_hours:
            return 0.0
        span = w.response_zero_credit_hours - w.response_full_credit_hours
        return w.response_points * (w.response_zero_credit_hours - hours) / span

    def _flags(self, profile: TrustProfile, inactive: bool) -> frozenset[FlagKind]:
        w = self._weights
        flags: set[FlagKind] = set()
        if float(profile.avg_response_hours) > w.slow_responder_hours:
            flags.add(FlagKind.SLOW_RESPONDER)
        if profile.disputed_orders / max(1, profile.completed_orders) > w.high_dispute_rate:
            flags.add(FlagKind.HIGH_DISPUTE_RATE)
        if inactive:
            flags.add(FlagKind.INACTIVE)
        return frozenset(flags)


def _is_non_negative_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (Real, Decimal)):
        return False
    return math.isfinite(value) and value >= 0
