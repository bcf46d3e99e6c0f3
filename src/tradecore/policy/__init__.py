"""Business policy loaded from config/*.json."""

from tradecore.policy.resolver import PolicyResolver, TrustWeights

__all__ = ["PolicyResolver", "TrustWeights"]
