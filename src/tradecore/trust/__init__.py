"""Trust/risk scoring for marketplace counterparties."""

from tradecore.trust.engine import TrustRiskEngine

__all__ = ["TrustRiskEngine"]
