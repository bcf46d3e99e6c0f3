"""Fee subsystem — trade fee breakdowns, FX estimates, success fees."""

from tradecore.fees.commission import CommissionCalculator
from tradecore.fees.engine import FeeEngine
from tradecore.fees.rates import RateSource, StaticRateSource

__all__ = [
    "CommissionCalculator",
    "FeeEngine",
    "RateSource",
    "StaticRateSource",
]
