"""Tests for the commission calculator — proves success-fee rules."""

import pytest
from decimal import Decimal
from pathlib import Path

from tradecore.errors import InvalidAmount, UnsupportedCurrency
from tradecore.fees.commission import CommissionCalculator
from tradecore.models.fees import DealType, WaiverReason
from tradecore.policy.resolver import PolicyResolver


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"


@pytest.fixture
def calculator() -> CommissionCalculator:
    return CommissionCalculator(PolicyResolver.from_config_dir(CONFIG_DIR))


class TestRates:
    def test_standard_rate(self, calculator: CommissionCalculator) -> None:
        q = calculator.compute_commission(Decimal("1000"))
        assert q.deal_type == DealType.STANDARD
        assert q.rate_pct == Decimal("8")
        assert q.commission_amount == Decimal("80.00")
        assert q.net_payout == Decimal("920.00")
        assert q.minimum_applied is False

    def test_assisted_rate(self, calculator: CommissionCalculator) -> None:
        q = calculator.compute_commission(Decimal("60000"), DealType.ASSISTED)
        assert q.deal_type == DealType.ASSISTED
        assert q.commission_amount == Decimal("7200.00")

    def test_high_value_at_threshold(self, calculator: CommissionCalculator) -> None:
        q = calculator.compute_commission(Decimal("50000"))
        assert q.deal_type == DealType.HIGH_VALUE
        assert q.commission_amount == Decimal("2500.00")

    def test_high_value_below_threshold_is_standard(self, calculator: CommissionCalculator) -> None:
        q = calculator.compute_commission(Decimal("49999.99"), "high_value")
        assert q.deal_type == DealType.STANDARD
        assert q.rate_pct == Decimal("8")


class TestMinimum:
    def test_minimum_applied(self, calculator: CommissionCalculator) -> None:
        q = calculator.compute_commission(Decimal("400"))
        assert q.commission_amount == Decimal("50")
        assert q.net_payout == Decimal("350")
        assert q.minimum_applied is True

    def test_never_exceeds_deal_value(self, calculator: CommissionCalculator) -> None:
        q = calculator.compute_commission(Decimal("30"))
        assert q.commission_amount == Decimal("30")
        assert q.net_payout == Decimal("0")

    @pytest.mark.parametrize("value", ["0", "10", "625", "1234.56", "75000"])
    def test_commission_plus_payout_equals_value(
        self, calculator: CommissionCalculator, value: str,
    ) -> None:
        q = calculator.compute_commission(Decimal(value))
        assert q.commission_amount + q.net_payout == q.deal_value


class TestWaivers:
    def test_waiver_zeroes_commission(self, calculator: CommissionCalculator) -> None:
        q = calculator.compute_commission(Decimal("1000"), waiver=WaiverReason.FIRST_DEAL)
        assert q.waived
        assert q.commission_amount == Decimal("0")
        assert q.net_payout == Decimal("1000")
        assert q.to_dict()["waiver"] == "first_deal"

    def test_waiver_from_string(self, calculator: CommissionCalculator) -> None:
        q = calculator.compute_commission(Decimal("1000"), waiver="test_order")
        assert q.waiver == WaiverReason.TEST_ORDER

    def test_unknown_waiver(self, calculator: CommissionCalculator) -> None:
        with pytest.raises(ValueError):
            calculator.compute_commission(Decimal("1000"), waiver="friends_and_family")


class TestValidation:
    def test_negative_value(self, calculator: CommissionCalculator) -> None:
        with pytest.raises(InvalidAmount):
            calculator.compute_commission(Decimal("-1"))

    def test_unknown_currency(self, calculator: CommissionCalculator) -> None:
        with pytest.raises(UnsupportedCurrency):
            calculator.compute_commission(Decimal("100"), currency="XXX")


class TestDisclosure:
    def test_standard_disclosure(self, calculator: CommissionCalculator) -> None:
        lines = calculator.disclosure(calculator.compute_commission(Decimal("1000")))
        assert lines[0].startswith("A 8% success fee ($80.00)")
        assert "Paid to supplier: $920.00" in lines

    def test_minimum_line(self, calculator: CommissionCalculator) -> None:
        lines = calculator.disclosure(calculator.compute_commission(Decimal("400")))
        assert lines[-1] == "Minimum fee of $50.00 applied."

    def test_waived_disclosure(self, calculator: CommissionCalculator) -> None:
        quote = calculator.compute_commission(Decimal("1000"), waiver="strategic")
        lines = calculator.disclosure(quote)
        assert lines[0] == "Success fee waived: Strategic partnership."
