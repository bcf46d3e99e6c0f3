"""Policy resolver — loads the business constants from JSON config files.

Fee rates, FX spread, currency reference data, escrow display
percentages and trust weights are business policy, not code. They live in
config/*.json and are injected into the engines through this resolver so
that per-market values can change without touching the formulas.

Monetary values are stored as strings and parsed as Decimal.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from tradecore.errors import PolicyError
from tradecore.models.money import Currency, CurrencyRegistry


FEE_PARAMS = "fee_params.json"
CURRENCIES = "currencies.json"
ESCROW_PARAMS = "escrow_params.json"
TRUST_PARAMS = "trust_params.json"


@dataclass(frozen=True)
class TrustWeights:
    """Resolved trust formula parameters (points on a 0–100 scale)."""
    completion_points: float
    response_points: float
    tenure_points: float
    verification_points: dict[str, float]
    response_full_credit_hours: float
    response_zero_credit_hours: float
    slow_responder_hours: float
    tenure_full_credit_days: float
    dispute_penalty_per_dispute: float
    dispute_penalty_cap: float
    high_dispute_rate: float
    low_risk_min: float
    medium_risk_min: float

    @property
    def max_points(self) -> float:
        return (
            self.completion_points
            + self.response_points
            + self.tenure_points
            + max(self.verification_points.values())
        )


def _decimal(value: Any, key: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise PolicyError(f"Policy value {key!r} is not a number: {value!r}") from None


class PolicyResolver:
    """Resolves business policy from loaded config documents.

    Usage:
        resolver = PolicyResolver.from_config_dir(Path("config"))
        rates = resolver.trade_fee_rates()
    """

    def __init__(
        self,
        fee_params: dict[str, Any],
        currencies: dict[str, Any],
        escrow_params: dict[str, Any],
        trust_params: dict[str, Any],
    ) -> None:
        self._fees = fee_params
        self._currencies = currencies
        self._escrow = escrow_params
        self._trust = trust_params
        self._registry = self._build_registry()

    @staticmethod
    def from_config_dir(config_dir: Path) -> PolicyResolver:
        """Load every policy file from a config directory."""
        config_dir = Path(config_dir)
        return PolicyResolver(
            fee_params=_load_json(config_dir / FEE_PARAMS),
            currencies=_load_json(config_dir / CURRENCIES),
            escrow_params=_load_json(config_dir / ESCROW_PARAMS),
            trust_params=_load_json(config_dir / TRUST_PARAMS),
        )

    # ------------------------------------------------------------------
    # Fees
    # ------------------------------------------------------------------

    def trade_fee_rates(self) -> tuple[Decimal, Decimal, Decimal]:
        """Return (escrow_fee_rate, service_fee_rate, fx_spread_rate)."""
        section = self._section(self._fees, "trade_fees")
        return (
            _decimal(section["escrow_fee_rate"], "escrow_fee_rate"),
            _decimal(section["service_fee_rate"], "service_fee_rate"),
            _decimal(section["fx_spread_rate"], "fx_spread_rate"),
        )

    def fx_spread_rate(self) -> Decimal:
        return _decimal(self._section(self._fees, "fx")["spread_rate"], "fx.spread_rate")

    def base_currency(self) -> str:
        return self._section(self._fees, "fx").get("base_currency", "USD")

    def commission_params(self) -> dict[str, Decimal]:
        section = self._section(self._fees, "commission")
        return {key: _decimal(value, key) for key, value in section.items()}

    # ------------------------------------------------------------------
    # Currencies
    # ------------------------------------------------------------------

    def currency_registry(self) -> CurrencyRegistry:
        return self._registry

    def reference_rates(self) -> dict[str, Decimal]:
        """Fallback USD reference rates shipped with the config."""
        rates: dict[str, Decimal] = {}
        for entry in self._currencies.get("currencies", []):
            if "reference_rate" in entry:
                rates[entry["code"]] = _decimal(entry["reference_rate"], entry["code"])
        return rates

    # ------------------------------------------------------------------
    # Escrow
    # ------------------------------------------------------------------

    def clock_skew_seconds(self) -> float:
        return float(self._escrow.get("clock_skew_seconds", 5))

    def unlocked_percentages(self) -> dict[str, Decimal]:
        section = self._section(self._escrow, "unlocked_percent")
        return {status: _decimal(pct, status) for status, pct in section.items()}

    # ------------------------------------------------------------------
    # Trust
    # ------------------------------------------------------------------

    def trust_weights(self) -> TrustWeights:
        try:
            weights = self._trust["weights"]
            response = self._trust["response_hours"]
            penalty = self._trust["dispute_penalty"]
            thresholds = self._trust["risk_thresholds"]
            return TrustWeights(
                completion_points=float(weights["completion_points"]),
                response_points=float(weights["response_points"]),
                tenure_points=float(weights["tenure_points"]),
                verification_points={
                    tier: float(points)
                    for tier, points in weights["verification_points"].items()
                },
                response_full_credit_hours=float(response["full_credit_max"]),
                response_zero_credit_hours=float(response["zero_credit_min"]),
                slow_responder_hours=float(response["slow_responder_over"]),
                tenure_full_credit_days=float(self._trust["tenure_full_credit_days"]),
                dispute_penalty_per_dispute=float(penalty["per_dispute"]),
                dispute_penalty_cap=float(penalty["cap"]),
                high_dispute_rate=float(self._trust["high_dispute_rate_over"]),
                low_risk_min=float(thresholds["low_min"]),
                medium_risk_min=float(thresholds["medium_min"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise PolicyError(f"Malformed trust policy: {exc}") from exc

    # ------------------------------------------------------------------

    def _build_registry(self) -> CurrencyRegistry:
        try:
            currencies = [
                Currency(
                    code=entry["code"],
                    symbol=entry.get("symbol", entry["code"]),
                    name=entry.get("name", entry["code"]),
                    country=entry.get("country", "Unknown"),
                    minor_units=int(entry.get("minor_units", 2)),
                )
                for entry in self._currencies.get("currencies", [])
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise PolicyError(f"Malformed currency table: {exc}") from exc
        return CurrencyRegistry(currencies)

    @staticmethod
    def _section(doc: dict[str, Any], name: str) -> dict[str, Any]:
        section = doc.get(name)
        if not isinstance(section, dict):
            raise PolicyError(f"Missing policy section: {name}")
        return section


def _load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise PolicyError(f"Policy file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        try:
            return json.load(handle)
        except json.JSONDecodeError as exc:
            raise PolicyError(f"Invalid JSON in {path}: {exc}") from exc
