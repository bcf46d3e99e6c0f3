#!/usr/bin/env python3
"""Tradecore invariant checks against the policy files in config/.

Usage:
    python tools/check_invariants.py [CONFIG_DIR]

CONFIG_DIR defaults to TRADECORE_CONFIG_DIR (read from .env at the repo
root when present), else the repository config/ directory.
"""

import json
import math
import os
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

from dotenv import load_dotenv


ROOT = Path(__file__).resolve().parents[1]
HAPPY_PATH = ("none", "locked", "funded", "verified", "released")
TIERS = ("unverified", "pending", "verified")

load_dotenv(ROOT / ".env")


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def as_decimal(value: object, label: str, errors: list[str]) -> Decimal | None:
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        errors.append(f"{label} is not a number: {value!r}")
        return None
    if not result.is_finite():
        errors.append(f"{label} must be finite, got {value!r}")
        return None
    return result


def check_fees(fees: dict, errors: list[str]) -> None:
    trade = fees.get("trade_fees", {})
    rates = []
    for key in ("escrow_fee_rate", "service_fee_rate", "fx_spread_rate"):
        if key not in trade:
            errors.append(f"trade_fees missing {key}")
            continue
        rate = as_decimal(trade[key], f"trade_fees.{key}", errors)
        if rate is None:
            continue
        if not (Decimal("0") <= rate < Decimal("1")):
            errors.append(f"trade_fees.{key} must be in [0, 1), got {rate}")
        rates.append(rate)
    if sum(rates, Decimal("0")) >= Decimal("1"):
        errors.append("Combined trade fee rate must be below 1")

    fx = fees.get("fx", {})
    spread = as_decimal(fx.get("spread_rate"), "fx.spread_rate", errors)
    trade_spread = trade.get("fx_spread_rate")
    if spread is not None and trade_spread is not None and spread != Decimal(str(trade_spread)):
        errors.append("fx.spread_rate must match trade_fees.fx_spread_rate")

    commission = fees.get("commission", {})
    for key in ("standard_rate_pct", "assisted_rate_pct", "high_value_rate_pct"):
        pct = as_decimal(commission.get(key), f"commission.{key}", errors)
        if pct is not None and not (Decimal("0") <= pct <= Decimal("100")):
            errors.append(f"commission.{key} must be in [0, 100], got {pct}")
    for key in ("high_value_threshold", "minimum_commission"):
        value = as_decimal(commission.get(key), f"commission.{key}", errors)
        if value is not None and value < 0:
            errors.append(f"commission.{key} must be >= 0, got {value}")


def check_currencies(currencies: dict, base: str, errors: list[str]) -> None:
    entries = currencies.get("currencies", [])
    if not entries:
        errors.append("Currency table must not be empty")
    seen: set[str] = set()
    for entry in entries:
        code = entry.get("code", "")
        if len(code) != 3 or not code.isupper():
            errors.append(f"Currency code must be 3 upper-case letters: {code!r}")
        if code in seen:
            errors.append(f"Duplicate currency code: {code}")
        seen.add(code)
        if entry.get("minor_units", 2) not in (0, 2, 3):
            errors.append(f"{code}.minor_units must be 0, 2 or 3")
        rate = as_decimal(entry.get("reference_rate"), f"{code}.reference_rate", errors)
        if rate is not None and rate <= 0:
            errors.append(f"{code}.reference_rate must be > 0, got {rate}")
    if base not in seen:
        errors.append(f"Base currency {base} missing from currency table")


def check_escrow(escrow: dict, errors: list[str]) -> None:
    skew = escrow.get("clock_skew_seconds", 0)
    if not isinstance(skew, (int, float)) or skew < 0:
        errors.append(f"clock_skew_seconds must be >= 0, got {skew!r}")

    percents = escrow.get("unlocked_percent", {})
    previous = Decimal("-1")
    for status in HAPPY_PATH:
        pct = as_decimal(percents.get(status), f"unlocked_percent.{status}", errors)
        if pct is None:
            continue
        if not (Decimal("0") <= pct <= Decimal("100")):
            errors.append(f"unlocked_percent.{status} must be in [0, 100]")
        if pct < previous:
            errors.append("unlocked_percent must not decrease along the happy path")
        previous = pct
    if percents.get("released") is not None and Decimal(str(percents["released"])) != 100:
        errors.append("unlocked_percent.released must be 100")


def check_trust(trust: dict, errors: list[str]) -> None:
    weights = trust["weights"]
    tiers = weights["verification_points"]
    if set(tiers) != set(TIERS):
        errors.append(f"verification_points must define exactly {list(TIERS)}")
    if not all(tiers[a] <= tiers[b] for a, b in zip(TIERS, TIERS[1:]) if a in tiers and b in tiers):
        errors.append("verification_points must not decrease with tier")
    max_points = (
        weights["completion_points"]
        + weights["response_points"]
        + weights["tenure_points"]
        + max(tiers.values())
    )
    if not math.isclose(max_points, 100.0, abs_tol=1e-9):
        errors.append(f"Trust weights must sum to 100 points, got {max_points}")

    response = trust["response_hours"]
    if not (0 <= response["full_credit_max"] < response["zero_credit_min"]):
        errors.append("response_hours.full_credit_max must be below zero_credit_min")

    if trust["tenure_full_credit_days"] <= 0:
        errors.append("tenure_full_credit_days must be > 0")

    penalty = trust["dispute_penalty"]
    if penalty["per_dispute"] < 0 or penalty["cap"] < 0:
        errors.append("dispute_penalty values must be >= 0")

    thresholds = trust["risk_thresholds"]
    if not (0 < thresholds["medium_min"] < thresholds["low_min"] <= 100):
        errors.append("risk_thresholds must satisfy 0 < medium_min < low_min <= 100")


def check(config_dir: Path) -> int:
    errors: list[str] = []
    try:
        fees = load_json(config_dir / "fee_params.json")
        currencies = load_json(config_dir / "currencies.json")
        escrow = load_json(config_dir / "escrow_params.json")
        trust = load_json(config_dir / "trust_params.json")
    except (OSError, json.JSONDecodeError) as exc:
        print(f"Invariant check failed: cannot load policy files: {exc}")
        return 1

    check_fees(fees, errors)
    check_currencies(currencies, fees.get("fx", {}).get("base_currency", "USD"), errors)
    check_escrow(escrow, errors)
    try:
        check_trust(trust, errors)
    except (KeyError, TypeError) as exc:
        errors.append(f"Malformed trust policy: {exc}")

    if errors:
        print("Invariant check failed:")
        for err in errors:
            print(f"- {err}")
        return 1

    print("Invariant check passed.")
    return 0


if __name__ == "__main__":
    if len(sys.argv) > 1:
        target = Path(sys.argv[1])
    else:
        target = Path(os.environ.get("TRADECORE_CONFIG_DIR") or ROOT / "config")
    raise SystemExit(check(target))
