"""Tradecore CLI — command-line access to fee, escrow and trust calculations.

Usage:
    python -m tradecore.cli fees --amount 1000 --currency USD
    python -m tradecore.cli fx --amount 250 --currency NGN
    python -m tradecore.cli commission --value 12000 --type assisted
    python -m tradecore.cli escrow-state --events order_events.json --milestone inspection
    python -m tradecore.cli trust --completed 48 --cancelled 2 --response-hours 6 --tier verified --age-days 400

The config directory comes from --config, else TRADECORE_CONFIG_DIR (a
.env file in the working directory is honoured), else the repository
config/ directory.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from tradecore.errors import TradeCoreError
from tradecore.escrow.state_machine import EscrowStateMachine
from tradecore.models.escrow import OrderLifecycleEvent
from tradecore.models.fees import DealType, WaiverReason
from tradecore.models.trust import TrustProfile, VerificationTier
from tradecore.policy.resolver import PolicyResolver
from tradecore.service import ServiceResult, TradeDeskService


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
CONFIG_ENV_VAR = "TRADECORE_CONFIG_DIR"


def _default_config_dir() -> Path:
    load_dotenv()
    env_dir = os.environ.get(CONFIG_ENV_VAR)
    return Path(env_dir) if env_dir else DEFAULT_CONFIG


def _make_service(config_dir: Path) -> TradeDeskService:
    return TradeDeskService(PolicyResolver.from_config_dir(config_dir))


def _emit(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, ensure_ascii=False))
        return 0
    print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_fees(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    return _emit(service.quote_trade(args.amount, args.currency))


def cmd_fx(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    return _emit(service.preview_fx(args.amount, args.currency))


def cmd_commission(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    return _emit(service.quote_commission(
        args.value,
        deal_type=args.deal_type,
        currency=args.currency,
        waiver=args.waiver,
    ))


def cmd_escrow_state(args: argparse.Namespace) -> int:
    machine = EscrowStateMachine(PolicyResolver.from_config_dir(args.config))
    try:
        raw: Any = json.loads(Path(args.events).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Failed: cannot read events file: {e}", file=sys.stderr)
        return 1
    if not isinstance(raw, list):
        print("Failed: events file must contain a JSON list", file=sys.stderr)
        return 1

    try:
        events = [OrderLifecycleEvent.from_dict(item) for item in raw]
        derivation = machine.replay(events, args.milestone or ())
    except KeyError as e:
        print(f"Failed: event missing field: {e.args[0]}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1

    print(json.dumps({
        "status": derivation.status.value,
        "unlocked_percent": str(machine.unlocked_percent(derivation)),
        "history": [s.value for s in derivation.history],
        "verified_milestones": sorted(derivation.verified_milestones),
        "ignored_events": [
            {"event_type": a.event.event_type.value, "status": a.status.value,
             "reason": a.reason}
            for a in derivation.ignored
        ],
    }, indent=2))
    return 0


def cmd_trust(args: argparse.Namespace) -> int:
    service = _make_service(args.config)
    profile = TrustProfile(
        completed_orders=args.completed,
        cancelled_orders=args.cancelled,
        disputed_orders=args.disputed,
        avg_response_hours=args.response_hours,
        verification_tier=args.tier,
        account_age_days=args.age_days,
    )
    return _emit(service.assess_counterparty(args.company, profile, inactive=args.inactive))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tradecore",
        description="Tradecore — fees, escrow state and counterparty risk",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=f"Config directory (default: ${CONFIG_ENV_VAR} or {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )

    sub = parser.add_subparsers(dest="command")

    # fees
    p_fees = sub.add_parser("fees", help="Trade fee breakdown")
    p_fees.add_argument("--amount", required=True, help="Gross trade value (Decimal)")
    p_fees.add_argument("--currency", default="USD", help="Currency code (default: USD)")

    # fx
    p_fx = sub.add_parser("fx", help="Estimate a USD amount in a local currency")
    p_fx.add_argument("--amount", required=True, help="Amount in USD (Decimal)")
    p_fx.add_argument("--currency", required=True, help="Target currency code")

    # commission
    p_com = sub.add_parser("commission", help="Success-fee quote")
    p_com.add_argument("--value", required=True, help="Deal value (Decimal)")
    p_com.add_argument(
        "--type",
        dest="deal_type",
        default=DealType.STANDARD.value,
        choices=[t.value for t in DealType],
    )
    p_com.add_argument("--currency", default="USD", help="Currency code (default: USD)")
    p_com.add_argument("--waiver", choices=[w.value for w in WaiverReason])

    # escrow-state
    p_esc = sub.add_parser("escrow-state", help="Derive escrow state from an event log")
    p_esc.add_argument("--events", required=True, help="JSON file with a list of order events")
    p_esc.add_argument(
        "--milestone",
        action="append",
        help="Required milestone ID (repeatable)",
    )

    # trust
    p_trust = sub.add_parser("trust", help="Score a counterparty")
    p_trust.add_argument("--company", default="", help="Company ID (audit only)")
    p_trust.add_argument("--completed", type=int, default=0)
    p_trust.add_argument("--cancelled", type=int, default=0)
    p_trust.add_argument("--disputed", type=int, default=0)
    p_trust.add_argument("--response-hours", type=float, default=0.0)
    p_trust.add_argument(
        "--tier",
        default=VerificationTier.UNVERIFIED.value,
        choices=[t.value for t in VerificationTier],
    )
    p_trust.add_argument("--age-days", type=float, default=0.0)
    p_trust.add_argument("--inactive", action="store_true", help="No orders in 90 days")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    logging.basicConfig(level=getattr(logging, args.log_level))
    if args.config is None:
        args.config = _default_config_dir()

    commands = {
        "fees": cmd_fees,
        "fx": cmd_fx,
        "commission": cmd_commission,
        "escrow-state": cmd_escrow_state,
        "trust": cmd_trust,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        return handler(args)
    except TradeCoreError as e:
        # Policy files missing or malformed.
        print(f"Failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
