"""Trade desk service — unified facade over the trade core.

This is the interface order, payment and admin pages use. It wires the
subsystems together:
- Fee quotes (trade fee breakdown, FX previews, success fees)
- Counterparty trust and risk assessment
- Escrow lifecycle (open, record order events, status)
- Audit trail (every quote and event is appended to the audit log)

All operations return a ServiceResult. Validation failures are reported
as failed results with the error message; they are never replaced by a
default value.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from tradecore.escrow.ledger import EscrowLedger
from tradecore.escrow.state_machine import EscrowStateMachine
from tradecore.fees.commission import CommissionCalculator
from tradecore.fees.engine import FeeEngine
from tradecore.fees.rates import RateSource
from tradecore.models.escrow import EscrowRecord, EscrowStatus, OrderLifecycleEvent
from tradecore.models.trust import TrustProfile
from tradecore.persistence.audit_log import AuditKind, AuditLog
from tradecore.policy.resolver import PolicyResolver
from tradecore.trust.engine import TrustRiskEngine

logger = logging.getLogger(__name__)

StatusListener = Callable[[str, EscrowStatus, EscrowStatus], None]


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class TradeDeskService:
    """Facade for fee quotes, risk checks and escrow tracking.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = TradeDeskService(resolver)
        result = service.quote_trade("1000.00")
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        rate_source: Optional[RateSource] = None,
        audit_log: Optional[AuditLog] = None,
    ) -> None:
        self._fees = FeeEngine(resolver, rate_source)
        self._commission = CommissionCalculator(resolver)
        self._trust = TrustRiskEngine(resolver)
        self._escrow_machine = EscrowStateMachine(resolver)
        self._ledger = EscrowLedger(self._escrow_machine, resolver.currency_registry())
        self._audit = audit_log if audit_log is not None else AuditLog()
        self._listeners: list[StatusListener] = []

    @property
    def audit_log(self) -> AuditLog:
        return self._audit

    @property
    def ledger(self) -> EscrowLedger:
        return self._ledger

    def on_status_change(self, listener: StatusListener) -> None:
        """Register a callback fired as listener(trade_id, old, new)."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Fees
    # ------------------------------------------------------------------

    def quote_trade(
        self,
        gross_amount: Any,
        currency: str = "USD",
        trade_id: str = "",
    ) -> ServiceResult:
        """Fee breakdown for the payment page."""
        try:
            breakdown = self._fees.calculate_trade_fees(gross_amount, currency)
        except ValueError as e:
            return self._failed("quote_trade", e)
        data = breakdown.to_dict()
        data["display"] = {
            key: self._fees.format_amount(getattr(breakdown, key), breakdown.currency)
            for key in ("gross_amount", "escrow_fee", "service_fee", "fx_spread", "total", "net")
        }
        self._audit.record(AuditKind.FEES_COMPUTED, trade_id, breakdown.to_dict())
        return ServiceResult(success=True, data=data)

    def preview_fx(self, amount_usd: Any, target_currency: str) -> ServiceResult:
        """Local-currency estimate for a USD amount, spread included."""
        try:
            quote = self._fees.estimate_fx(amount_usd, target_currency)
        except ValueError as e:
            return self._failed("preview_fx", e)
        data = quote.to_dict()
        data["display"] = self._fees.format_amount(quote.local_amount, quote.target_currency)
        self._audit.record(AuditKind.FX_ESTIMATED, quote.target_currency, quote.to_dict())
        return ServiceResult(success=True, data=data)

    def quote_commission(
        self,
        deal_value: Any,
        deal_type: str = "standard",
        currency: str = "USD",
        waiver: Optional[str] = None,
        trade_id: str = "",
    ) -> ServiceResult:
        """Success-fee quote plus the buyer-facing disclosure lines."""
        try:
            quote = self._commission.compute_commission(deal_value, deal_type, currency, waiver)
        except ValueError as e:
            return self._failed("quote_commission", e)
        data = quote.to_dict()
        data["disclosure"] = self._commission.disclosure(quote)
        self._audit.record(AuditKind.COMMISSION_COMPUTED, trade_id, quote.to_dict())
        return ServiceResult(success=True, data=data)

    # ------------------------------------------------------------------
    # Trust
    # ------------------------------------------------------------------

    def assess_counterparty(
        self,
        company_id: str,
        profile: TrustProfile | dict[str, Any],
        inactive: bool = False,
    ) -> ServiceResult:
        """Trust score, risk level and flags for a counterparty."""
        try:
            if isinstance(profile, dict):
                profile = TrustProfile.from_dict(profile)
            assessment = self._trust.score_trust(profile, inactive=inactive)
        except ValueError as e:
            return self._failed("assess_counterparty", e)
        data = assessment.to_dict()
        self._audit.record(AuditKind.RISK_ASSESSED, company_id, data)
        return ServiceResult(success=True, data=data)

    # ------------------------------------------------------------------
    # Escrow
    # ------------------------------------------------------------------

    def open_escrow(
        self,
        trade_id: str,
        gross_amount: Any,
        currency: str = "USD",
        required_milestones: tuple[str, ...] = (),
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Create the escrow record for a trade."""
        try:
            record = self._ledger.open_escrow(
                trade_id, gross_amount, currency, required_milestones, now=now,
            )
        except ValueError as e:
            return self._failed("open_escrow", e)
        self._audit.record(
            AuditKind.ESCROW_OPENED, trade_id,
            {**record.to_dict(), "required_milestones": sorted(required_milestones)},
            timestamp_utc=now,
        )
        return ServiceResult(success=True, data=self._escrow_data(record))

    def record_order_event(
        self,
        trade_id: str,
        event: OrderLifecycleEvent | dict[str, Any],
    ) -> ServiceResult:
        """Append an order event and report the resulting escrow status.

        Events that do not apply are kept and audited; the result is still
        successful with ``applied`` set to False.
        """
        try:
            if isinstance(event, dict):
                event = OrderLifecycleEvent.from_dict(event)
            before = self._ledger.get(trade_id)
            after = self._ledger.apply_event(trade_id, event)
        except (KeyError, ValueError) as e:
            return self._failed("record_order_event", e)

        self._audit.record(
            AuditKind.ORDER_EVENT, trade_id, event.to_dict(), timestamp_utc=event.timestamp,
        )
        applied = after.status != before.status
        if applied:
            self._audit.record(
                AuditKind.ESCROW_STATUS_CHANGED, trade_id,
                {"from": before.status.value, "to": after.status.value},
                timestamp_utc=event.timestamp,
            )
            logger.info(
                "Escrow %s: %s -> %s on %s",
                trade_id, before.status.value, after.status.value, event.event_type.value,
            )
            self._notify(trade_id, before.status, after.status)
        else:
            reason = self._ledger.derivation(trade_id).ignored[-1].reason
            self._audit.record(
                AuditKind.ESCROW_EVENT_IGNORED, trade_id,
                {"event_type": event.event_type.value, "reason": reason},
                timestamp_utc=event.timestamp,
            )

        data = self._escrow_data(after)
        data["applied"] = applied
        return ServiceResult(success=True, data=data)

    def release_milestone(
        self,
        trade_id: str,
        amount: Any,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Pay part of the held funds to the seller."""
        try:
            record = self._ledger.release_milestone(trade_id, amount, now=now)
        except ValueError as e:
            return self._failed("release_milestone", e)
        self._audit.record(
            AuditKind.MILESTONE_RELEASED, trade_id,
            {"amount": str(amount), "held_amount": str(record.held_amount)},
            timestamp_utc=now,
        )
        return ServiceResult(success=True, data=self._escrow_data(record))

    def escrow_status(self, trade_id: str) -> ServiceResult:
        """Current record, progress percentage and transition history."""
        try:
            record = self._ledger.get(trade_id)
            derivation = self._ledger.derivation(trade_id)
        except ValueError as e:
            return self._failed("escrow_status", e)
        data = self._escrow_data(record)
        data["history"] = [s.value for s in derivation.history]
        data["verified_milestones"] = sorted(derivation.verified_milestones)
        data["ignored_events"] = [
            {"event_type": a.event.event_type.value, "status": a.status.value, "reason": a.reason}
            for a in derivation.ignored
        ]
        return ServiceResult(success=True, data=data)

    # ------------------------------------------------------------------

    def _escrow_data(self, record: EscrowRecord) -> dict[str, Any]:
        data = record.to_dict()
        data["unlocked_percent"] = str(self._escrow_machine.unlocked_percent(record))
        data["valid_events"] = sorted(
            e.value for e in self._escrow_machine.valid_events(record.status)
        )
        return data

    def _notify(self, trade_id: str, old: EscrowStatus, new: EscrowStatus) -> None:
        for listener in self._listeners:
            listener(trade_id, old, new)

    @staticmethod
    def _failed(operation: str, error: Exception) -> ServiceResult:
        message = str(error)
        if isinstance(error, KeyError):
            message = f"missing field: {error.args[0]}"
        logger.warning("%s failed: %s", operation, message)
        return ServiceResult(success=False, errors=[message])
