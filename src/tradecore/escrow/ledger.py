"""Escrow ledger — tracks the money held for each trade.

The ledger is event-sourced from the escrow state machine. Each trade
keeps its own append-only event list; on every new event the list is
replayed and the money is reconciled to the derived status:

    entering FUNDED    → the unallocated remainder becomes held
    entering RELEASED  → everything held moves to released
    entering REFUNDED  → everything held moves to refunded

Milestone payouts move part of the held funds to released while the
escrow is FUNDED or VERIFIED.

Records are immutable snapshots; every mutation produces a new record and
re-checks the invariants. Records that reach a terminal status are
archived, never deleted.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from tradecore.errors import EscrowLedgerError
from tradecore.escrow.state_machine import EscrowStateMachine
from tradecore.models.escrow import (
    EscrowDerivation,
    EscrowEventType,
    EscrowRecord,
    EscrowStatus,
    OrderLifecycleEvent,
)
from tradecore.models.money import CurrencyRegistry, TradeValue, to_amount

_RELEASABLE = frozenset({EscrowStatus.FUNDED, EscrowStatus.VERIFIED})


class EscrowLedger:
    """Manages escrow records and their disbursements.

    Usage:
        ledger = EscrowLedger(state_machine, currencies)
        ledger.open_escrow("trade_1", Decimal("1000.00"))
        record = ledger.apply_event("trade_1", event)
    """

    def __init__(
        self,
        state_machine: EscrowStateMachine,
        currencies: CurrencyRegistry,
    ) -> None:
        self._machine = state_machine
        self._currencies = currencies
        self._records: Dict[str, EscrowRecord] = {}
        self._events: Dict[str, List[OrderLifecycleEvent]] = {}
        self._required: Dict[str, frozenset] = {}
        self._archived: Dict[str, EscrowRecord] = {}

    def open_escrow(
        self,
        trade_id: str,
        gross_amount: Any,
        currency: str = "USD",
        required_milestones: tuple[str, ...] = (),
        now: Optional[datetime] = None,
    ) -> EscrowRecord:
        """Create an escrow record for a trade entering payment.

        gross_amount may be a TradeValue, whose currency then replaces
        the currency argument.

        Raises:
            InvalidAmount: gross_amount is not a valid amount.
            UnsupportedCurrency: currency is unknown.
            EscrowLedgerError: the trade already has an escrow.
        """
        if isinstance(gross_amount, TradeValue):
            gross_amount, currency = gross_amount.amount, gross_amount.currency
        gross = to_amount(gross_amount, "gross_amount")
        cur = self._currencies.get(currency)
        if trade_id in self._records or trade_id in self._archived:
            raise EscrowLedgerError(f"Escrow already exists for trade: {trade_id}")
        if now is None:
            now = datetime.now(timezone.utc)

        record = EscrowRecord(
            trade_id=trade_id,
            gross_amount=gross,
            currency=cur.code,
            created_utc=now,
            updated_utc=now,
        )
        self._records[trade_id] = record
        self._events[trade_id] = []
        self._required[trade_id] = frozenset(required_milestones)
        return record

    def apply_event(
        self,
        trade_id: str,
        event: OrderLifecycleEvent,
    ) -> EscrowRecord:
        """Append an order event and reconcile the record to the new status.

        Events that do not apply (including late events on archived
        escrows) are kept in the log and show up in the derivation's audit
        trail; the record is unchanged.

        Raises:
            OutOfOrderEvents: the event regresses in time beyond tolerance.
        """
        record = self.get(trade_id)
        candidate = self._events[trade_id] + [event]
        derivation = self._machine.replay(candidate, self._required[trade_id])
        # Only commit the event once the log has replayed cleanly.
        self._events[trade_id] = candidate

        if derivation.status == record.status:
            return record
        return self._commit(record, self._reconcile(record, derivation, event))

    def release_milestone(
        self,
        trade_id: str,
        amount: Any,
        now: Optional[datetime] = None,
    ) -> EscrowRecord:
        """Release part of the held funds to the seller (milestone payout).

        Raises:
            EscrowLedgerError: escrow not funded/verified, or amount exceeds held.
        """
        record = self._get_active(trade_id)
        value = to_amount(amount, "amount")
        if record.status not in _RELEASABLE:
            raise EscrowLedgerError(
                f"{trade_id}: milestone release not allowed in {record.status.value}"
            )
        if value > record.held_amount:
            raise EscrowLedgerError(
                f"{trade_id}: release of {value} exceeds held amount {record.held_amount}"
            )
        updated = dataclasses.replace(
            record,
            held_amount=record.held_amount - value,
            released_amount=record.released_amount + value,
            updated_utc=now or datetime.now(timezone.utc),
        )
        return self._commit(record, updated)

    def derivation(self, trade_id: str) -> EscrowDerivation:
        """Replay the trade's full log (history and audit trail)."""
        if trade_id not in self._events:
            raise EscrowLedgerError(f"Unknown trade ID: {trade_id}")
        return self._machine.replay(self._events[trade_id], self._required[trade_id])

    def events(self, trade_id: str) -> list[OrderLifecycleEvent]:
        if trade_id not in self._events:
            raise EscrowLedgerError(f"Unknown trade ID: {trade_id}")
        return list(self._events[trade_id])

    def get(self, trade_id: str) -> EscrowRecord:
        """Current record for a trade, active or archived."""
        record = self._records.get(trade_id) or self._archived.get(trade_id)
        if record is None:
            raise EscrowLedgerError(f"Unknown trade ID: {trade_id}")
        return record

    def active_records(self) -> list[EscrowRecord]:
        return list(self._records.values())

    def archived_records(self) -> list[EscrowRecord]:
        return list(self._archived.values())

    def total_held(self) -> Decimal:
        return sum((r.held_amount for r in self._records.values()), Decimal("0"))

    # ------------------------------------------------------------------

    @staticmethod
    def _reconcile(
        record: EscrowRecord,
        derivation: EscrowDerivation,
        event: OrderLifecycleEvent,
    ) -> EscrowRecord:
        held = record.held_amount
        released = record.released_amount
        refunded = record.refunded_amount
        status = derivation.status

        if status == EscrowStatus.FUNDED:
            held += record.unallocated_amount
        elif status == EscrowStatus.RELEASED:
            released += held
            held = Decimal("0")
        elif status == EscrowStatus.REFUNDED:
            refunded += held
            held = Decimal("0")
            # Payment captured before the escrow was marked funded.
            if event.event_type == EscrowEventType.CANCELLED and event.funds_held:
                refunded += record.unallocated_amount

        return dataclasses.replace(
            record,
            held_amount=held,
            released_amount=released,
            refunded_amount=refunded,
            status=status,
            pre_dispute_status=derivation.pre_dispute_status,
            updated_utc=event.timestamp,
        )

    def _commit(self, previous: EscrowRecord, updated: EscrowRecord) -> EscrowRecord:
        updated.check_invariants(previous)
        if updated.status.is_terminal:
            del self._records[updated.trade_id]
            self._archived[updated.trade_id] = updated
        else:
            self._records[updated.trade_id] = updated
        return updated

    def _get_active(self, trade_id: str) -> EscrowRecord:
        record = self._records.get(trade_id)
        if record is None:
            if trade_id in self._archived:
                raise EscrowLedgerError(f"Escrow for trade {trade_id} is archived")
            raise EscrowLedgerError(f"Unknown trade ID: {trade_id}")
        return record
