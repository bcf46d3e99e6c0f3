"""Escrow state machine — derives escrow state by replaying order events.

Transitions (any pair not listed is ignored, never rejected):

    NONE      --order_confirmed-->            LOCKED
    LOCKED    --payment_secured-->            FUNDED
    FUNDED    --milestone_verified (all)-->   VERIFIED
    FUNDED    --dispute_opened-->             DISPUTED
    VERIFIED  --dispute_opened-->             DISPUTED
    VERIFIED  --delivery_confirmed-->         RELEASED
    LOCKED    --refund_issued-->              REFUNDED
    FUNDED    --refund_issued-->              REFUNDED
    DISPUTED  --refund_issued-->              REFUNDED
    DISPUTED  --dispute_resolved(release)-->  RELEASED
    DISPUTED  --dispute_resolved(refund)-->   REFUNDED
    NONE      --cancelled-->                  CANCELLED (REFUNDED if funds held)
    LOCKED    --cancelled-->                  CANCELLED (REFUNDED if funds held)

Ignored events (duplicate or retried webhooks, informational logistics
events, partial milestones) are kept in an audit trail on the derivation.

Events must be chronological. A timestamp earlier than the latest one
seen by more than the configured clock-skew tolerance is an integrity
violation of the log and raises OutOfOrderEvents.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Union

from tradecore.errors import OutOfOrderEvents
from tradecore.models.escrow import (
    INFORMATIONAL_EVENTS,
    DisputeOutcome,
    EscrowDerivation,
    EscrowEventType,
    EscrowRecord,
    EscrowStatus,
    EscrowTransition,
    IgnoredEvent,
    OrderLifecycleEvent,
)
from tradecore.policy.resolver import PolicyResolver

logger = logging.getLogger(__name__)

S = EscrowStatus
E = EscrowEventType

# Unconditional transitions: {(from_status, event_type): to_status}
_TRANSITIONS: dict[tuple[EscrowStatus, EscrowEventType], EscrowStatus] = {
    (S.NONE, E.ORDER_CONFIRMED): S.LOCKED,
    (S.LOCKED, E.PAYMENT_SECURED): S.FUNDED,
    (S.FUNDED, E.DISPUTE_OPENED): S.DISPUTED,
    (S.VERIFIED, E.DISPUTE_OPENED): S.DISPUTED,
    (S.VERIFIED, E.DELIVERY_CONFIRMED): S.RELEASED,
    (S.LOCKED, E.REFUND_ISSUED): S.REFUNDED,
    (S.FUNDED, E.REFUND_ISSUED): S.REFUNDED,
    (S.DISPUTED, E.REFUND_ISSUED): S.REFUNDED,
}

_DISPUTE_OUTCOMES = {
    DisputeOutcome.RELEASE: S.RELEASED,
    DisputeOutcome.REFUND: S.REFUNDED,
}

_CANCELLABLE = frozenset({S.NONE, S.LOCKED})


class EscrowStateMachine:
    """Replays order event logs into canonical escrow states.

    Pure computation: no I/O and no shared state between calls.
    """

    def __init__(self, resolver: PolicyResolver) -> None:
        self._skew = timedelta(seconds=resolver.clock_skew_seconds())
        self._percentages = resolver.unlocked_percentages()

    def derive_escrow_state(
        self,
        events: Iterable[OrderLifecycleEvent],
        required_milestones: Iterable[str] = (),
    ) -> EscrowStatus:
        """Return the escrow status after applying every event in order."""
        return self.replay(events, required_milestones).status

    def replay(
        self,
        events: Iterable[OrderLifecycleEvent],
        required_milestones: Iterable[str] = (),
    ) -> EscrowDerivation:
        """Replay an event log, keeping transition history and the audit trail.

        Raises:
            OutOfOrderEvents: a timestamp regresses beyond the skew tolerance.
        """
        required = frozenset(required_milestones)
        status = S.NONE
        pre_dispute: Optional[EscrowStatus] = None
        verified: set[str] = set()
        transitions: list[EscrowTransition] = []
        ignored: list[IgnoredEvent] = []
        latest: Optional[datetime] = None

        for index, event in enumerate(events):
            if latest is not None and event.timestamp < latest - self._skew:
                raise OutOfOrderEvents(
                    f"Event {index} ({event.event_type.value} at "
                    f"{event.timestamp.isoformat()}) precedes {latest.isoformat()} "
                    f"by more than {self._skew.total_seconds():g}s"
                )
            if latest is None or event.timestamp > latest:
                latest = event.timestamp

            if event.event_type == E.MILESTONE_VERIFIED and status == S.FUNDED:
                if event.milestone_id is not None:
                    verified.add(event.milestone_id)
                missing = required - verified
                if missing:
                    target: Optional[EscrowStatus] = None
                    reason = f"awaiting milestones: {', '.join(sorted(missing))}"
                else:
                    target, reason = S.VERIFIED, ""
            else:
                target, reason = self.next_status(status, event)

            if target is None:
                ignored.append(IgnoredEvent(event, status, reason))
                logger.debug(
                    "Ignored escrow event %s in state %s: %s",
                    event.event_type.value, status.value, reason,
                )
                continue

            if target == S.DISPUTED:
                pre_dispute = status
            transitions.append(EscrowTransition(status, target, event))
            status = target

        return EscrowDerivation(
            status=status,
            transitions=tuple(transitions),
            ignored=tuple(ignored),
            verified_milestones=frozenset(verified),
            pre_dispute_status=pre_dispute,
        )

    @staticmethod
    def next_status(
        status: EscrowStatus,
        event: OrderLifecycleEvent,
    ) -> tuple[Optional[EscrowStatus], str]:
        """Target state for one event, or (None, reason) when it does not apply.

        Milestone events are treated as complete here; the milestone
        bookkeeping lives in replay().
        """
        kind = event.event_type
        if status.is_terminal:
            return None, f"escrow already {status.value}"
        if kind in INFORMATIONAL_EVENTS:
            return None, "informational event"

        if kind == E.MILESTONE_VERIFIED:
            if status == S.FUNDED:
                return S.VERIFIED, ""
            return None, f"milestone_verified not applicable in {status.value}"

        if kind == E.DISPUTE_RESOLVED:
            if status != S.DISPUTED:
                return None, f"no open dispute in {status.value}"
            if event.outcome is None:
                return None, "dispute_resolved without outcome"
            return _DISPUTE_OUTCOMES[event.outcome], ""

        if kind == E.CANCELLED:
            if status not in _CANCELLABLE:
                return None, f"cancellation not applicable in {status.value}"
            return (S.REFUNDED if event.funds_held else S.CANCELLED), ""

        target = _TRANSITIONS.get((status, kind))
        if target is None:
            return None, f"{kind.value} not applicable in {status.value}"
        return target, ""

    def unlocked_percent(
        self,
        record: Union[EscrowRecord, EscrowDerivation],
    ) -> Decimal:
        """Share of value shown as unlocked on progress bars (display only).

        A disputed escrow keeps the percentage it had before the dispute.
        """
        status = record.status
        if status == S.DISPUTED:
            status = record.pre_dispute_status or S.FUNDED
        return self._percentages.get(status.value, Decimal("0"))

    @staticmethod
    def valid_events(status: EscrowStatus) -> set[EscrowEventType]:
        """Event types that can move an escrow out of the given state."""
        if status.is_terminal:
            return set()
        events = {kind for (src, kind) in _TRANSITIONS if src == status}
        if status == S.FUNDED:
            events.add(E.MILESTONE_VERIFIED)
        if status == S.DISPUTED:
            events.add(E.DISPUTE_RESOLVED)
        if status in _CANCELLABLE:
            events.add(E.CANCELLED)
        return events
