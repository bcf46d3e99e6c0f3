"""Escrow models — order lifecycle events, escrow states and records.

Escrow state is event-sourced: an append-only log of OrderLifecycleEvent
tuples is the source of truth, and EscrowStatus is derived by replaying it.

State machine:
    NONE → LOCKED → FUNDED → VERIFIED → RELEASED
    FUNDED | VERIFIED → DISPUTED
    LOCKED | FUNDED | DISPUTED → REFUNDED
    DISPUTED → RELEASED | REFUNDED
    NONE | LOCKED → CANCELLED (or REFUNDED when funds were held)

Record invariants:
- held_amount + released_amount + refunded_amount <= gross_amount
- released_amount never decreases
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from tradecore.errors import EscrowLedgerError, OutOfOrderEvents


class EscrowStatus(str, enum.Enum):
    """Canonical escrow disbursement state of one trade."""
    NONE = "none"
    LOCKED = "locked"
    FUNDED = "funded"
    VERIFIED = "verified"
    DISPUTED = "disputed"
    RELEASED = "released"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({
    EscrowStatus.RELEASED,
    EscrowStatus.REFUNDED,
    EscrowStatus.CANCELLED,
})


class EscrowEventType(str, enum.Enum):
    """Order lifecycle events that feed escrow derivation."""
    ORDER_CONFIRMED = "order_confirmed"
    PAYMENT_SECURED = "payment_secured"
    MILESTONE_VERIFIED = "milestone_verified"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    DELIVERY_CONFIRMED = "delivery_confirmed"
    DISPUTE_OPENED = "dispute_opened"
    DISPUTE_RESOLVED = "dispute_resolved"
    REFUND_ISSUED = "refund_issued"
    CANCELLED = "cancelled"


# Logistics milestones that never move money on their own.
INFORMATIONAL_EVENTS = frozenset({
    EscrowEventType.SHIPPED,
    EscrowEventType.DELIVERED,
})


class DisputeOutcome(str, enum.Enum):
    RELEASE = "release"
    REFUND = "refund"


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str):
        try:
            ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise OutOfOrderEvents(f"Unparseable event timestamp: {value!r}") from None
    else:
        raise OutOfOrderEvents(f"Event timestamp must be a datetime, got {value!r}")
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _parse_flag(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"{name} must be a boolean, got {value!r}")


@dataclass(frozen=True)
class OrderLifecycleEvent:
    """One immutable entry in an order's event log.

    outcome only applies to DISPUTE_RESOLVED; milestone_id to
    MILESTONE_VERIFIED; funds_held to CANCELLED. Naive timestamps are
    taken as UTC.
    """
    event_type: EscrowEventType
    timestamp: datetime
    actor: str = "system"
    outcome: Optional[DisputeOutcome] = None
    milestone_id: Optional[str] = None
    funds_held: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "event_type", EscrowEventType(self.event_type))
        object.__setattr__(self, "timestamp", _parse_timestamp(self.timestamp))
        if self.outcome is not None:
            object.__setattr__(self, "outcome", DisputeOutcome(self.outcome))

    @staticmethod
    def from_dict(data: dict[str, Any]) -> OrderLifecycleEvent:
        """Build an event from a webhook- or row-shaped mapping."""
        return OrderLifecycleEvent(
            event_type=EscrowEventType(data["event_type"]),
            timestamp=_parse_timestamp(data["timestamp"]),
            actor=data.get("actor", "system"),
            outcome=data.get("outcome"),
            milestone_id=data.get("milestone_id"),
            funds_held=_parse_flag(data.get("funds_held", False), "funds_held"),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "actor": self.actor,
        }
        if self.outcome is not None:
            data["outcome"] = self.outcome.value
        if self.milestone_id is not None:
            data["milestone_id"] = self.milestone_id
        if self.funds_held:
            data["funds_held"] = True
        return data


@dataclass(frozen=True)
class EscrowTransition:
    """A state change caused by one event during replay."""
    from_status: EscrowStatus
    to_status: EscrowStatus
    event: OrderLifecycleEvent


@dataclass(frozen=True)
class IgnoredEvent:
    """An event that was ignored during replay, and why."""
    event: OrderLifecycleEvent
    status: EscrowStatus
    reason: str


@dataclass(frozen=True)
class EscrowDerivation:
    """Everything learned by replaying one order's event log."""
    status: EscrowStatus
    transitions: tuple[EscrowTransition, ...] = ()
    ignored: tuple[IgnoredEvent, ...] = ()
    verified_milestones: frozenset[str] = frozenset()
    pre_dispute_status: Optional[EscrowStatus] = None

    @property
    def history(self) -> list[EscrowStatus]:
        """States visited in order, starting from NONE."""
        states = [EscrowStatus.NONE]
        states.extend(t.to_status for t in self.transitions)
        return states


@dataclass(frozen=True)
class EscrowRecord:
    """The money held for one trade.

    Immutable snapshot: the ledger produces a new record for every
    disbursement or refund instead of mutating this one.
    """
    trade_id: str
    gross_amount: Decimal
    currency: str = "USD"
    held_amount: Decimal = Decimal("0")
    released_amount: Decimal = Decimal("0")
    refunded_amount: Decimal = Decimal("0")
    status: EscrowStatus = EscrowStatus.NONE
    pre_dispute_status: Optional[EscrowStatus] = None
    created_utc: Optional[datetime] = None
    updated_utc: Optional[datetime] = None

    @property
    def unallocated_amount(self) -> Decimal:
        """Gross value not yet held, released or refunded."""
        return (
            self.gross_amount
            - self.held_amount
            - self.released_amount
            - self.refunded_amount
        )

    def check_invariants(self, previous: Optional[EscrowRecord] = None) -> None:
        """Raise EscrowLedgerError if this snapshot breaks a record invariant."""
        for name in ("held_amount", "released_amount", "refunded_amount"):
            if getattr(self, name) < Decimal("0"):
                raise EscrowLedgerError(f"{self.trade_id}: {name} is negative")
        if self.unallocated_amount < Decimal("0"):
            raise EscrowLedgerError(
                f"{self.trade_id}: held ({self.held_amount}) + released "
                f"({self.released_amount}) + refunded ({self.refunded_amount}) "
                f"exceeds gross ({self.gross_amount})"
            )
        if previous is not None and self.released_amount < previous.released_amount:
            raise EscrowLedgerError(
                f"{self.trade_id}: released amount cannot decrease "
                f"({previous.released_amount} → {self.released_amount})"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "gross_amount": str(self.gross_amount),
            "currency": self.currency,
            "held_amount": str(self.held_amount),
            "released_amount": str(self.released_amount),
            "refunded_amount": str(self.refunded_amount),
            "status": self.status.value,
        }
