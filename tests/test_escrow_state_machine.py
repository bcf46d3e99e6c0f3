"""Tests for the escrow state machine — proves replay derives canonical states."""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

from tradecore.errors import OutOfOrderEvents
from tradecore.escrow.state_machine import EscrowStateMachine
from tradecore.models.escrow import (
    DisputeOutcome,
    EscrowEventType,
    EscrowRecord,
    EscrowStatus,
    OrderLifecycleEvent,
)
from tradecore.policy.resolver import PolicyResolver


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"
T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


def _ev(kind: str, minutes: int = 0, **kwargs) -> OrderLifecycleEvent:
    return OrderLifecycleEvent(
        event_type=EscrowEventType(kind),
        timestamp=T0 + timedelta(minutes=minutes),
        **kwargs,
    )


def _log(*kinds: str) -> list[OrderLifecycleEvent]:
    return [_ev(kind, minutes=i) for i, kind in enumerate(kinds)]


@pytest.fixture
def machine() -> EscrowStateMachine:
    return EscrowStateMachine(PolicyResolver.from_config_dir(CONFIG_DIR))


class TestHappyPath:
    def test_empty_log_is_none(self, machine: EscrowStateMachine) -> None:
        assert machine.derive_escrow_state([]) == EscrowStatus.NONE

    def test_confirmed_is_locked(self, machine: EscrowStateMachine) -> None:
        assert machine.derive_escrow_state(_log("order_confirmed")) == EscrowStatus.LOCKED

    def test_funded(self, machine: EscrowStateMachine) -> None:
        events = _log("order_confirmed", "payment_secured")
        assert machine.derive_escrow_state(events) == EscrowStatus.FUNDED

    def test_verified_then_released(self, machine: EscrowStateMachine) -> None:
        events = _log("order_confirmed", "payment_secured", "milestone_verified")
        assert machine.derive_escrow_state(events) == EscrowStatus.VERIFIED
        events.append(_ev("delivery_confirmed", minutes=10))
        assert machine.derive_escrow_state(events) == EscrowStatus.RELEASED

    def test_history(self, machine: EscrowStateMachine) -> None:
        d = machine.replay(_log(
            "order_confirmed", "payment_secured", "milestone_verified", "delivery_confirmed",
        ))
        assert d.history == [
            EscrowStatus.NONE, EscrowStatus.LOCKED, EscrowStatus.FUNDED,
            EscrowStatus.VERIFIED, EscrowStatus.RELEASED,
        ]


class TestIgnoredEvents:
    def test_duplicate_payment_ignored(self, machine: EscrowStateMachine) -> None:
        events = _log("order_confirmed", "payment_secured", "payment_secured")
        d = machine.replay(events)
        assert d.status == EscrowStatus.FUNDED
        assert len(d.ignored) == 1
        assert d.ignored[0].event.event_type == EscrowEventType.PAYMENT_SECURED

    def test_informational_events_ignored(self, machine: EscrowStateMachine) -> None:
        d = machine.replay(_log("order_confirmed", "payment_secured", "shipped", "delivered"))
        assert d.status == EscrowStatus.FUNDED
        assert [a.reason for a in d.ignored] == ["informational event"] * 2

    def test_events_after_terminal_ignored(self, machine: EscrowStateMachine) -> None:
        d = machine.replay(_log(
            "order_confirmed", "payment_secured", "refund_issued", "payment_secured",
        ))
        assert d.status == EscrowStatus.REFUNDED
        assert d.ignored[0].reason == "escrow already refunded"

    def test_release_before_verification_ignored(self, machine: EscrowStateMachine) -> None:
        d = machine.replay(_log("order_confirmed", "payment_secured", "delivery_confirmed"))
        assert d.status == EscrowStatus.FUNDED

    def test_resolution_without_outcome_ignored(self, machine: EscrowStateMachine) -> None:
        events = _log("order_confirmed", "payment_secured", "dispute_opened", "dispute_resolved")
        assert machine.derive_escrow_state(events) == EscrowStatus.DISPUTED


class TestMilestones:
    def test_partial_milestones_stay_funded(self, machine: EscrowStateMachine) -> None:
        events = _log("order_confirmed", "payment_secured")
        events.append(_ev("milestone_verified", 5, milestone_id="inspection"))
        d = machine.replay(events, required_milestones=("inspection", "packing"))
        assert d.status == EscrowStatus.FUNDED
        assert d.verified_milestones == frozenset({"inspection"})
        assert d.ignored[-1].reason == "awaiting milestones: packing"

    def test_all_milestones_verify(self, machine: EscrowStateMachine) -> None:
        events = _log("order_confirmed", "payment_secured")
        events.append(_ev("milestone_verified", 5, milestone_id="packing"))
        events.append(_ev("milestone_verified", 6, milestone_id="inspection"))
        status = machine.derive_escrow_state(events, ("inspection", "packing"))
        assert status == EscrowStatus.VERIFIED

    def test_milestone_before_funding_not_counted(self, machine: EscrowStateMachine) -> None:
        events = [
            _ev("order_confirmed", 0),
            _ev("milestone_verified", 1, milestone_id="inspection"),
            _ev("payment_secured", 2),
        ]
        d = machine.replay(events, ("inspection",))
        assert d.status == EscrowStatus.FUNDED
        assert d.verified_milestones == frozenset()


class TestDisputes:
    def test_dispute_refund(self, machine: EscrowStateMachine) -> None:
        events = _log("order_confirmed", "payment_secured", "dispute_opened")
        events.append(_ev("dispute_resolved", 10, outcome=DisputeOutcome.REFUND))
        assert machine.derive_escrow_state(events) == EscrowStatus.REFUNDED

    def test_dispute_release(self, machine: EscrowStateMachine) -> None:
        events = _log("order_confirmed", "payment_secured", "milestone_verified", "dispute_opened")
        events.append(_ev("dispute_resolved", 10, outcome="release"))
        assert machine.derive_escrow_state(events) == EscrowStatus.RELEASED

    def test_pre_dispute_status_kept(self, machine: EscrowStateMachine) -> None:
        d = machine.replay(_log(
            "order_confirmed", "payment_secured", "milestone_verified", "dispute_opened",
        ))
        assert d.status == EscrowStatus.DISPUTED
        assert d.pre_dispute_status == EscrowStatus.VERIFIED

    def test_refund_during_dispute(self, machine: EscrowStateMachine) -> None:
        events = _log("order_confirmed", "payment_secured", "dispute_opened", "refund_issued")
        assert machine.derive_escrow_state(events) == EscrowStatus.REFUNDED


class TestCancellation:
    def test_cancel_before_payment(self, machine: EscrowStateMachine) -> None:
        assert machine.derive_escrow_state(
            _log("order_confirmed", "cancelled"),
        ) == EscrowStatus.CANCELLED

    def test_cancel_with_funds_held_refunds(self, machine: EscrowStateMachine) -> None:
        events = [_ev("order_confirmed", 0), _ev("cancelled", 1, funds_held=True)]
        assert machine.derive_escrow_state(events) == EscrowStatus.REFUNDED

    def test_cancel_after_funding_ignored(self, machine: EscrowStateMachine) -> None:
        events = _log("order_confirmed", "payment_secured", "cancelled")
        assert machine.derive_escrow_state(events) == EscrowStatus.FUNDED


class TestOrdering:
    def test_regression_beyond_skew_raises(self, machine: EscrowStateMachine) -> None:
        events = [_ev("order_confirmed", 10), _ev("payment_secured", 0)]
        with pytest.raises(OutOfOrderEvents):
            machine.replay(events)

    def test_small_skew_tolerated(self, machine: EscrowStateMachine) -> None:
        events = [
            OrderLifecycleEvent("order_confirmed", T0 + timedelta(seconds=3)),
            OrderLifecycleEvent("payment_secured", T0),
        ]
        assert machine.derive_escrow_state(events) == EscrowStatus.FUNDED

    def test_iso_string_timestamps(self, machine: EscrowStateMachine) -> None:
        events = [
            OrderLifecycleEvent.from_dict({"event_type": "order_confirmed", "timestamp": "2026-03-02T09:00:00Z"}),
            OrderLifecycleEvent.from_dict({"event_type": "payment_secured", "timestamp": "2026-03-02T09:05:00+00:00"}),
        ]
        assert machine.derive_escrow_state(events) == EscrowStatus.FUNDED

    def test_funds_held_string_false_cancels(self, machine: EscrowStateMachine) -> None:
        events = [
            OrderLifecycleEvent.from_dict({"event_type": "order_confirmed", "timestamp": "2026-03-02T09:00:00Z"}),
            OrderLifecycleEvent.from_dict({
                "event_type": "cancelled",
                "timestamp": "2026-03-02T09:05:00Z",
                "funds_held": "false",
            }),
        ]
        assert events[1].funds_held is False
        assert machine.derive_escrow_state(events) == EscrowStatus.CANCELLED

    def test_funds_held_string_true(self) -> None:
        event = OrderLifecycleEvent.from_dict({
            "event_type": "cancelled",
            "timestamp": "2026-03-02T09:05:00Z",
            "funds_held": "True",
        })
        assert event.funds_held is True

    def test_funds_held_garbage_rejected(self) -> None:
        with pytest.raises(ValueError, match="funds_held"):
            OrderLifecycleEvent.from_dict({
                "event_type": "cancelled",
                "timestamp": "2026-03-02T09:05:00Z",
                "funds_held": "no",
            })

    def test_replay_is_deterministic(self, machine: EscrowStateMachine) -> None:
        events = _log("order_confirmed", "payment_secured", "shipped", "milestone_verified")
        assert machine.replay(events) == machine.replay(list(events))


class TestUnlockedPercent:
    @pytest.mark.parametrize("status,expected", [
        (EscrowStatus.NONE, "0"),
        (EscrowStatus.LOCKED, "0"),
        (EscrowStatus.FUNDED, "50"),
        (EscrowStatus.VERIFIED, "75"),
        (EscrowStatus.RELEASED, "100"),
        (EscrowStatus.REFUNDED, "0"),
    ])
    def test_percent_by_status(
        self, machine: EscrowStateMachine, status: EscrowStatus, expected: str,
    ) -> None:
        record = EscrowRecord(trade_id="t", gross_amount=Decimal("10"), status=status)
        assert machine.unlocked_percent(record) == Decimal(expected)

    def test_disputed_keeps_previous_percent(self, machine: EscrowStateMachine) -> None:
        d = machine.replay(_log(
            "order_confirmed", "payment_secured", "milestone_verified", "dispute_opened",
        ))
        assert machine.unlocked_percent(d) == Decimal("75")


class TestValidEvents:
    def test_funded(self) -> None:
        assert EscrowStateMachine.valid_events(EscrowStatus.FUNDED) == {
            EscrowEventType.MILESTONE_VERIFIED,
            EscrowEventType.DISPUTE_OPENED,
            EscrowEventType.REFUND_ISSUED,
        }

    def test_terminal_has_none(self) -> None:
        assert EscrowStateMachine.valid_events(EscrowStatus.RELEASED) == set()
