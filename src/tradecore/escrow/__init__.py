"""Escrow subsystem — event-sourced escrow state and the escrow ledger."""

from tradecore.escrow.ledger import EscrowLedger
from tradecore.escrow.state_machine import EscrowStateMachine

__all__ = ["EscrowLedger", "EscrowStateMachine"]
