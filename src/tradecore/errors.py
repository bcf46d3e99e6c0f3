"""Error taxonomy for the trade core.

Every error is a local validation failure raised synchronously to the
caller. There is no I/O inside the engines, so nothing is retried here.
Callers treat any of these as a hard stop on the current request.
"""

from __future__ import annotations


class TradeCoreError(ValueError):
    """Base class for all trade core validation failures."""


class InvalidAmount(TradeCoreError):
    """A monetary input is negative, non-finite or not a number."""


class UnsupportedCurrency(TradeCoreError):
    """A currency code is unknown or has no reference rate."""


class OutOfOrderEvents(TradeCoreError):
    """An order event log regresses in time beyond the clock-skew tolerance."""


class InvalidProfile(TradeCoreError):
    """A trust profile has negative counts or a malformed verification tier."""


class EscrowLedgerError(TradeCoreError):
    """An escrow ledger operation would break a record invariant."""


class PolicyError(TradeCoreError):
    """A policy file is missing or malformed."""
