"""Append-only audit log — the record of every computation shown to a user.

Every order event, fee quote, FX estimate and risk assessment produced by
the service layer is appended here. Entries are immutable once written and
carry a SHA-256 hash of their canonical JSON so an exported trail can be
checked for tampering.

Storage of the trail belongs to the caller's relational store; this log is
in-memory and exposes the entries for export.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional


class AuditKind(str, enum.Enum):
    """Classification of audit entries."""
    ORDER_EVENT = "order_event"
    ESCROW_OPENED = "escrow_opened"
    ESCROW_STATUS_CHANGED = "escrow_status_changed"
    ESCROW_EVENT_IGNORED = "escrow_event_ignored"
    MILESTONE_RELEASED = "milestone_released"
    FEES_COMPUTED = "fees_computed"
    FX_ESTIMATED = "fx_estimated"
    COMMISSION_COMPUTED = "commission_computed"
    RISK_ASSESSED = "risk_assessed"


def _canonical_hash(
    entry_id: str,
    kind: str,
    timestamp_utc: str,
    subject_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "entry_id": entry_id,
            "kind": kind,
            "timestamp_utc": timestamp_utc,
            "subject_id": subject_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class AuditEntry:
    """A single immutable entry in the audit trail."""
    entry_id: str
    kind: AuditKind
    timestamp_utc: str
    subject_id: str
    payload: dict[str, Any]
    entry_hash: str

    @staticmethod
    def create(
        entry_id: str,
        kind: AuditKind,
        subject_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> AuditEntry:
        """Create a new entry with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        if ts.tzinfo is not None:
            ts = ts.astimezone(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        return AuditEntry(
            entry_id=entry_id,
            kind=kind,
            timestamp_utc=ts_str,
            subject_id=subject_id,
            payload=payload,
            entry_hash=_canonical_hash(entry_id, kind.value, ts_str, subject_id, payload),
        )

    def verify(self) -> bool:
        """True when the stored hash matches the entry's content."""
        expected = _canonical_hash(
            self.entry_id, self.kind.value, self.timestamp_utc,
            self.subject_id, self.payload,
        )
        return expected == self.entry_hash

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "kind": self.kind.value,
            "timestamp_utc": self.timestamp_utc,
            "subject_id": self.subject_id,
            "payload": self.payload,
            "entry_hash": self.entry_hash,
        }


class AuditLog:
    """Append-only, in-memory audit trail.

    Entries can only be appended, never modified or deleted.
    """

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._entry_ids: set[str] = set()
        self._next_seq = 1

    def append(self, entry: AuditEntry) -> None:
        """Append an entry.

        Raises ValueError if entry_id is a duplicate (replay protection).
        """
        if entry.entry_id in self._entry_ids:
            raise ValueError(f"Duplicate audit entry ID: {entry.entry_id}")
        self._entries.append(entry)
        self._entry_ids.add(entry.entry_id)

    def record(
        self,
        kind: AuditKind,
        subject_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> AuditEntry:
        """Create and append an entry with the next unused sequential ID."""
        while f"audit_{self._next_seq:08d}" in self._entry_ids:
            self._next_seq += 1
        entry = AuditEntry.create(
            entry_id=f"audit_{self._next_seq:08d}",
            kind=kind,
            subject_id=subject_id,
            payload=payload,
            timestamp_utc=timestamp_utc,
        )
        self.append(entry)
        self._next_seq += 1
        return entry

    def entries(
        self,
        kind: Optional[AuditKind] = None,
        subject_id: Optional[str] = None,
    ) -> list[AuditEntry]:
        """Return entries, optionally filtered by kind and subject."""
        result = list(self._entries)
        if kind is not None:
            result = [e for e in result if e.kind == kind]
        if subject_id is not None:
            result = [e for e in result if e.subject_id == subject_id]
        return result

    def export(self) -> list[dict[str, Any]]:
        return [e.to_dict() for e in self._entries]

    def verify_all(self) -> list[str]:
        """Return IDs of entries whose hash does not match. Empty = intact."""
        return [e.entry_id for e in self._entries if not e.verify()]

    @property
    def count(self) -> int:
        return len(self._entries)

    @property
    def last_entry(self) -> Optional[AuditEntry]:
        return self._entries[-1] if self._entries else None
