"""Tests for the audit log — proves entries are append-only and tamper-evident."""

import dataclasses
import pytest
from datetime import datetime, timezone

from tradecore.persistence.audit_log import AuditEntry, AuditKind, AuditLog


def _now() -> datetime:
    return datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


class TestAuditEntry:
    def test_hash_is_stable(self) -> None:
        a = AuditEntry.create("e1", AuditKind.FEES_COMPUTED, "trade_1", {"total": "80.00"}, _now())
        b = AuditEntry.create("e1", AuditKind.FEES_COMPUTED, "trade_1", {"total": "80.00"}, _now())
        assert a.entry_hash == b.entry_hash
        assert a.entry_hash.startswith("sha256:")

    def test_hash_covers_payload(self) -> None:
        a = AuditEntry.create("e1", AuditKind.FEES_COMPUTED, "trade_1", {"total": "80.00"}, _now())
        b = AuditEntry.create("e1", AuditKind.FEES_COMPUTED, "trade_1", {"total": "81.00"}, _now())
        assert a.entry_hash != b.entry_hash

    def test_timestamp_format(self) -> None:
        entry = AuditEntry.create("e1", AuditKind.ORDER_EVENT, "trade_1", {}, _now())
        assert entry.timestamp_utc == "2026-03-02T09:00:00Z"

    def test_tampering_detected(self) -> None:
        entry = AuditEntry.create("e1", AuditKind.RISK_ASSESSED, "co_1", {"trust_score": 96.0}, _now())
        forged = dataclasses.replace(entry, payload={"trust_score": 99.0})
        assert entry.verify()
        assert not forged.verify()


class TestAuditLog:
    def test_record_assigns_sequential_ids(self) -> None:
        log = AuditLog()
        first = log.record(AuditKind.ESCROW_OPENED, "trade_1", {})
        second = log.record(AuditKind.ORDER_EVENT, "trade_1", {})
        assert first.entry_id == "audit_00000001"
        assert second.entry_id == "audit_00000002"
        assert log.count == 2
        assert log.last_entry == second

    def test_duplicate_id_rejected(self) -> None:
        log = AuditLog()
        entry = AuditEntry.create("e1", AuditKind.ORDER_EVENT, "trade_1", {}, _now())
        log.append(entry)
        with pytest.raises(ValueError, match="Duplicate"):
            log.append(entry)

    def test_record_skips_appended_ids(self) -> None:
        log = AuditLog()
        log.append(AuditEntry.create("audit_00000001", AuditKind.ORDER_EVENT, "trade_1", {}, _now()))
        entry = log.record(AuditKind.FEES_COMPUTED, "trade_1", {})
        assert entry.entry_id == "audit_00000002"
        assert log.count == 2

    def test_record_after_mixed_appends(self) -> None:
        log = AuditLog()
        log.append(AuditEntry.create("external_1", AuditKind.ORDER_EVENT, "trade_1", {}, _now()))
        log.record(AuditKind.ORDER_EVENT, "trade_1", {})
        log.append(AuditEntry.create("audit_00000002", AuditKind.ORDER_EVENT, "trade_1", {}, _now()))
        entry = log.record(AuditKind.ORDER_EVENT, "trade_1", {})
        assert entry.entry_id == "audit_00000003"
        assert log.verify_all() == []

    def test_filters(self) -> None:
        log = AuditLog()
        log.record(AuditKind.ORDER_EVENT, "trade_1", {})
        log.record(AuditKind.ORDER_EVENT, "trade_2", {})
        log.record(AuditKind.FEES_COMPUTED, "trade_1", {})
        assert len(log.entries(kind=AuditKind.ORDER_EVENT)) == 2
        assert len(log.entries(subject_id="trade_1")) == 2
        assert len(log.entries(AuditKind.ORDER_EVENT, "trade_2")) == 1

    def test_entries_returns_copy(self) -> None:
        log = AuditLog()
        log.record(AuditKind.ORDER_EVENT, "trade_1", {})
        log.entries().clear()
        assert log.count == 1

    def test_export_and_verify(self) -> None:
        log = AuditLog()
        log.record(AuditKind.FX_ESTIMATED, "NGN", {"local_amount": "392150.00"}, _now())
        exported = log.export()
        assert exported[0]["kind"] == "fx_estimated"
        assert exported[0]["payload"] == {"local_amount": "392150.00"}
        assert log.verify_all() == []

    def test_empty_log(self) -> None:
        log = AuditLog()
        assert log.count == 0
        assert log.last_entry is None
