"""Append-only audit trail for computations shown to users."""

from tradecore.persistence.audit_log import AuditEntry, AuditKind, AuditLog

__all__ = ["AuditEntry", "AuditKind", "AuditLog"]
