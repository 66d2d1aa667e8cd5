"""Audit trail for action dispatch."""

from .log import AuditQueryResult, AuditRecord, AuditSink, InMemoryAuditLog, truncate_input

__all__ = ["AuditRecord", "AuditSink", "AuditQueryResult", "InMemoryAuditLog", "truncate_input"]
