"""Audit sinks: persistence of sync summaries and per-SKU detail rows."""

from .base import AuditSink, AuditSinkError
from .memory import MemoryAuditSink

__all__ = [
    "AuditSink",
    "AuditSinkError",
    "MemoryAuditSink",
]
