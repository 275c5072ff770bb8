"""Ledger module - append-only, hash-chained audit log."""

from railflow.ledger.ledger import AuditLedger
from railflow.ledger.models import LedgerEntry, EventType

__all__ = [
    "AuditLedger",
    "LedgerEntry",
    "EventType",
]
