"""
In-memory audit trail for shell and permission decisions.

The trail is a fixed-capacity ring buffer: once it holds MAX_AUDIT_ENTRIES
entries, each new entry silently drops the oldest. Nothing is persisted.

A process-wide `default_audit_trail` is used unless a different sink is
injected into the gate or guard (tests use their own AuditTrail).
"""

import logging
import threading
from collections import deque
from typing import Protocol

from tollgate.policy.redaction import redact_sensitive_text
from tollgate.schema import ShellAuditEntry

logger = logging.getLogger(__name__)

MAX_AUDIT_ENTRIES = 500


class AuditSink(Protocol):
    """Anything that can receive audit entries."""

    def record(self, entry: ShellAuditEntry) -> None:
        ...


class AuditTrail:
    """
    Thread-safe bounded FIFO of ShellAuditEntry objects.

    Usage:
        trail = AuditTrail()
        trail.record(entry)
        for entry in trail.entries():
            ...

    Attributes:
        capacity: Maximum number of retained entries
    """

    def __init__(self, capacity: int = MAX_AUDIT_ENTRIES) -> None:
        if capacity <= 0:
            raise ValueError(f"Audit capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._entries: deque[ShellAuditEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, entry: ShellAuditEntry) -> None:
        """Append an entry, evicting the oldest when full."""
        with self._lock:
            self._entries.append(entry)
        logger.debug(
            "audit %s [%s] %s: %s",
            entry.outcome.value,
            entry.source,
            redact_sensitive_text(entry.command),
            redact_sensitive_text(entry.reason or ""),
        )

    def entries(self) -> tuple[ShellAuditEntry, ...]:
        """Snapshot of retained entries, oldest first."""
        with self._lock:
            return tuple(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


default_audit_trail = AuditTrail()


def record_audit(entry: ShellAuditEntry) -> None:
    """Append an entry to the process-wide trail."""
    default_audit_trail.record(entry)


def get_audit_trail() -> tuple[ShellAuditEntry, ...]:
    """Snapshot of the process-wide trail, oldest first."""
    return default_audit_trail.entries()


def clear_audit_trail() -> None:
    """Empty the process-wide trail. Intended for tests."""
    default_audit_trail.clear()
