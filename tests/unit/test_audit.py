"""
Unit tests for the in-memory audit trail.
"""

import logging
import threading

import pytest

from tollgate.policy.audit import (
    AuditTrail,
    clear_audit_trail,
    get_audit_trail,
    record_audit,
)
from tollgate.schema import ShellAuditEntry, ShellOutcome, TrustLevel


def make_entry(command: str, outcome: ShellOutcome = ShellOutcome.ALLOWED) -> ShellAuditEntry:
    return ShellAuditEntry(
        command=command,
        source="bash",
        trust_level=TrustLevel.EXPLICIT,
        cwd="/p",
        outcome=outcome,
    )


class TestAuditTrail:
    """Tests for AuditTrail."""

    def test_records_in_order(self) -> None:
        """Entries come back oldest first."""
        trail = AuditTrail()
        trail.record(make_entry("a"))
        trail.record(make_entry("b"))

        assert [entry.command for entry in trail.entries()] == ["a", "b"]
        assert len(trail) == 2

    def test_capacity_evicts_oldest(self) -> None:
        """Once full, each new entry drops the oldest."""
        trail = AuditTrail(capacity=3)
        for name in "abcde":
            trail.record(make_entry(name))

        assert [entry.command for entry in trail.entries()] == ["c", "d", "e"]

    def test_default_capacity(self) -> None:
        """The default trail keeps 500 entries."""
        trail = AuditTrail()
        for i in range(510):
            trail.record(make_entry(str(i)))

        entries = trail.entries()
        assert len(entries) == 500
        assert entries[0].command == "10"

    def test_entries_is_snapshot(self) -> None:
        """Later records do not change an earlier snapshot."""
        trail = AuditTrail()
        trail.record(make_entry("a"))
        snapshot = trail.entries()
        trail.record(make_entry("b"))

        assert len(snapshot) == 1

    def test_clear(self) -> None:
        """clear() empties the trail."""
        trail = AuditTrail()
        trail.record(make_entry("a"))
        trail.clear()

        assert trail.entries() == ()

    def test_invalid_capacity(self) -> None:
        """Capacity must be positive."""
        with pytest.raises(ValueError):
            AuditTrail(capacity=0)

    def test_concurrent_records(self) -> None:
        """Concurrent writers never lose or exceed entries."""
        trail = AuditTrail(capacity=1000)

        def writer(prefix: str) -> None:
            for i in range(100):
                trail.record(make_entry(f"{prefix}{i}"))

        threads = [threading.Thread(target=writer, args=(str(n),)) for n in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(trail) == 500

    def test_debug_log_redacts_secrets(self, caplog: pytest.LogCaptureFixture) -> None:
        """The debug line for an entry never carries a raw secret."""
        trail = AuditTrail()

        with caplog.at_level(logging.DEBUG, logger="tollgate.policy.audit"):
            trail.record(make_entry("export API_KEY=abc123secret"))

        assert "API_KEY=[REDACTED]" in caplog.text
        assert "abc123secret" not in caplog.text
        assert trail.entries()[0].command == "export API_KEY=abc123secret"


class TestDefaultTrail:
    """Tests for the process-wide trail helpers."""

    def test_record_and_clear(self) -> None:
        """The module helpers operate on the shared trail."""
        record_audit(make_entry("x", ShellOutcome.BLOCKED))

        assert get_audit_trail()[-1].outcome == ShellOutcome.BLOCKED

        clear_audit_trail()
        assert get_audit_trail() == ()
