"""
Shell Policy Gate for Tollgate.

Every shell command, whatever triggered it, goes through the gate before
it is spawned. The gate classifies the command, applies permission rules,
runs the confirmation workflow and records the outcome.

Trust levels:
    explicit   bash / bg_bash tool calls the user or agent asked for
    implicit   commands interpolated into prompts or context forks
    internal   helper invocations made by the host itself (git-helper)

How it works (evaluate_command):
    1. Empty command or relative cwd -> block
    2. Hardcoded denylist -> block (no rule or trust level overrides this)
    3. Permission rules: deny -> block, ask -> confirm, allow -> allow
    4. Internal: first word must be git, gh or which
    5. Implicit: interpolation enabled, no shell operators, read-only
       allowlist, not high-risk
    6. Explicit: high-risk -> confirm, else allow

Security Note:
    This module is security-critical. Confirmation failures of any kind
    (exception, cancel, missing answer) block the command.
"""

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from tollgate.config.flags import (
    ALLOW_UNSAFE_SHELL_ENV,
    NAMESPACE_DIR,
    is_non_interactive_bypass_enabled,
    is_shell_interpolation_enabled,
)
from tollgate.config.loader import PermissionStore, default_store
from tollgate.errors import ConfirmationError
from tollgate.policy.audit import AuditSink, default_audit_trail
from tollgate.policy.engine import evaluate as evaluate_permission
from tollgate.policy.patterns import (
    INTERNAL_COMMAND_ALLOWLIST,
    has_forbidden_operators,
    is_denied,
    is_high_risk,
    is_implicit_allowlisted,
)
from tollgate.policy.redaction import format_permission_reason
from tollgate.rules.paths import build_expansion_vars
from tollgate.schema import (
    ConfirmationKind,
    EnforcementResult,
    PermissionAction,
    ReasonCode,
    ShellAuditEntry,
    ShellOutcome,
    ShellPolicyVerdict,
    ShellSource,
    TrustLevel,
)

logger = logging.getLogger(__name__)

MAX_TIMEOUT_MS = 30_000
DEFAULT_TIMEOUT_MS = 5_000

SOURCE_TRUST: dict[ShellSource, TrustLevel] = {
    ShellSource.BASH: TrustLevel.EXPLICIT,
    ShellSource.BG_BASH: TrustLevel.EXPLICIT,
    ShellSource.SHELL_INTERPOLATION: TrustLevel.IMPLICIT,
    ShellSource.CONTEXT_FORK: TrustLevel.IMPLICIT,
    ShellSource.GIT_HELPER: TrustLevel.INTERNAL,
}

ConfirmFn = Callable[[str], Awaitable[bool | None]]

_CANCELED = object()


def get_trust_level(source: ShellSource | str) -> TrustLevel:
    """Map a command source to its trust level."""
    return SOURCE_TRUST[ShellSource(source)]


def clamp_timeout(timeout_ms: float | None) -> float:
    """Clamp a timeout into (0, 30000] ms, defaulting to 5000 ms."""
    if not timeout_ms or timeout_ms <= 0:
        return DEFAULT_TIMEOUT_MS
    return min(timeout_ms, MAX_TIMEOUT_MS)


class ShellPolicyGate:
    """
    Central shell command gate.

    Usage:
        gate = ShellPolicyGate()
        result = await gate.enforce_explicit(
            "git push --force", "bash", "/repo", interactive=True, confirm=ask_user
        )
        if result.blocked:
            # refuse, show result.reason

    Attributes:
        store: Source of permission rules per working directory
        audit: Sink receiving one entry per terminal outcome
        environ: Environment for flags (None = os.environ)
    """

    def __init__(
        self,
        store: PermissionStore | None = None,
        audit: AuditSink | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.store = store if store is not None else default_store
        self.audit = audit if audit is not None else default_audit_trail
        self.environ = environ

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate_command(
        self,
        command: str,
        source: ShellSource | str,
        cwd: str,
    ) -> ShellPolicyVerdict:
        """
        Classify a command without side effects (other than loading rules).

        Args:
            command: Raw command text
            source: Where the command came from
            cwd: Absolute working directory

        Returns:
            ShellPolicyVerdict with allow/block/confirm decision
        """
        trust_level = get_trust_level(source)
        normalized = command.strip()

        if not normalized:
            return ShellPolicyVerdict.block(
                normalized, trust_level, ReasonCode.INVALID_COMMAND, "Command is empty"
            )

        if not os.path.isabs(cwd):
            return ShellPolicyVerdict.block(
                normalized, trust_level, ReasonCode.INVALID_CWD, f"Invalid cwd: {cwd}"
            )

        if is_denied(normalized):
            return ShellPolicyVerdict.block(
                normalized, trust_level, ReasonCode.DENYLISTED, "Command matches denylist"
            )

        rule_verdict = self._evaluate_rules(normalized, trust_level, cwd)
        if rule_verdict is not None:
            return rule_verdict

        if trust_level == TrustLevel.INTERNAL:
            return self._evaluate_internal(normalized)

        if trust_level == TrustLevel.IMPLICIT:
            return self._evaluate_implicit(normalized, cwd)

        if is_high_risk(normalized):
            return ShellPolicyVerdict.confirm(
                normalized,
                trust_level,
                ReasonCode.HIGH_RISK,
                "Command matches high-risk pattern",
                ConfirmationKind.HIGH_RISK,
            )

        return ShellPolicyVerdict.allow(normalized, trust_level, ReasonCode.EXPLICIT_ALLOWED)

    def _evaluate_rules(
        self,
        command: str,
        trust_level: TrustLevel,
        cwd: str,
    ) -> ShellPolicyVerdict | None:
        """Apply user permission rules; None means no rule decided."""
        permissions = self.store.get(cwd)
        if permissions.merged.is_empty:
            return None

        verdict = evaluate_permission(
            "bash",
            {"command": command},
            permissions.merged,
            build_expansion_vars(cwd),
            os.path.join(cwd, NAMESPACE_DIR),
        )

        if verdict.action == PermissionAction.DENY:
            return ShellPolicyVerdict.block(
                command,
                trust_level,
                verdict.reason_code,
                format_permission_reason(verdict, include_hints=True, max_hints=2),
            )
        if verdict.action == PermissionAction.ASK:
            return ShellPolicyVerdict.confirm(
                command,
                trust_level,
                verdict.reason_code,
                format_permission_reason(verdict, include_hints=False),
                ConfirmationKind.PERMISSION_RULE,
            )
        if verdict.action == PermissionAction.ALLOW:
            return ShellPolicyVerdict.allow(
                command, trust_level, verdict.reason_code, verdict.reason
            )
        return None

    def _evaluate_internal(self, command: str) -> ShellPolicyVerdict:
        name = command.split()[0]
        if name not in INTERNAL_COMMAND_ALLOWLIST:
            return ShellPolicyVerdict.block(
                command,
                TrustLevel.INTERNAL,
                ReasonCode.INTERNAL_NOT_ALLOWLISTED,
                f"Internal command not allowlisted: {name}",
            )
        return ShellPolicyVerdict.allow(command, TrustLevel.INTERNAL, ReasonCode.INTERNAL_ALLOWED)

    def _evaluate_implicit(self, command: str, cwd: str) -> ShellPolicyVerdict:
        level = TrustLevel.IMPLICIT
        if not is_shell_interpolation_enabled(cwd, self.environ):
            return ShellPolicyVerdict.block(
                command, level, ReasonCode.INTERPOLATION_DISABLED, "Shell interpolation is disabled"
            )
        if has_forbidden_operators(command):
            return ShellPolicyVerdict.block(
                command,
                level,
                ReasonCode.IMPLICIT_FORBIDDEN_OPERATORS,
                "Implicit command contains forbidden shell operators",
            )
        if not is_implicit_allowlisted(command):
            return ShellPolicyVerdict.block(
                command,
                level,
                ReasonCode.IMPLICIT_NOT_ALLOWLISTED,
                "Implicit command is not allowlisted",
            )
        if is_high_risk(command):
            return ShellPolicyVerdict.block(
                command,
                level,
                ReasonCode.IMPLICIT_HIGH_RISK,
                "High-risk commands are blocked for implicit execution",
            )
        return ShellPolicyVerdict.allow(command, level, ReasonCode.IMPLICIT_ALLOWED)

    # =========================================================================
    # Enforcement
    # =========================================================================

    def _record(
        self,
        verdict: ShellPolicyVerdict,
        source: ShellSource | str,
        cwd: str,
        outcome: ShellOutcome,
        reason: str | None = None,
    ) -> None:
        self.audit.record(
            ShellAuditEntry(
                command=verdict.normalized_command,
                source=ShellSource(source).value,
                trust_level=verdict.trust_level,
                cwd=cwd,
                outcome=outcome,
                reason=reason,
            )
        )
        if outcome == ShellOutcome.BLOCKED:
            logger.info("Blocked shell command from %s: %s", ShellSource(source).value, reason)

    def _finish(
        self,
        verdict: ShellPolicyVerdict,
        source: ShellSource | str,
        cwd: str,
        outcome: ShellOutcome,
        reason: str | None = None,
    ) -> EnforcementResult:
        self._record(verdict, source, cwd, outcome, reason)
        return EnforcementResult(
            allowed=outcome != ShellOutcome.BLOCKED,
            outcome=outcome,
            reason=reason,
        )

    async def enforce_explicit(
        self,
        command: str,
        source: ShellSource | str,
        cwd: str,
        interactive: bool,
        confirm: ConfirmFn,
        cancel: asyncio.Event | None = None,
    ) -> EnforcementResult:
        """
        Evaluate an explicit command and run the confirmation workflow.

        Args:
            command: Raw command text
            source: bash or bg_bash
            cwd: Absolute working directory
            interactive: Whether a user can be prompted
            confirm: Async callback returning True (run), False (deny) or
                None (dismissed); may raise
            cancel: Event that aborts a pending confirmation when set

        Returns:
            EnforcementResult; exactly one audit entry is recorded
        """
        verdict = self.evaluate_command(command, source, cwd)

        if not verdict.allowed:
            return self._finish(
                verdict, source, cwd, ShellOutcome.BLOCKED, verdict.reason or "Blocked by shell policy"
            )

        if not verdict.requires_confirmation:
            return self._finish(verdict, source, cwd, ShellOutcome.ALLOWED, verdict.reason)

        rule_confirmation = verdict.confirmation_kind == ConfirmationKind.PERMISSION_RULE

        if not interactive:
            if rule_confirmation:
                return self._finish(
                    verdict,
                    source,
                    cwd,
                    ShellOutcome.BLOCKED,
                    f"{verdict.reason}\nRe-run interactively to confirm this command.",
                )
            if not is_non_interactive_bypass_enabled(self.environ):
                return self._finish(
                    verdict,
                    source,
                    cwd,
                    ShellOutcome.BLOCKED,
                    "High-risk command blocked in non-interactive mode. "
                    f"Set {ALLOW_UNSAFE_SHELL_ENV}=1 to allow.",
                )
            logger.warning(
                "Non-interactive bypass allowed high-risk command: %s",
                verdict.normalized_command,
            )
            return self._finish(
                verdict, source, cwd, ShellOutcome.BYPASSED, "Non-interactive bypass enabled"
            )

        if rule_confirmation:
            message = (
                f"Permission rule requires confirmation:\n\n{verdict.normalized_command}\n\n"
                f"{verdict.reason}\n\nRun this command?"
            )
        else:
            message = (
                f"High-risk shell command detected:\n\n{verdict.normalized_command}\n\n"
                "Run this command?"
            )

        try:
            answer = await self._await_confirmation(confirm, message, cancel)
        except asyncio.CancelledError:
            error = ConfirmationError(command=verdict.normalized_command, canceled=True)
            self._record(verdict, source, cwd, ShellOutcome.BLOCKED, error.message)
            raise
        except Exception as e:
            error = ConfirmationError(command=verdict.normalized_command, underlying_error=str(e))
            return self._finish(verdict, source, cwd, ShellOutcome.BLOCKED, error.message)

        if answer is _CANCELED or answer is None:
            error = ConfirmationError(command=verdict.normalized_command, canceled=True)
            return self._finish(verdict, source, cwd, ShellOutcome.BLOCKED, error.message)

        if answer is not True:
            denied = "User denied command" if rule_confirmation else "User denied high-risk command"
            return self._finish(verdict, source, cwd, ShellOutcome.BLOCKED, denied)

        return self._finish(verdict, source, cwd, ShellOutcome.CONFIRMED)

    async def _await_confirmation(
        self,
        confirm: ConfirmFn,
        message: str,
        cancel: asyncio.Event | None,
    ) -> Any:
        """Await the callback, racing it against the cancel event."""
        task = asyncio.ensure_future(confirm(message))
        waiter = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
        pending = {task} if waiter is None else {task, waiter}
        try:
            done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if waiter is not None:
                waiter.cancel()

        if task not in done:
            task.cancel()
            return _CANCELED
        if task.cancelled():
            return _CANCELED
        return task.result()

    def enforce_implicit(
        self,
        command: str,
        source: ShellSource | str,
        cwd: str,
    ) -> EnforcementResult:
        """Evaluate an implicit command and record allowed/blocked."""
        verdict = self.evaluate_command(command, source, cwd)
        outcome = ShellOutcome.ALLOWED if verdict.allowed else ShellOutcome.BLOCKED
        return self._finish(verdict, source, cwd, outcome, verdict.reason)

    def record_execution(
        self,
        command: str,
        source: ShellSource | str,
        cwd: str,
        exit_code: int | None,
        duration_ms: float | None = None,
        reason: str | None = None,
    ) -> None:
        """
        Record what happened after an approved command ran.

        A zero exit code is recorded as executed, anything else (including
        a missing code, e.g. the process was killed) as failed.
        """
        normalized = command.strip()
        outcome = ShellOutcome.EXECUTED if exit_code == 0 else ShellOutcome.FAILED
        self.audit.record(
            ShellAuditEntry(
                command=normalized,
                source=ShellSource(source).value,
                trust_level=get_trust_level(source),
                cwd=cwd,
                outcome=outcome,
                reason=reason,
                exit_code=exit_code,
                duration_ms=duration_ms,
            )
        )


default_gate = ShellPolicyGate()


def evaluate_command(command: str, source: ShellSource | str, cwd: str) -> ShellPolicyVerdict:
    """Evaluate with the process-wide gate."""
    return default_gate.evaluate_command(command, source, cwd)


async def enforce_explicit(
    command: str,
    source: ShellSource | str,
    cwd: str,
    interactive: bool,
    confirm: ConfirmFn,
    cancel: asyncio.Event | None = None,
) -> EnforcementResult:
    """Enforce with the process-wide gate."""
    return await default_gate.enforce_explicit(command, source, cwd, interactive, confirm, cancel)


def enforce_implicit(command: str, source: ShellSource | str, cwd: str) -> EnforcementResult:
    """Enforce with the process-wide gate."""
    return default_gate.enforce_implicit(command, source, cwd)
