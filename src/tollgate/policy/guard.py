"""
Permission guard for non-shell tool calls.

The guard applies deny and ask rules to read/write/edit/web_fetch/subagent/
MCP calls before they run. Shell tools (bash, bg_bash) are skipped here:
the ShellPolicyGate owns them, and checking twice would prompt twice.

Permission decisions land in the same audit trail as shell decisions, as
entries whose command reads `[permission] <tool>: <rule>`.
"""

import asyncio
import logging
import os
from typing import Any

from tollgate.config.flags import NAMESPACE_DIR
from tollgate.config.loader import PermissionStore, default_store
from tollgate.errors import ConfirmationError
from tollgate.policy.audit import AuditSink, default_audit_trail
from tollgate.policy.engine import COMMAND_TOOLS, evaluate, extract_all_agent_names
from tollgate.policy.gate import ConfirmFn
from tollgate.policy.redaction import format_permission_reason, redact_sensitive_text
from tollgate.rules.parser import normalize_tool_name
from tollgate.rules.paths import build_expansion_vars
from tollgate.schema import (
    EnforcementResult,
    PermissionAction,
    PermissionVerdict,
    ShellAuditEntry,
    ShellOutcome,
    TrustLevel,
)

logger = logging.getLogger(__name__)

MAX_DISPLAY_LENGTH = 60


def describe_input(tool_name: str, tool_input: dict[str, Any]) -> str:
    """Short, redacted description of what a tool call targets."""
    for key in ("path", "url"):
        if isinstance(tool_input.get(key), str):
            return redact_sensitive_text(tool_input[key])
    if isinstance(tool_input.get("command"), str):
        command = redact_sensitive_text(tool_input["command"])
        if len(command) > MAX_DISPLAY_LENGTH:
            return command[:MAX_DISPLAY_LENGTH - 3] + "..."
        return command
    return tool_name


class ToolPermissionGuard:
    """
    Enforces permission rules for one tool call at a time.

    Usage:
        guard = ToolPermissionGuard()
        result = await guard.check("Read", {"path": ".env"}, cwd, interactive=False)
        if result.blocked:
            # refuse, show result.reason

    Attributes:
        store: Source of permission rules per working directory
        audit: Sink receiving permission decisions
    """

    def __init__(
        self,
        store: PermissionStore | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        self.store = store if store is not None else default_store
        self.audit = audit if audit is not None else default_audit_trail

    async def check(
        self,
        tool_name: str,
        tool_input: dict[str, Any],
        cwd: str,
        interactive: bool,
        confirm: ConfirmFn | None = None,
    ) -> EnforcementResult:
        """
        Enforce deny/ask rules for a tool call.

        Subagent calls are checked once per agent, so one denied agent in a
        parallel batch blocks the whole call.

        Args:
            tool_name: Tool name in any casing
            tool_input: Raw tool arguments
            cwd: Working directory of the call
            interactive: Whether a user can be prompted
            confirm: Async callback for ask rules

        Returns:
            EnforcementResult (allowed unless a deny rule matched or an
            ask rule was not confirmed)
        """
        canonical = normalize_tool_name(tool_name)
        merged = self.store.get(cwd).merged

        if merged.is_empty or canonical in COMMAND_TOOLS:
            return EnforcementResult(allowed=True, outcome=ShellOutcome.ALLOWED)

        expansion = build_expansion_vars(cwd)
        settings_dir = os.path.join(cwd, NAMESPACE_DIR)

        if canonical == "subagent":
            agents = extract_all_agent_names(tool_input if isinstance(tool_input, dict) else {})
            for agent in agents:
                verdict = evaluate("subagent", {"agent": agent}, merged, expansion, settings_dir)
                result = await self._apply(
                    tool_name, agent, verdict, cwd, interactive, confirm, record_allow=False
                )
                if result.blocked:
                    return result
            return EnforcementResult(allowed=True, outcome=ShellOutcome.ALLOWED)

        verdict = evaluate(canonical, tool_input, merged, expansion, settings_dir)
        target = describe_input(canonical, tool_input if isinstance(tool_input, dict) else {})
        return await self._apply(tool_name, target, verdict, cwd, interactive, confirm)

    async def _apply(
        self,
        tool_name: str,
        target: str,
        verdict: PermissionVerdict,
        cwd: str,
        interactive: bool,
        confirm: ConfirmFn | None,
        record_allow: bool = True,
    ) -> EnforcementResult:
        if verdict.action == PermissionAction.DENY:
            reason = format_permission_reason(verdict, include_hints=True, max_hints=2)
            return self._finish(tool_name, cwd, ShellOutcome.BLOCKED, verdict, reason)

        if verdict.action == PermissionAction.ASK:
            try:
                confirmed = await self._confirm(tool_name, target, verdict, interactive, confirm)
            except asyncio.CancelledError:
                error = ConfirmationError(command=target, canceled=True)
                self._finish(tool_name, cwd, ShellOutcome.BLOCKED, verdict, error.message, error.message)
                raise
            except Exception as e:
                logger.warning("[permissions] Confirmation failed for %s: %s", tool_name, e)
                error = ConfirmationError(command=target, underlying_error=str(e))
                return self._finish(
                    tool_name, cwd, ShellOutcome.BLOCKED, verdict, error.message, error.message
                )
            if confirmed:
                return self._finish(tool_name, cwd, ShellOutcome.CONFIRMED, verdict, verdict.reason)
            reason = "Permission request denied: " + format_permission_reason(
                verdict, include_hints=True, max_hints=2
            )
            return self._finish(tool_name, cwd, ShellOutcome.BLOCKED, verdict, reason)

        if verdict.action == PermissionAction.ALLOW and record_allow:
            return self._finish(tool_name, cwd, ShellOutcome.ALLOWED, verdict, verdict.reason)

        return EnforcementResult(allowed=True, outcome=ShellOutcome.ALLOWED, reason=verdict.reason)

    async def _confirm(
        self,
        tool_name: str,
        target: str,
        verdict: PermissionVerdict,
        interactive: bool,
        confirm: ConfirmFn | None,
    ) -> bool:
        """Ask the user; anything but an explicit True is a no. Callback errors propagate."""
        if not interactive or confirm is None:
            return False

        lines = [
            f"Reason: {format_permission_reason(verdict, include_hints=True, max_hints=1)}",
            "",
            f"Tool: {tool_name}",
            f"Input: {target}",
        ]
        if verdict.matched_rule:
            lines.append(f"Rule: {verdict.matched_rule}")
        lines += ["", "Allow this action?"]

        answer = await confirm("\n".join(lines))
        return answer is True

    def _finish(
        self,
        tool_name: str,
        cwd: str,
        outcome: ShellOutcome,
        verdict: PermissionVerdict,
        reason: str | None,
        audit_reason: str | None = None,
    ) -> EnforcementResult:
        self.audit.record(
            ShellAuditEntry(
                command=f"[permission] {tool_name}: {verdict.matched_rule or 'no match'}",
                source=normalize_tool_name(tool_name),
                trust_level=TrustLevel.EXPLICIT,
                cwd=cwd,
                outcome=outcome,
                reason=audit_reason or verdict.reason,
            )
        )
        return EnforcementResult(
            allowed=outcome != ShellOutcome.BLOCKED,
            outcome=outcome,
            reason=reason,
        )
