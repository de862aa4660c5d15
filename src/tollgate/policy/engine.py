"""
Permission Evaluator for Tollgate.

Every tool invocation is checked against the merged permission rules
before it runs. The evaluator is a pure function of (tool, input, rules,
expansion variables) and always returns a PermissionVerdict.

Design Principles:
    - Deny wins: any matching deny rule blocks, regardless of tier
    - Ask beats allow: a matching ask rule forces confirmation
    - Never raises: malformed input simply fails to match allow rules
    - Auditable: verdicts carry the matched rule, its source file and
      redacted remediation hints

How it works:
    1. Normalize the tool name (Bash -> bash, Task -> subagent, ...)
    2. Resolve the input value once (command, path, URL, agents, MCP name)
    3. Walk deny, then ask, then allow; first match wins
    4. No match: "default" (allowlist_unmatched or no_rules_configured)

Security Note:
    This module is security-critical. Paths are canonicalized before
    matching. A matcher error while checking deny or ask rules counts as a
    match, and as a non-match for allow rules.
"""

import logging
import os
import re
from typing import Any

from tollgate.policy.redaction import redact_optional, redact_sensitive_text
from tollgate.rules.matchers import (
    match_bash_rule,
    match_domain_rule,
    match_mcp_rule,
    match_path_rule,
    match_subagent_rule,
)
from tollgate.rules.parser import normalize_tool_name
from tollgate.rules.paths import (
    build_expansion_vars,
    canonicalize_path,
    expand_variables,
    resolve_path_specifier,
)
from tollgate.schema import (
    AgentInput,
    CommandInput,
    ExpansionVars,
    McpInput,
    ParsedRule,
    PathInput,
    PermissionAction,
    PermissionConfig,
    PermissionVerdict,
    ReasonCode,
    RuleMode,
    ToolInput,
    UrlInput,
)

logger = logging.getLogger(__name__)

COMMAND_TOOLS = frozenset({"bash", "bg_bash"})
PATH_TOOLS = frozenset({"read", "write", "edit", "cd", "ls", "find", "grep"})
MCP_PREFIX = "mcp__"
CLI_SOURCE = "<cli>"

MAX_HINTS = 2
MAX_LISTED_PATTERNS = 3

# First word of a denied shell command -> dedicated tool that does the same job.
SAFER_TOOL_HINTS = {
    "cat": "read",
    "head": "read",
    "tail": "read",
    "less": "read",
    "ls": "ls",
    "grep": "grep",
    "rg": "grep",
    "find": "find",
    "curl": "web_fetch",
    "wget": "web_fetch",
}


# =============================================================================
# Input Extraction
# =============================================================================


def extract_all_agent_names(tool_input: dict[str, Any]) -> list[str]:
    """
    Collect every agent name from a subagent invocation.

    Handles single (`agent`), parallel (`tasks[].agent`) and chained
    (`centipede[].agent`) forms.
    """
    agents: list[str] = []
    if isinstance(tool_input.get("agent"), str):
        agents.append(tool_input["agent"])
    for key in ("tasks", "centipede"):
        items = tool_input.get(key)
        if not isinstance(items, list):
            continue
        for item in items:
            if isinstance(item, dict) and isinstance(item.get("agent"), str):
                agents.append(item["agent"])
    return agents


def extract_tool_input(
    tool_name: str,
    tool_input: dict[str, Any],
    cwd: str | None = None,
) -> ToolInput | None:
    """
    Resolve the value rule specifiers are matched against.

    Args:
        tool_name: Canonical tool name
        tool_input: Raw tool arguments
        cwd: When given, path values are canonicalized against it

    Returns:
        A ToolInput variant, or None when the tool has nothing to match
    """
    if not isinstance(tool_input, dict):
        tool_input = {}

    if tool_name in COMMAND_TOOLS:
        command = tool_input.get("command")
        return CommandInput(value=command) if isinstance(command, str) else None

    if tool_name in PATH_TOOLS:
        path = tool_input.get("path")
        if not isinstance(path, str) or not path:
            return None
        return PathInput(value=canonicalize_path(path, cwd) if cwd else path)

    if tool_name == "web_fetch":
        url = tool_input.get("url")
        return UrlInput(value=url) if isinstance(url, str) else None

    if tool_name == "subagent":
        agents = extract_all_agent_names(tool_input)
        return AgentInput(agents=tuple(agents)) if agents else None

    if tool_name.startswith(MCP_PREFIX):
        return McpInput(value=tool_name)

    return None


# =============================================================================
# Rule Matching
# =============================================================================


def rule_settings_dir(rule: ParsedRule, fallback: str) -> str:
    """Directory `/`-anchored path specifiers of this rule resolve against."""
    if rule.source_path and rule.source_path != CLI_SOURCE:
        return os.path.dirname(rule.source_path)
    return fallback


def _tool_matches(rule: ParsedRule, tool_name: str) -> bool:
    if rule.tool == tool_name:
        return True
    return (
        rule.tool.startswith(MCP_PREFIX)
        and tool_name.startswith(MCP_PREFIX)
        and match_mcp_rule(tool_name, rule.tool)
    )


def rule_matches(
    rule: ParsedRule,
    tool_name: str,
    invocation: ToolInput | None,
    mode: RuleMode,
    expansion: ExpansionVars,
    settings_dir: str,
) -> bool:
    """
    Check whether one rule matches an invocation.

    Args:
        rule: Parsed permission rule
        tool_name: Canonical tool name being invoked
        invocation: Resolved input value (paths already canonical)
        mode: Which rule list is being walked
        expansion: Values for `{cwd}`, `{home}`, `{project}`
        settings_dir: Fallback directory for `/`-anchored path specifiers

    Returns:
        True when the rule applies to this invocation
    """
    if not _tool_matches(rule, tool_name):
        return False

    if rule.specifier is None:
        return True

    specifier = expand_variables(rule.specifier, expansion)

    if tool_name in COMMAND_TOOLS:
        command = invocation.value if isinstance(invocation, CommandInput) else ""
        return match_bash_rule(command, specifier, mode)

    if tool_name in PATH_TOOLS:
        if not isinstance(invocation, PathInput):
            return False
        pattern = resolve_path_specifier(
            rule.specifier,
            rule_settings_dir(rule, settings_dir),
            expansion,
        )
        return match_path_rule(invocation.value, pattern)

    if tool_name == "web_fetch":
        url = invocation.value if isinstance(invocation, UrlInput) else ""
        return match_domain_rule(url, specifier)

    if tool_name == "subagent":
        if not isinstance(invocation, AgentInput):
            return False
        if mode == RuleMode.ALLOW:
            return all(match_subagent_rule(agent, specifier) for agent in invocation.agents)
        return any(match_subagent_rule(agent, specifier) for agent in invocation.agents)

    if tool_name.startswith(MCP_PREFIX):
        return match_mcp_rule(tool_name, specifier)

    return False


def _safe_rule_matches(
    rule: ParsedRule,
    tool_name: str,
    invocation: ToolInput | None,
    mode: RuleMode,
    expansion: ExpansionVars,
    settings_dir: str,
) -> bool:
    try:
        return rule_matches(rule, tool_name, invocation, mode, expansion, settings_dir)
    except (ValueError, TypeError, OSError, re.error) as e:
        logger.warning("[permissions] Failed to match rule %s: %s", rule.raw, e)
        return mode != RuleMode.ALLOW


# =============================================================================
# Remediation Hints
# =============================================================================


def _rule_location(rule: ParsedRule) -> str:
    if rule.source_path == CLI_SOURCE:
        return "the --disallowed/--allowed command-line rules"
    if rule.source_path:
        return rule.source_path
    return "your settings file"


def _allowed_patterns(config: PermissionConfig, tool_name: str) -> list[str]:
    return [rule.raw for rule in config.allow if _tool_matches(rule, tool_name)]


def build_remediation_hints(
    action: PermissionAction,
    tool_name: str,
    invocation: ToolInput | None,
    rule: ParsedRule | None,
    config: PermissionConfig,
) -> tuple[str, ...]:
    """
    Suggest how to get past a blocked or prompted invocation.

    Hints name the settings file to edit, the allow patterns that would
    have matched, or a dedicated tool to use instead of a shell command.
    """
    hints: list[str] = []

    if action == PermissionAction.DENY and rule is not None:
        if isinstance(invocation, CommandInput):
            words = invocation.value.split()
            alternative = SAFER_TOOL_HINTS.get(words[0]) if words else None
            if alternative:
                hints.append(f"Use the {alternative} tool instead of running {words[0]} in a shell.")
        hints.append(f"Edit {_rule_location(rule)} to change or remove deny rule {rule.raw}.")

    elif action == PermissionAction.ASK and rule is not None:
        patterns = _allowed_patterns(config, tool_name)
        if patterns:
            listed = ", ".join(patterns[:MAX_LISTED_PATTERNS])
            hints.append(f"Allowed patterns for {tool_name}: {listed}")
        hints.append(f"Remove ask rule {rule.raw} from {_rule_location(rule)} to stop prompting.")

    elif action == PermissionAction.DEFAULT:
        patterns = _allowed_patterns(config, tool_name)
        if patterns:
            listed = ", ".join(patterns[:MAX_LISTED_PATTERNS])
            hints.append(f"Allowed patterns for {tool_name}: {listed}")

    return tuple(redact_sensitive_text(hint) for hint in hints[:MAX_HINTS])


# =============================================================================
# Evaluation
# =============================================================================


def _rule_verdict(
    action: PermissionAction,
    code: ReasonCode,
    message: str,
    rule: ParsedRule,
    hints: tuple[str, ...],
) -> PermissionVerdict:
    matched = redact_sensitive_text(rule.raw)
    return PermissionVerdict(
        allowed=action == PermissionAction.ALLOW,
        action=action,
        reason_code=code,
        reason_message=message,
        reason=f"{message}: {matched}",
        matched_rule=matched,
        source_path=redact_optional(rule.source_path),
        source_scope=rule.source_scope,
        remediation_hints=hints,
    )


def evaluate(
    tool_name: str,
    tool_input: dict[str, Any],
    config: PermissionConfig,
    expansion: ExpansionVars,
    settings_dir: str,
) -> PermissionVerdict:
    """
    Evaluate a tool invocation against permission rules.

    Resolution order is deny -> ask -> allow -> default. When the allow
    list is non-empty and nothing matched, the verdict is "default" with
    reason code allowlist_unmatched; callers decide whether to prompt.

    Args:
        tool_name: Tool name in any casing ("Bash", "read", "mcp__x__y")
        tool_input: Raw tool arguments
        config: Merged permission rules
        expansion: Values for `{cwd}`, `{home}`, `{project}`
        settings_dir: Directory for `/`-anchored specifiers of rules that
            did not come from a settings file

    Returns:
        PermissionVerdict (never raises)
    """
    canonical = normalize_tool_name(tool_name)
    try:
        invocation = extract_tool_input(canonical, tool_input, expansion.cwd)
    except (ValueError, TypeError, OSError) as e:
        logger.warning("[permissions] Failed to read %s input: %s", canonical, e)
        invocation = None

    for rule in config.deny:
        if _safe_rule_matches(rule, canonical, invocation, RuleMode.DENY, expansion, settings_dir):
            hints = build_remediation_hints(
                PermissionAction.DENY, canonical, invocation, rule, config
            )
            return _rule_verdict(
                PermissionAction.DENY,
                ReasonCode.RULE_DENIED,
                "Action denied by permission rule",
                rule,
                hints,
            )

    for rule in config.ask:
        if _safe_rule_matches(rule, canonical, invocation, RuleMode.ASK, expansion, settings_dir):
            hints = build_remediation_hints(
                PermissionAction.ASK, canonical, invocation, rule, config
            )
            return _rule_verdict(
                PermissionAction.ASK,
                ReasonCode.RULE_REQUIRES_CONFIRMATION,
                "Confirmation required by permission rule",
                rule,
                hints,
            )

    for rule in config.allow:
        if _safe_rule_matches(rule, canonical, invocation, RuleMode.ALLOW, expansion, settings_dir):
            return _rule_verdict(
                PermissionAction.ALLOW,
                ReasonCode.RULE_ALLOWED,
                "Action permitted by permission rule",
                rule,
                (),
            )

    if config.allow:
        message = "No matching permission rule; tool is not in the allowlist"
        return PermissionVerdict(
            allowed=True,
            action=PermissionAction.DEFAULT,
            reason_code=ReasonCode.ALLOWLIST_UNMATCHED,
            reason_message=message,
            reason=message,
            remediation_hints=build_remediation_hints(
                PermissionAction.DEFAULT, canonical, invocation, None, config
            ),
        )

    message = "No permission rules configured"
    return PermissionVerdict(
        allowed=True,
        action=PermissionAction.DEFAULT,
        reason_code=ReasonCode.NO_RULES_CONFIGURED,
        reason_message=message,
        reason=message,
    )


class PermissionEngine:
    """
    Permission evaluator bound to one set of rules.

    Usage:
        engine = PermissionEngine(loaded.merged)
        verdict = engine.evaluate("Read", {"path": ".env"}, cwd="/project")
        if verdict.action == PermissionAction.DENY:
            # refuse the call

    Attributes:
        config: The merged permission rules to enforce
        home: Home directory override used for `{home}` and `~/`
    """

    def __init__(self, config: PermissionConfig, home: str | None = None) -> None:
        self.config = config
        self.home = home

    def evaluate(
        self,
        tool_name: str,
        tool_input: dict[str, Any],
        cwd: str,
        settings_dir: str | None = None,
        expansion: ExpansionVars | None = None,
    ) -> PermissionVerdict:
        """
        Evaluate an invocation made from `cwd`.

        Args:
            tool_name: Tool name in any casing
            tool_input: Raw tool arguments
            cwd: Working directory of the invocation
            settings_dir: Fallback for `/`-anchored specifiers
                (defaults to `<cwd>/.tollgate`)
            expansion: Precomputed expansion variables
        """
        expansion = expansion or build_expansion_vars(cwd, self.home)
        return evaluate(
            tool_name,
            tool_input,
            self.config,
            expansion,
            settings_dir or os.path.join(cwd, ".tollgate"),
        )


def build_probe_input(text: str) -> tuple[str, dict[str, Any]]:
    """
    Turn `Tool(value)` into a synthetic invocation for dry-run checks.

    Examples:
        "Bash(docker compose up)" -> ("bash", {"command": "docker compose up"})
        "Read(./.env)" -> ("read", {"path": "./.env"})
        "mcp__github__search" -> ("mcp__github__search", {})
    """
    text = text.strip()
    open_index = text.find("(")
    close_index = text.rfind(")")
    if open_index != -1 and close_index > open_index:
        tool_name = normalize_tool_name(text[:open_index])
        value = text[open_index + 1:close_index]
    else:
        tool_name = normalize_tool_name(text)
        value = ""

    if tool_name in COMMAND_TOOLS:
        return tool_name, {"command": value}
    if tool_name in PATH_TOOLS:
        return tool_name, {"path": value}
    if tool_name == "web_fetch":
        return tool_name, {"url": value}
    if tool_name == "subagent":
        return tool_name, {"agent": value}
    return tool_name, {}
