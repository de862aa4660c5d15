"""
Schema definitions for Tollgate.

This module defines the Pydantic models used throughout Tollgate:
- ParsedRule/PermissionConfig: Permission rules and the tiers they live in
- PermissionVerdict: The result of evaluating a tool call against rules
- ToolInput: The value a rule specifier is matched against, per tool kind
- ShellPolicyVerdict/ShellAuditEntry: Shell gate decisions and their record

Design Decisions:
    - Models are immutable (frozen=True); rule lists are tuples
    - Enums are str-valued so they serialize as the plain strings used in
      settings files and audit output
    - Verdicts carry already-redacted text; nothing downstream re-redacts
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from tollgate.errors import ERROR_POLICY_CONFIRMATION_REQUIRED, PolicyDeniedError


# =============================================================================
# Enums
# =============================================================================


class Tier(str, Enum):
    """
    Settings tier a rule was loaded from.

    Tiers are listed in the order they are considered. Order never lets a
    later tier override an earlier one: a deny from any tier blocks.
    """

    CLI = "cli"
    PROJECT_LOCAL = "project-local"
    PROJECT_SHARED = "project-shared"
    USER = "user"


class PermissionAction(str, Enum):
    """Which evaluation step produced a permission verdict."""

    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"
    DEFAULT = "default"


class RuleMode(str, Enum):
    """Which rule list is being matched (affects shell and subagent semantics)."""

    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


class ReasonCode(str, Enum):
    """Machine-readable reason attached to every verdict."""

    # Permission rules
    RULE_DENIED = "rule_denied"
    RULE_REQUIRES_CONFIRMATION = "rule_requires_confirmation"
    RULE_ALLOWED = "rule_allowed"
    ALLOWLIST_UNMATCHED = "allowlist_unmatched"
    NO_RULES_CONFIGURED = "no_rules_configured"

    # Shell gate
    INVALID_COMMAND = "invalid_command"
    INVALID_CWD = "invalid_cwd"
    DENYLISTED = "denylisted"
    INTERNAL_NOT_ALLOWLISTED = "internal_not_allowlisted"
    INTERNAL_ALLOWED = "internal_allowed"
    INTERPOLATION_DISABLED = "interpolation_disabled"
    IMPLICIT_FORBIDDEN_OPERATORS = "implicit_forbidden_operators"
    IMPLICIT_NOT_ALLOWLISTED = "implicit_not_allowlisted"
    IMPLICIT_HIGH_RISK = "implicit_high_risk"
    IMPLICIT_ALLOWED = "implicit_allowed"
    HIGH_RISK = "high_risk"
    EXPLICIT_ALLOWED = "explicit_allowed"


class TrustLevel(str, Enum):
    """How much the origin of a shell command is trusted."""

    EXPLICIT = "explicit"
    IMPLICIT = "implicit"
    INTERNAL = "internal"


class ShellSource(str, Enum):
    """Where a shell command came from."""

    BASH = "bash"
    BG_BASH = "bg_bash"
    SHELL_INTERPOLATION = "shell-interpolation"
    CONTEXT_FORK = "context-fork"
    GIT_HELPER = "git-helper"


class ShellOutcome(str, Enum):
    """Terminal outcome recorded in the audit trail."""

    ALLOWED = "allowed"
    BLOCKED = "blocked"
    CONFIRMED = "confirmed"
    BYPASSED = "bypassed"
    EXECUTED = "executed"
    FAILED = "failed"


class ConfirmationKind(str, Enum):
    """Why a shell verdict needs confirmation."""

    HIGH_RISK = "high_risk"
    PERMISSION_RULE = "permission_rule"


# =============================================================================
# Rule Models
# =============================================================================


class ParsedRule(BaseModel):
    """
    A parsed `Tool(specifier)` permission rule.

    Attributes:
        tool: Canonical tool name (lowercase/snake_case)
        specifier: Content inside the parentheses, None for a bare tool
        raw: Trimmed rule text as written, for diagnostics
        source_path: Settings file the rule came from ("<cli>" for flags)
        source_scope: Tier of that settings file
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    tool: str = Field(..., min_length=1, description="Canonical tool name")
    specifier: str | None = Field(
        default=None,
        description="Content inside parens, None matches every invocation",
    )
    raw: str = Field(..., description="Original rule text")
    source_path: str | None = Field(default=None, description="Originating settings file")
    source_scope: Tier | None = Field(default=None, description="Originating tier")

    def with_source(self, path: str, scope: Tier) -> "ParsedRule":
        """Return a copy annotated with the settings file it came from."""
        return self.model_copy(update={"source_path": path, "source_scope": scope})


class PermissionConfig(BaseModel):
    """
    Rule lists for each action. Order inside each list is significant.

    Attributes:
        allow: Rules that permit an invocation
        deny: Rules that block an invocation
        ask: Rules that require confirmation
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allow: tuple[ParsedRule, ...] = Field(default_factory=tuple)
    deny: tuple[ParsedRule, ...] = Field(default_factory=tuple)
    ask: tuple[ParsedRule, ...] = Field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        """True when no list holds any rule."""
        return not (self.allow or self.deny or self.ask)

    @property
    def rule_count(self) -> int:
        return len(self.allow) + len(self.deny) + len(self.ask)


EMPTY_CONFIG = PermissionConfig()


class ExpansionVars(BaseModel):
    """Values for `{cwd}`, `{home}` and `{project}` in rule specifiers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    cwd: str
    home: str
    project: str


class PermissionSource(BaseModel):
    """One settings file (or the CLI flags) that contributed rules."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = Field(..., description="File path, or <cli> for flag-provided rules")
    tier: Tier
    config: PermissionConfig


class LoadedPermissions(BaseModel):
    """
    All permission rules in effect for a working directory.

    Attributes:
        merged: Concatenation of every source's rules, in tier order
        sources: The individual sources, kept for diagnostics
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    merged: PermissionConfig = Field(default_factory=PermissionConfig)
    sources: tuple[PermissionSource, ...] = Field(default_factory=tuple)


# =============================================================================
# Tool Input
# =============================================================================


class CommandInput(BaseModel):
    """Shell command text for bash/bg_bash."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["command"] = "command"
    value: str


class PathInput(BaseModel):
    """Filesystem path for read/write/edit/cd/ls/find/grep."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["path"] = "path"
    value: str


class UrlInput(BaseModel):
    """URL for web_fetch, matched with `domain:` specifiers."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["domain"] = "domain"
    value: str


class AgentInput(BaseModel):
    """Every agent name a subagent invocation would start."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["agent"] = "agent"
    agents: tuple[str, ...]

    @property
    def value(self) -> str:
        return self.agents[0]


class McpInput(BaseModel):
    """MCP tools are matched by their own name."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["mcp"] = "mcp"
    value: str


ToolInput = Annotated[
    Union[CommandInput, PathInput, UrlInput, AgentInput, McpInput],
    Field(discriminator="kind"),
]


# =============================================================================
# Verdict Models
# =============================================================================


class PermissionVerdict(BaseModel):
    """
    Result of evaluating a tool invocation against permission rules.

    `allowed` is False exactly when the action is deny or ask.

    Attributes:
        allowed: Whether the invocation may proceed without prompting
        action: Which evaluation step produced this verdict
        reason_code: Machine-readable reason
        reason_message: Short human-readable headline
        reason: Headline plus the (redacted) matched rule
        matched_rule: Raw text of the matching rule, redacted
        source_path: Settings file that defined the matching rule
        source_scope: Tier of that settings file
        remediation_hints: Up to a few actionable suggestions
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed: bool
    action: PermissionAction
    reason_code: ReasonCode
    reason_message: str
    reason: str
    matched_rule: str | None = None
    source_path: str | None = None
    source_scope: Tier | None = None
    remediation_hints: tuple[str, ...] = Field(default_factory=tuple)

    def raise_for_block(self, tool: str = "") -> None:
        """
        Raise PolicyDeniedError when this verdict blocks (deny or ask).

        Raises:
            PolicyDeniedError: If the action is deny or ask
        """
        if self.allowed:
            return
        error = PolicyDeniedError(
            tool=tool,
            reason=self.reason,
            reason_code=self.reason_code.value,
            rule=self.matched_rule,
            suggestion=self.remediation_hints[0] if self.remediation_hints else None,
        )
        if self.action == PermissionAction.ASK:
            error.code = ERROR_POLICY_CONFIRMATION_REQUIRED
        raise error


class ShellPolicyVerdict(BaseModel):
    """
    Result of running a command through the shell gate.

    Attributes:
        allowed: Whether the command may run (possibly after confirmation)
        requires_confirmation: Whether a user must confirm first
        trust_level: Trust level derived from the command source
        reason: Human-readable explanation (None for plain allows)
        reason_code: Machine-readable reason
        normalized_command: Trimmed command text that was evaluated
        confirmation_kind: What triggered the confirmation requirement
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed: bool
    requires_confirmation: bool = False
    trust_level: TrustLevel
    reason: str | None = None
    reason_code: ReasonCode
    normalized_command: str
    confirmation_kind: ConfirmationKind | None = None

    @classmethod
    def allow(
        cls,
        command: str,
        trust_level: TrustLevel,
        code: ReasonCode,
        reason: str | None = None,
    ) -> "ShellPolicyVerdict":
        """Create an ALLOW verdict."""
        return cls(
            allowed=True,
            trust_level=trust_level,
            reason=reason,
            reason_code=code,
            normalized_command=command,
        )

    @classmethod
    def block(
        cls,
        command: str,
        trust_level: TrustLevel,
        code: ReasonCode,
        reason: str,
    ) -> "ShellPolicyVerdict":
        """Create a BLOCK verdict."""
        return cls(
            allowed=False,
            trust_level=trust_level,
            reason=reason,
            reason_code=code,
            normalized_command=command,
        )

    @classmethod
    def confirm(
        cls,
        command: str,
        trust_level: TrustLevel,
        code: ReasonCode,
        reason: str,
        kind: ConfirmationKind,
    ) -> "ShellPolicyVerdict":
        """Create an ALLOW verdict that still needs user confirmation."""
        return cls(
            allowed=True,
            requires_confirmation=True,
            trust_level=trust_level,
            reason=reason,
            reason_code=code,
            normalized_command=command,
            confirmation_kind=kind,
        )

    def raise_for_block(self, source: str = "") -> None:
        """
        Raise PolicyDeniedError when the gate blocked this command.

        Raises:
            PolicyDeniedError: If the verdict is not allowed
        """
        if self.allowed:
            return
        raise PolicyDeniedError(
            tool=source,
            reason=self.reason or "Blocked by shell policy",
            reason_code=self.reason_code.value,
            context={"command": self.normalized_command},
        )


class EnforcementResult(BaseModel):
    """
    Final answer of an enforcement call, after any confirmation.

    Attributes:
        allowed: Whether the caller may proceed
        outcome: The outcome that was recorded in the audit trail
        reason: Why the call was blocked (or extra context when allowed)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    allowed: bool
    outcome: ShellOutcome
    reason: str | None = None

    @property
    def blocked(self) -> bool:
        return not self.allowed


# =============================================================================
# Audit Models
# =============================================================================


class ShellAuditEntry(BaseModel):
    """
    One recorded shell decision or execution outcome.

    Attributes:
        timestamp: When the entry was recorded (UTC)
        command: Normalized command text
        source: Where the command came from
        trust_level: Trust level of that source
        cwd: Working directory of the command
        outcome: Terminal outcome
        reason: Why, when the outcome needs explaining
        exit_code: Process exit code (executed/failed only)
        duration_ms: Execution time (executed/failed only)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    command: str
    source: str
    trust_level: TrustLevel
    cwd: str
    outcome: ShellOutcome
    reason: str | None = None
    exit_code: int | None = None
    duration_ms: float | None = Field(default=None, ge=0)
