"""
Exception hierarchy for Tollgate.

All Tollgate exceptions inherit from TollgateError, allowing callers to catch
all Tollgate-specific exceptions with a single except clause.

Exception Categories:
    - RuleParseError: A permission rule string is malformed
    - SettingsFileError: A rules/settings file cannot be read or parsed
    - PolicyDeniedError: A tool call or shell command was blocked
    - ConfirmationError: The confirmation step failed or was interrupted

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (rule, path, command where applicable)
    - All errors provide actionable suggestions where possible
    - The evaluators themselves never raise; these errors surface at the
      edges (rule parsing, strict file loading, opt-in enforcement helpers)
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Rule errors: 1xxx
ERROR_RULE_EMPTY = 1001
ERROR_RULE_MISSING_TOOL = 1002
ERROR_RULE_UNCLOSED_PAREN = 1003

# Config errors: 2xxx
ERROR_CONFIG_FILE_NOT_FOUND = 2001
ERROR_CONFIG_PARSE_FAILED = 2002
ERROR_CONFIG_INVALID_SHAPE = 2003

# Policy errors: 3xxx
ERROR_POLICY_DENIED = 3001
ERROR_POLICY_RULE_DENIED = 3002
ERROR_POLICY_CONFIRMATION_REQUIRED = 3003

# Confirmation errors: 4xxx
ERROR_CONFIRMATION_INTERRUPTED = 4001
ERROR_CONFIRMATION_CANCELED = 4002


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class TollgateError(Exception):
    """
    Base exception for all Tollgate errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Rule Errors
# =============================================================================


@dataclass
class RuleParseError(TollgateError):
    """
    Raised when a permission rule string cannot be parsed.

    The message always starts with "Invalid permission rule" so the
    tolerant loaders can surface it verbatim as a warning.

    Attributes:
        raw: The rule text as it was supplied
        problem: Short description of what is wrong
    """

    raw: str = ""
    problem: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            if self.raw:
                self.message = f'Invalid permission rule "{self.raw}": {self.problem}'
            else:
                self.message = f"Invalid permission rule: {self.problem}"
        if self.code == 0:
            self.code = ERROR_RULE_EMPTY
        if not self.suggestion:
            self.suggestion = "Use the form Tool, Tool() or Tool(specifier)"
        self.context.update({
            "raw": self.raw,
            "problem": self.problem,
        })


# =============================================================================
# Config Errors
# =============================================================================


@dataclass
class ConfigError(TollgateError):
    """
    Base class for configuration errors.

    Attributes:
        path: The file that caused the error
    """

    path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["path"] = self.path


@dataclass
class SettingsFileError(ConfigError):
    """Raised when a rules file is missing, unparseable or has the wrong shape."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to load rules from {self.path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG_PARSE_FAILED
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


# =============================================================================
# Policy Errors
# =============================================================================


@dataclass
class PolicyDeniedError(TollgateError):
    """
    Raised by opt-in enforcement helpers when an action is blocked.

    The evaluators return verdicts; callers that prefer exceptions use
    `PermissionVerdict.raise_for_block()` or
    `ShellPolicyVerdict.raise_for_block()` to get one of these.

    Attributes:
        tool: Tool (or shell source) that was blocked
        reason: Why the action was blocked (already redacted)
        reason_code: Machine-readable reason code from the verdict
        rule: The matched permission rule, if any
    """

    tool: str = ""
    reason: str = ""
    reason_code: str | None = None
    rule: str | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Blocked {self.tool}: {self.reason}"
        if self.code == 0:
            self.code = ERROR_POLICY_RULE_DENIED if self.rule else ERROR_POLICY_DENIED
        self.context.update({
            "tool": self.tool,
            "reason": self.reason,
            "reason_code": self.reason_code,
            "rule": self.rule,
        })


# =============================================================================
# Confirmation Errors
# =============================================================================


@dataclass
class ConfirmationError(TollgateError):
    """
    Describes a confirmation step that did not produce an answer.

    The gate does not let this escape; it is used to build the block
    reason recorded in the audit trail.

    Attributes:
        command: The command awaiting confirmation
        underlying_error: Text of the exception raised by the callback
        canceled: True when the prompt was canceled rather than failing
    """

    command: str = ""
    underlying_error: str = ""
    canceled: bool = False

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            if self.canceled:
                self.message = "Confirmation was canceled"
            elif self.underlying_error:
                self.message = f"Confirmation interrupted: {self.underlying_error}"
            else:
                self.message = "Confirmation interrupted"
        if self.code == 0:
            self.code = (
                ERROR_CONFIRMATION_CANCELED if self.canceled else ERROR_CONFIRMATION_INTERRUPTED
            )
        self.context.update({
            "command": self.command,
            "underlying_error": self.underlying_error,
        })
