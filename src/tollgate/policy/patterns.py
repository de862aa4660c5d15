"""
Pattern tables for the shell gate.

Denylist and high-risk patterns only fire at a command boundary (start of
input, after a control operator, or after a newline) and are checked
against quote-blanked text, so `grep -r "rm -rf" .` is inert data while
`ls; rm -rf /` is not.

Security Note:
    The denylist cannot be overridden by permission rules or trust level.
"""

import re

from tollgate.rules.shell import strip_quoted_content

# Start of a command: beginning of input, after && || ; | &, or after a newline.
COMMAND_SEGMENT_PREFIX = r"(?:^|(?:&&|\|\||[;|&])\s*|\n\s*)"


def _at_boundary(body: str) -> re.Pattern[str]:
    return re.compile(COMMAND_SEGMENT_PREFIX + body, re.IGNORECASE)


ALWAYS_BLOCK_PATTERNS: tuple[re.Pattern[str], ...] = (
    # fork bomb
    _at_boundary(r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:"),
    # rm -rf / and rm -rf /*
    _at_boundary(r"rm\s+-\w*r\w*\s+/(?:\*|\s|$)"),
    _at_boundary(r"mkfs(?:\.\w+)?\b"),
    _at_boundary(r"dd\b[^\n]*\bof\s*=\s*/dev/(?:sd|hd|nvme|loop|disk)\w*"),
)

HIGH_RISK_PATTERNS: tuple[re.Pattern[str], ...] = (
    _at_boundary(r"rm\s+-\w*r\w*"),
    _at_boundary(r"sudo\b"),
    _at_boundary(r"curl\b[^\n|]*\|\s*(?:ba)?sh\b"),
    _at_boundary(r"wget\b[^\n|]*\|\s*(?:ba)?sh\b"),
    _at_boundary(r"chmod\s+-R\s+777\b"),
    _at_boundary(r"chown\s+-R\s+root\b"),
    _at_boundary(r"git\s+reset\s+--hard\b"),
    _at_boundary(r"git\s+clean\s+-f[dDxX]*\b"),
    _at_boundary(r"dd\s+if\s*="),
)

# Read-only commands allowed for implicit sources. Deliberately narrow.
IMPLICIT_ALLOWLIST: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^echo(\s|$)",
        r"^printf(\s|$)",
        r"^pwd(\s|$)",
        r"^ls(\s|$)",
        r"^cat(\s|$)",
        r"^head(\s|$)",
        r"^tail(\s|$)",
        r"^grep(\s|$)",
        r"^rg(\s|$)",
        r"^find(\s|$)",
        r"^git\s+(status|log|diff|show|rev-parse|branch|ls-files)(\s|$)",
        r"^which(\s|$)",
    )
)

IMPLICIT_FORBIDDEN_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"&&|\|\|"),
    re.compile(r"[;|<>]"),
    re.compile(r"\$\("),
    re.compile(r"`"),
)

INTERNAL_COMMAND_ALLOWLIST = frozenset({"git", "gh", "which"})


def is_denied(command: str) -> bool:
    """True when the command matches the unconditional denylist."""
    normalized = command.strip()
    if not normalized:
        return False
    text = strip_quoted_content(normalized)
    return any(pattern.search(text) for pattern in ALWAYS_BLOCK_PATTERNS)


def is_high_risk(command: str) -> bool:
    """True when the command needs confirmation from an explicit source."""
    normalized = command.strip()
    if not normalized:
        return False
    text = strip_quoted_content(normalized)
    return any(pattern.search(text) for pattern in HIGH_RISK_PATTERNS)


def has_forbidden_operators(command: str) -> bool:
    """True when the raw command uses chaining, redirection or substitution."""
    return any(pattern.search(command) for pattern in IMPLICIT_FORBIDDEN_PATTERNS)


def is_implicit_allowlisted(command: str) -> bool:
    return any(pattern.search(command) for pattern in IMPLICIT_ALLOWLIST)
