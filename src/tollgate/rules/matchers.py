"""
Rule specifier matchers.

Each matcher is a pure predicate over (invocation value, specifier). All of
them fail closed: input that cannot be interpreted does not match an allow
rule.

Glob flavors:
    Path glob   `*` stays within one path segment, `**` crosses segments,
                `**/` matches zero or more leading segments, `?` is one
                non-separator character. Used for paths, MCP tool names
                and subagent names.
    Shell glob  `*` matches anything including spaces and `/`, `?` is one
                character. Used for command segments.

Both translators emit only linear constructs, so compiled patterns cannot
backtrack catastrophically.
"""

import re
from functools import lru_cache
from urllib.parse import urlsplit

from tollgate.rules.shell import (
    extract_command_substitutions,
    split_shell_segments,
    strip_control_chars,
    strip_quoted_content,
    strip_single_double_quotes,
)
from tollgate.schema import RuleMode

REGEX_SPECIAL = set("\\^$.|+()[]{}")

DOMAIN_PREFIX = "domain:"


# =============================================================================
# Glob Translation
# =============================================================================


@lru_cache(maxsize=512)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """
    Compile a path glob into an anchored regular expression.

    Examples:
        "/src/**/*.ts" matches "/src/index.ts" and "/src/a/b/index.ts"
        "/src/*.ts" does not match "/src/a/index.ts"
    """
    result: list[str] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "*":
            if pattern[i + 1:i + 2] == "*":
                if pattern[i + 2:i + 3] == "/":
                    result.append("(?:.*/)?")
                    i += 3
                else:
                    result.append(".*")
                    i += 2
            else:
                result.append("[^/]*")
                i += 1
        elif char == "?":
            result.append("[^/]")
            i += 1
        elif char in REGEX_SPECIAL:
            result.append("\\" + char)
            i += 1
        else:
            result.append(char)
            i += 1
    return re.compile("^" + "".join(result) + r"\Z")


@lru_cache(maxsize=512)
def shell_glob_to_regex(pattern: str) -> re.Pattern[str]:
    """
    Compile a shell command glob into an anchored regular expression.

    Runs of `*` collapse into a single `.*`.
    """
    result: list[str] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "*":
            result.append(".*")
            while pattern[i + 1:i + 2] == "*":
                i += 1
        elif char == "?":
            result.append(".")
        elif char in REGEX_SPECIAL:
            result.append("\\" + char)
        else:
            result.append(char)
        i += 1
    return re.compile("^" + "".join(result) + r"\Z", re.DOTALL)


# =============================================================================
# Matchers
# =============================================================================


def match_path_rule(path: str, resolved_pattern: str) -> bool:
    """Match a canonical absolute path against an absolute glob pattern."""
    return glob_to_regex(resolved_pattern).match(path) is not None


def _match_segment(segment: str, specifier: str) -> bool:
    return shell_glob_to_regex(specifier).match(segment) is not None


def match_bash_rule(command: str, specifier: str, mode: RuleMode | str) -> bool:
    """
    Match a shell command against a shell-glob specifier.

    Allow rules need every executable segment to match, and any `$(`
    left after quote stripping fails the match. Deny and ask rules trigger
    when any segment matches, including the bodies of `$(...)` and
    backtick substitutions.

    Args:
        command: Raw command text
        specifier: Shell glob such as "npm *" or "git commit *"
        mode: Which rule list the specifier belongs to

    Returns:
        True when the command matches under the mode's semantics
    """
    cleaned = strip_control_chars(command.strip())

    if RuleMode(mode) == RuleMode.ALLOW:
        unquoted = strip_quoted_content(cleaned)
        if "$(" in unquoted:
            return False
        segments = split_shell_segments(unquoted)
        if not segments:
            return False
        return all(_match_segment(segment, specifier) for segment in segments)

    unquoted = strip_single_double_quotes(cleaned)
    main, extracted = extract_command_substitutions(unquoted)
    segments = split_shell_segments(main) + extracted
    return any(_match_segment(segment, specifier) for segment in segments)


def extract_hostname(url: str) -> str | None:
    """Return the lowercase hostname of a URL (scheme optional), or None."""
    normalized = url if "://" in url else f"https://{url}"
    try:
        hostname = urlsplit(normalized).hostname
    except ValueError:
        return None
    return hostname or None


def match_domain_rule(url: str, specifier: str) -> bool:
    """
    Match a URL against a `domain:<host>` specifier.

    `domain:*.example.com` matches proper subdomains only; the bare
    `example.com` needs its own rule. Scheme, port and path are ignored.

    Examples:
        ("https://api.example.com:8443/v1", "domain:*.example.com") -> True
        ("https://example.com", "domain:*.example.com") -> False
        ("not-a-url", "domain:example.com") -> False
    """
    if not specifier.startswith(DOMAIN_PREFIX):
        return False
    pattern = specifier[len(DOMAIN_PREFIX):].strip().lower()
    if not pattern:
        return False

    hostname = extract_hostname(url)
    if hostname is None:
        return False

    if pattern.startswith("*."):
        return hostname.endswith("." + pattern[2:])
    return hostname == pattern


def match_mcp_rule(tool_name: str, pattern: str) -> bool:
    """Match an MCP tool name such as `mcp__github__search` against a glob."""
    return glob_to_regex(pattern).match(tool_name) is not None


def match_subagent_rule(agent_name: str, specifier: str) -> bool:
    """Match a subagent name (case-sensitive) against a glob."""
    return glob_to_regex(specifier).match(agent_name) is not None
