"""
Parser for `Tool(specifier)` permission rules.

Grammar:
    Tool             every invocation of Tool
    Tool()           same as bare Tool
    Tool(specifier)  invocations whose input matches specifier

The specifier is everything between the first "(" and the last ")", so
specifiers may themselves contain parentheses (e.g. `Bash(echo $(pwd))`).
"""

from typing import Any

from tollgate.errors import (
    ERROR_RULE_EMPTY,
    ERROR_RULE_MISSING_TOOL,
    ERROR_RULE_UNCLOSED_PAREN,
    RuleParseError,
)
from tollgate.schema import ParsedRule

# Keys are lowercase for case-insensitive lookup.
TOOL_NAME_MAP: dict[str, str] = {
    "bash": "bash",
    "bg_bash": "bg_bash",
    "read": "read",
    "edit": "edit",
    "write": "write",
    "webfetch": "web_fetch",
    "web_fetch": "web_fetch",
    "task": "subagent",
    "subagent": "subagent",
    "cd": "cd",
    "ls": "ls",
    "find": "find",
    "grep": "grep",
}


def normalize_tool_name(name: str) -> str:
    """
    Map a tool name in any casing to its canonical form.

    Examples:
        "Bash" -> "bash"
        "WebFetch" -> "web_fetch"
        "Task" -> "subagent"
        "mcp__GitHub__Search" -> "mcp__github__search"
    """
    lowered = name.strip().lower()
    return TOOL_NAME_MAP.get(lowered, lowered)


def parse_rule(raw: Any) -> ParsedRule:
    """
    Parse a single rule string.

    Args:
        raw: Rule text such as "Bash(npm *)" or "Read"

    Returns:
        ParsedRule with a canonical tool name

    Raises:
        RuleParseError: If the rule is empty, has no tool name, or has an
            unmatched parenthesis
    """
    if not isinstance(raw, str) or not raw.strip():
        raise RuleParseError(problem="empty", code=ERROR_RULE_EMPTY)

    text = raw.strip()
    open_index = text.find("(")

    if open_index == -1:
        return ParsedRule(tool=normalize_tool_name(text), specifier=None, raw=text)

    if open_index == 0:
        raise RuleParseError(raw=text, problem="missing tool name", code=ERROR_RULE_MISSING_TOOL)

    close_index = text.rfind(")")
    if close_index <= open_index:
        raise RuleParseError(
            raw=text, problem="unclosed parenthesis", code=ERROR_RULE_UNCLOSED_PAREN
        )

    tool = text[:open_index].strip()
    if not tool:
        raise RuleParseError(raw=text, problem="missing tool name", code=ERROR_RULE_MISSING_TOOL)

    specifier = text[open_index + 1:close_index]
    return ParsedRule(
        tool=normalize_tool_name(tool),
        specifier=specifier or None,
        raw=text,
    )


def parse_rules(entries: Any, warnings: list[str]) -> list[ParsedRule]:
    """
    Parse a list of rule entries, skipping anything malformed.

    Never raises. Each skipped entry appends one message to `warnings`.

    Args:
        entries: Raw list from a settings file (any element type)
        warnings: List that receives one message per skipped entry

    Returns:
        The successfully parsed rules, in input order
    """
    rules: list[ParsedRule] = []
    for entry in entries:
        if not isinstance(entry, str):
            warnings.append(f"Skipping non-string permission rule: {entry!r}")
            continue
        try:
            rules.append(parse_rule(entry))
        except RuleParseError as e:
            warnings.append(e.message)
    return rules
