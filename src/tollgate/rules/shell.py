"""
Lexical helpers for shell command text.

These do not parse shell grammar. They blank out quoted content, pull out
command substitutions, and split on control operators, which is enough to
decide which parts of a command line would actually execute.

Security Note:
    Quoted text is replaced with spaces rather than removed, so character
    offsets and word boundaries in the remaining text stay intact.
"""

import re

# Operators that delimit independent command segments. A lone `&` ends a
# background job; the `&` in redirections such as `2>&1`, `<&0` and `&>` does not.
SHELL_OPERATORS = re.compile(r"&&|\|\||\|&|(?<![&<>])&(?![&>])|[;\n|]")

# Grouping characters trimmed from segment edges: `{ cmd; }`, `(cmd)`.
LEADING_GROUPING = re.compile(r"^[({}\s]+")
TRAILING_GROUPING = re.compile(r"[)}\s]+$")

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

DOLLAR_PAREN = re.compile(r"\$\(([^)]*)\)")
BACKTICK = re.compile(r"`([^`]*)`")


def strip_control_chars(command: str) -> str:
    """Remove NUL and other control characters (tab, LF and CR are kept)."""
    return CONTROL_CHARS.sub("", command)


def _blank_quotes(command: str, quotes: str) -> str:
    active: str | None = None
    escaped = False
    output: list[str] = []

    for char in command:
        if active:
            # Backslash escapes only inside double quotes and backticks.
            if active != "'" and char == "\\" and not escaped:
                escaped = True
                output.append(" ")
                continue
            if char == active and not escaped:
                active = None
                output.append(" ")
                continue
            escaped = False
            output.append(" ")
            continue

        if char in quotes:
            active = char
            output.append(" ")
            continue

        output.append(char)

    return "".join(output)


def strip_quoted_content(command: str) -> str:
    """
    Replace single-, double- and backtick-quoted content with spaces.

    This keeps inert data like `grep -r "rm -rf" .` from looking like an
    executable segment. An unterminated quote blanks to end of input.
    """
    return _blank_quotes(command, "'\"`")


def strip_single_double_quotes(command: str) -> str:
    """Blank single- and double-quoted content, keeping backtick content visible."""
    return _blank_quotes(command, "'\"")


def extract_command_substitutions(command: str) -> tuple[str, list[str]]:
    """
    Pull `$(...)` and backtick bodies out of a command.

    Returns:
        Tuple of (main text with substitutions blanked, non-empty inner commands)
    """
    extracted: list[str] = []

    for match in DOLLAR_PAREN.finditer(command):
        inner = match.group(1).strip()
        if inner:
            extracted.append(inner)
    main = DOLLAR_PAREN.sub(" ", command)

    for match in BACKTICK.finditer(command):
        inner = match.group(1).strip()
        if inner:
            extracted.append(inner)
    main = BACKTICK.sub(" ", main)

    return main, extracted


def split_shell_segments(command: str) -> list[str]:
    """
    Split on `&&`, `||`, `;`, `|`, `|&`, a lone `&` and newlines into
    cleaned segments.

    Grouping characters at segment edges are removed; empty segments are
    dropped. Example: "npm test & rm -rf ~" -> ["npm test", "rm -rf ~"]
    """
    segments = []
    for piece in SHELL_OPERATORS.split(command):
        piece = LEADING_GROUPING.sub("", piece)
        piece = TRAILING_GROUPING.sub("", piece)
        piece = piece.strip()
        if piece:
            segments.append(piece)
    return segments
