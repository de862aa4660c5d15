"""
Permission rule language for Tollgate.

This package turns `Tool(specifier)` strings into ParsedRule objects and
decides whether a specifier matches a concrete invocation value.

Key concepts:
    - Rules are parsed once and carry their origin (settings file + tier)
    - Specifiers are globs; paths, shell commands and domains each have
      their own matcher
    - Matchers are pure and fail closed
"""

from tollgate.rules.matchers import (
    glob_to_regex,
    match_bash_rule,
    match_domain_rule,
    match_mcp_rule,
    match_path_rule,
    match_subagent_rule,
    shell_glob_to_regex,
)
from tollgate.rules.parser import normalize_tool_name, parse_rule, parse_rules
from tollgate.rules.paths import (
    build_expansion_vars,
    canonicalize_path,
    expand_variables,
    resolve_path_specifier,
)
from tollgate.rules.shell import strip_quoted_content

__all__ = [
    "build_expansion_vars",
    "canonicalize_path",
    "expand_variables",
    "glob_to_regex",
    "match_bash_rule",
    "match_domain_rule",
    "match_mcp_rule",
    "match_path_rule",
    "match_subagent_rule",
    "normalize_tool_name",
    "parse_rule",
    "parse_rules",
    "resolve_path_specifier",
    "shell_glob_to_regex",
    "strip_quoted_content",
]
