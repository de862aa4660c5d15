"""
Tollgate - Rule-based permission and shell-execution policy engine.

Tollgate sits between an agent and the tools it wants to call. Given a
requested invocation (run a shell command, read a path, fetch a URL, spawn
a sub-agent, call an MCP tool) it decides whether the call is allowed,
denied, or needs interactive confirmation, and records the decision.
It provides:
- `Tool(specifier)` permission rules layered across settings tiers
- Quote- and substitution-aware shell command matching
- A hardcoded denylist and high-risk classifier for shell commands
- A bounded in-memory audit trail of every shell decision

Example usage:
    $ tollgate rules
    $ tollgate test "Bash(git push --force)"
    $ tollgate check "rm -rf build" --interactive
"""

__version__ = "0.1.0"
__author__ = "Tollgate Contributors"

__all__ = [
    "__version__",
    "__author__",
]
