"""
Policy enforcement for Tollgate.

This package decides what an agent may do: the permission evaluator for
`Tool(specifier)` rules, the shell gate for commands, the guard for other
tool calls, and the audit trail that records every decision.

The policy layer must be:
    - Fail-closed: ambiguity blocks, confirmation failures block
    - Predictable: same inputs and rules always give the same verdict
    - Auditable: every terminal shell outcome is recorded
"""

from tollgate.policy.audit import AuditTrail, clear_audit_trail, get_audit_trail
from tollgate.policy.engine import PermissionEngine, evaluate
from tollgate.policy.gate import ShellPolicyGate, clamp_timeout, get_trust_level
from tollgate.policy.guard import ToolPermissionGuard
from tollgate.policy.patterns import is_denied, is_high_risk
from tollgate.policy.redaction import format_permission_reason, redact_sensitive_text

__all__ = [
    "AuditTrail",
    "PermissionEngine",
    "ShellPolicyGate",
    "ToolPermissionGuard",
    "clamp_timeout",
    "clear_audit_trail",
    "evaluate",
    "format_permission_reason",
    "get_audit_trail",
    "get_trust_level",
    "is_denied",
    "is_high_risk",
    "redact_sensitive_text",
]
