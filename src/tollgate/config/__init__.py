"""
Configuration for Tollgate.

Permission rules come from settings files and command-line flags; a few
behaviors are toggled by environment variables. Nothing in this package
raises on bad input except the explicit rules-file loader.

Key concepts:
    - Tiers: cli, project-local, project-shared, user (concatenated, never overridden)
    - Project trust: project settings are ignored unless the project is trusted
    - PermissionStore: per-cwd cache with explicit reload/reset
"""

from tollgate.config.flags import (
    EnvironmentFlags,
    is_non_interactive_bypass_enabled,
    is_shell_interpolation_enabled,
)
from tollgate.config.loader import (
    PermissionStore,
    default_store,
    load_permission_config,
    load_rules_file,
    merge_permission_configs,
)
from tollgate.config.trust import ProjectTrustStatus, get_project_trust_status, is_project_trusted

__all__ = [
    "EnvironmentFlags",
    "PermissionStore",
    "ProjectTrustStatus",
    "default_store",
    "get_project_trust_status",
    "is_non_interactive_bypass_enabled",
    "is_project_trusted",
    "is_shell_interpolation_enabled",
    "load_permission_config",
    "load_rules_file",
    "merge_permission_configs",
]
