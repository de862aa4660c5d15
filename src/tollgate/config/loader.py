"""
Permission config loading and merging.

Rules are collected from up to six places, in this fixed order:

    1. CLI rules (flags / TOLLGATE_ALLOWED_TOOLS / TOLLGATE_DISALLOWED_TOOLS)  cli
    2. <cwd>/.tollgate/settings.local.json                                   project-local
    3. <cwd>/.claude/settings.local.json                                     project-local
    4. <cwd>/.tollgate/settings.json                                         project-shared
    5. <cwd>/.claude/settings.json                                           project-shared
    6. <home>/settings.json                                                  user

Files 2-5 are read only when the project is trusted. Within a tier the
native `.tollgate` file comes before the `.claude` file. Lists are
concatenated in this order; nothing overrides anything, so a deny from any
source blocks and the first matching rule in this order is the one
reported.

Loading never fails as a whole. Unreadable or malformed files are skipped
with a warning, and a malformed `allow`/`deny`/`ask` field skips only that
field.
"""

import json
import logging
import os
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from tollgate.config.flags import ALLOWED_TOOLS_ENV, DISALLOWED_TOOLS_ENV, EnvironmentFlags
from tollgate.errors import ERROR_CONFIG_FILE_NOT_FOUND, ERROR_CONFIG_INVALID_SHAPE, SettingsFileError
from tollgate.rules.parser import parse_rules
from tollgate.schema import (
    EMPTY_CONFIG,
    LoadedPermissions,
    ParsedRule,
    PermissionConfig,
    PermissionSource,
    Tier,
)

logger = logging.getLogger(__name__)

CLI_SOURCE = "<cli>"
NATIVE_DIR = ".tollgate"
LEGACY_DIR = ".claude"
RULE_FIELDS = ("allow", "deny", "ask")


# =============================================================================
# Settings Files
# =============================================================================


def read_permissions_from_file(path: str | Path, warnings: list[str]) -> dict[str, list] | None:
    """
    Read the `permissions` object of a JSON settings file.

    Args:
        path: settings.json or settings.local.json
        warnings: Receives a message for every problem found

    Returns:
        Dict holding the well-formed rule lists, or None when the file is
        missing, unparseable, or has no usable `permissions` key
    """
    path = Path(path)
    if not path.is_file():
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        warnings.append(f"Failed to parse {path}")
        return None

    if not isinstance(data, dict):
        return None

    if "permissions" not in data:
        return None
    permissions = data["permissions"]
    if not isinstance(permissions, dict):
        warnings.append(
            f"Invalid permissions in {path}: expected object, got {type(permissions).__name__}"
        )
        return None

    result: dict[str, list] = {}
    for field_name in RULE_FIELDS:
        if field_name not in permissions:
            continue
        value = permissions[field_name]
        if not isinstance(value, list):
            warnings.append(f"Invalid permissions.{field_name} in {path}: expected array")
            continue
        result[field_name] = value
    return result


def _annotate(rules: list[ParsedRule], path: str, tier: Tier) -> tuple[ParsedRule, ...]:
    return tuple(rule.with_source(path, tier) for rule in rules)


def parse_permissions_object(
    raw: Mapping[str, Any],
    warnings: list[str],
    source_path: str | None = None,
    tier: Tier | None = None,
) -> PermissionConfig:
    """
    Parse `{"allow": [...], "deny": [...], "ask": [...]}` into a config.

    When `source_path` and `tier` are given every rule is annotated with
    them.
    """
    lists: dict[str, tuple[ParsedRule, ...]] = {}
    for field_name in RULE_FIELDS:
        rules = parse_rules(raw.get(field_name) or [], warnings)
        if source_path is not None and tier is not None:
            lists[field_name] = _annotate(rules, source_path, tier)
        else:
            lists[field_name] = tuple(rules)
    return PermissionConfig(**lists)


def merge_permission_configs(*configs: PermissionConfig) -> PermissionConfig:
    """Concatenate rule lists, preserving argument order."""
    if not configs:
        return EMPTY_CONFIG
    return PermissionConfig(
        allow=tuple(rule for config in configs for rule in config.allow),
        deny=tuple(rule for config in configs for rule in config.deny),
        ask=tuple(rule for config in configs for rule in config.ask),
    )


def _annotate_cli(config: PermissionConfig) -> PermissionConfig:
    def fill(rules: tuple[ParsedRule, ...]) -> tuple[ParsedRule, ...]:
        return tuple(
            rule if rule.source_path else rule.with_source(CLI_SOURCE, Tier.CLI)
            for rule in rules
        )

    return PermissionConfig(allow=fill(config.allow), deny=fill(config.deny), ask=fill(config.ask))


def settings_file_candidates(cwd: str, home: str, trusted: bool) -> list[tuple[Path, Tier]]:
    """Settings files consulted for `cwd`, in precedence order."""
    candidates: list[tuple[Path, Tier]] = []
    if trusted:
        root = Path(cwd)
        candidates += [
            (root / NATIVE_DIR / "settings.local.json", Tier.PROJECT_LOCAL),
            (root / LEGACY_DIR / "settings.local.json", Tier.PROJECT_LOCAL),
            (root / NATIVE_DIR / "settings.json", Tier.PROJECT_SHARED),
            (root / LEGACY_DIR / "settings.json", Tier.PROJECT_SHARED),
        ]
    candidates.append((Path(home) / "settings.json", Tier.USER))
    return candidates


def load_permission_config(
    cwd: str,
    cli_config: PermissionConfig | None = None,
    environ: Mapping[str, str] | None = None,
) -> tuple[LoadedPermissions, list[str]]:
    """
    Load and merge permission rules for a working directory.

    Args:
        cwd: Working directory (project root for project settings)
        cli_config: Rules passed on the command line
        environ: Environment to read trust status and home from

    Returns:
        Tuple of (LoadedPermissions, warnings)
    """
    flags = EnvironmentFlags.from_env(environ)
    warnings: list[str] = []
    sources: list[PermissionSource] = []

    if cli_config is not None and not cli_config.is_empty:
        sources.append(
            PermissionSource(path=CLI_SOURCE, tier=Tier.CLI, config=_annotate_cli(cli_config))
        )

    for path, tier in settings_file_candidates(cwd, flags.home, flags.project_trusted):
        raw = read_permissions_from_file(path, warnings)
        if raw is None:
            continue
        config = parse_permissions_object(raw, warnings, str(path), tier)
        sources.append(PermissionSource(path=str(path), tier=tier, config=config))

    merged = merge_permission_configs(*(source.config for source in sources))
    return LoadedPermissions(merged=merged, sources=tuple(sources)), warnings


# =============================================================================
# CLI Rules
# =============================================================================


def _parse_json_rule_list(raw: str | None, env_name: str, warnings: list[str]) -> list:
    if not raw:
        return []
    try:
        entries = json.loads(raw)
    except json.JSONDecodeError:
        warnings.append(f"Failed to parse {env_name} env var")
        return []
    if not isinstance(entries, list):
        warnings.append(f"Invalid {env_name} env var: expected JSON array")
        return []
    return entries


def load_cli_config_from_env(
    environ: Mapping[str, str] | None = None,
    warnings: list[str] | None = None,
) -> PermissionConfig | None:
    """
    Build CLI-tier rules from TOLLGATE_ALLOWED_TOOLS / TOLLGATE_DISALLOWED_TOOLS.

    Returns:
        PermissionConfig, or None when neither variable yields a rule
    """
    flags = EnvironmentFlags.from_env(environ)
    if not flags.allowed_tools and not flags.disallowed_tools:
        return None

    warnings = warnings if warnings is not None else []
    allow_entries = _parse_json_rule_list(flags.allowed_tools, ALLOWED_TOOLS_ENV, warnings)
    deny_entries = _parse_json_rule_list(flags.disallowed_tools, DISALLOWED_TOOLS_ENV, warnings)

    allow = parse_rules(allow_entries, warnings)
    deny = parse_rules(deny_entries, warnings)
    if not allow and not deny:
        return None
    return PermissionConfig(allow=tuple(allow), deny=tuple(deny))


def build_cli_config(
    allow: list[str] | None = None,
    deny: list[str] | None = None,
    ask: list[str] | None = None,
    warnings: list[str] | None = None,
) -> PermissionConfig:
    """Parse rule strings given as command-line options."""
    warnings = warnings if warnings is not None else []
    return PermissionConfig(
        allow=tuple(parse_rules(allow or [], warnings)),
        deny=tuple(parse_rules(deny or [], warnings)),
        ask=tuple(parse_rules(ask or [], warnings)),
    )


def load_rules_file(path: Path | str) -> PermissionConfig:
    """
    Load CLI-tier rules from a YAML (or JSON) rules file.

    The file holds `allow`/`deny`/`ask` lists, either at the top level or
    under a `permissions` key. Unlike settings files, problems here are
    errors: the user named this file explicitly.

    Args:
        path: Path to the rules file

    Returns:
        PermissionConfig with every rule annotated with this file

    Raises:
        SettingsFileError: If the file is missing, unparseable, or contains
            malformed rules
    """
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise SettingsFileError(
            path=str(path),
            underlying_error=str(e),
            code=ERROR_CONFIG_FILE_NOT_FOUND,
            suggestion="Check the --rules path",
        ) from e
    except (OSError, yaml.YAMLError) as e:
        raise SettingsFileError(path=str(path), underlying_error=str(e)) from e

    if data is None:
        return EMPTY_CONFIG
    if isinstance(data, dict) and isinstance(data.get("permissions"), dict):
        data = data["permissions"]
    if not isinstance(data, dict):
        raise SettingsFileError(
            path=str(path),
            underlying_error="expected a mapping with allow/deny/ask lists",
            code=ERROR_CONFIG_INVALID_SHAPE,
        )

    problems: list[str] = []
    for field_name in RULE_FIELDS:
        if field_name in data and not isinstance(data[field_name], list):
            problems.append(f"{field_name} must be a list")
    if problems:
        raise SettingsFileError(
            path=str(path),
            underlying_error="; ".join(problems),
            code=ERROR_CONFIG_INVALID_SHAPE,
        )

    config = parse_permissions_object(data, problems, str(path), Tier.CLI)
    if problems:
        raise SettingsFileError(
            path=str(path),
            underlying_error="; ".join(problems),
            suggestion="Use the form Tool, Tool() or Tool(specifier)",
        )
    return config


# =============================================================================
# Cache
# =============================================================================


class PermissionStore:
    """
    Per-working-directory cache of loaded permissions.

    Rules are loaded lazily on first access for a cwd; a different cwd or
    an explicit reload() re-reads the files. CLI rules come from
    set_cli_config() or, failing that, from the environment.

    Usage:
        store = PermissionStore()
        loaded = store.get("/path/to/project")
        warnings = store.reload("/path/to/project")

    Attributes:
        environ: Environment to read flags from (None = os.environ)
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self.environ = environ
        self._lock = threading.Lock()
        self._cli_config: PermissionConfig | None = None
        self._cli_loaded = False
        self._cached: LoadedPermissions | None = None
        self._cached_cwd: str | None = None

    def set_cli_config(self, config: PermissionConfig | None) -> None:
        """Use these CLI rules instead of the environment; forces a reload."""
        with self._lock:
            self._cli_config = config
            self._cli_loaded = True
            self._cached = None
            self._cached_cwd = None

    def _ensure_cli_config(self) -> None:
        if self._cli_loaded:
            return
        warnings: list[str] = []
        self._cli_config = load_cli_config_from_env(self.environ, warnings)
        self._cli_loaded = True
        for warning in warnings:
            logger.warning("[permissions] %s", warning)

    def _load(self, cwd: str) -> tuple[LoadedPermissions, list[str]]:
        self._ensure_cli_config()
        loaded, warnings = load_permission_config(cwd, self._cli_config, self.environ)
        self._cached = loaded
        self._cached_cwd = cwd
        return loaded, warnings

    def get(self, cwd: str) -> LoadedPermissions:
        """Loaded permissions for `cwd`, from cache when possible."""
        cwd = os.path.normpath(cwd)
        with self._lock:
            if self._cached is not None and self._cached_cwd == cwd:
                return self._cached
            loaded, warnings = self._load(cwd)
        for warning in warnings:
            logger.warning("[permissions] %s", warning)
        return loaded

    def reload(self, cwd: str) -> list[str]:
        """Re-read every source for `cwd` and return the warnings."""
        cwd = os.path.normpath(cwd)
        with self._lock:
            _, warnings = self._load(cwd)
        return warnings

    def reset(self) -> None:
        """Forget cached rules and CLI rules. Intended for tests."""
        with self._lock:
            self._cli_config = None
            self._cli_loaded = False
            self._cached = None
            self._cached_cwd = None


default_store = PermissionStore()
