"""
Environment flags and settings-file toggles.

Environment variables:
    TOLLGATE_HOME                         user settings directory (default ~/.tollgate)
    TOLLGATE_ALLOWED_TOOLS                JSON array of allow rules (CLI tier)
    TOLLGATE_DISALLOWED_TOOLS             JSON array of deny rules (CLI tier)
    TOLLGATE_ENABLE_SHELL_INTERPOLATION   "1" enables implicit shell commands
    TOLLGATE_SHELL_INTERPOLATION          legacy alias of the above
    TOLLGATE_ALLOW_UNSAFE_SHELL           "1" lets high-risk commands run
                                          without a prompt in non-interactive mode

Boolean flags are enabled only by the exact value "1".
"""

import json
import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from tollgate.config.trust import ProjectTrustStatus, get_project_trust_status

NAMESPACE_DIR = ".tollgate"
SETTINGS_FILE = "settings.json"

HOME_ENV = "TOLLGATE_HOME"
ALLOWED_TOOLS_ENV = "TOLLGATE_ALLOWED_TOOLS"
DISALLOWED_TOOLS_ENV = "TOLLGATE_DISALLOWED_TOOLS"
ENABLE_INTERPOLATION_ENV = "TOLLGATE_ENABLE_SHELL_INTERPOLATION"
LEGACY_INTERPOLATION_ENV = "TOLLGATE_SHELL_INTERPOLATION"
ALLOW_UNSAFE_SHELL_ENV = "TOLLGATE_ALLOW_UNSAFE_SHELL"


class EnvironmentFlags(BaseModel):
    """
    Snapshot of every environment variable Tollgate reads.

    Attributes:
        home: User settings directory
        allowed_tools: Raw JSON of CLI allow rules
        disallowed_tools: Raw JSON of CLI deny rules
        shell_interpolation: Interpolation forced on by environment
        allow_unsafe_shell: Non-interactive high-risk bypass
        trust_status: Project trust status
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    home: str
    allowed_tools: str | None = None
    disallowed_tools: str | None = None
    shell_interpolation: bool = False
    allow_unsafe_shell: bool = False
    trust_status: ProjectTrustStatus = Field(default=ProjectTrustStatus.UNTRUSTED)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EnvironmentFlags":
        """Read flags from `environ` (defaults to os.environ)."""
        env = os.environ if environ is None else environ
        return cls(
            home=get_settings_home(env),
            allowed_tools=env.get(ALLOWED_TOOLS_ENV) or None,
            disallowed_tools=env.get(DISALLOWED_TOOLS_ENV) or None,
            shell_interpolation=(
                env.get(ENABLE_INTERPOLATION_ENV) == "1"
                or env.get(LEGACY_INTERPOLATION_ENV) == "1"
            ),
            allow_unsafe_shell=env.get(ALLOW_UNSAFE_SHELL_ENV) == "1",
            trust_status=get_project_trust_status(env),
        )

    @property
    def project_trusted(self) -> bool:
        return self.trust_status == ProjectTrustStatus.TRUSTED


def get_settings_home(environ: Mapping[str, str] | None = None) -> str:
    """User settings directory: $TOLLGATE_HOME or ~/.tollgate."""
    env = os.environ if environ is None else environ
    override = env.get(HOME_ENV)
    if override:
        return override
    return str(Path.home() / NAMESPACE_DIR)


def read_shell_interpolation_setting(settings_path: str | Path) -> bool | None:
    """
    Read `shellInterpolation` from a settings file.

    Accepts `true`/`false` or `{"enabled": true/false}`. Returns None when
    the file is missing, unreadable, or does not set the key.
    """
    path = Path(settings_path)
    if not path.is_file():
        return None
    try:
        settings = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(settings, dict):
        return None

    value = settings.get("shellInterpolation")
    if isinstance(value, bool):
        return value
    if isinstance(value, dict) and isinstance(value.get("enabled"), bool):
        return value["enabled"]
    return None


def is_shell_interpolation_enabled(
    cwd: str,
    environ: Mapping[str, str] | None = None,
) -> bool:
    """
    Decide whether implicit shell commands may run at all.

    Environment flags win. Otherwise the project `.tollgate/settings.json`
    (trusted projects only) and then the user settings file are consulted;
    the first one that sets `shellInterpolation` decides. Default: off.
    """
    flags = EnvironmentFlags.from_env(environ)
    if flags.shell_interpolation:
        return True

    user_settings = Path(flags.home) / SETTINGS_FILE
    candidates = [user_settings]
    if flags.project_trusted:
        candidates.insert(0, Path(cwd) / NAMESPACE_DIR / SETTINGS_FILE)

    for candidate in candidates:
        value = read_shell_interpolation_setting(candidate)
        if value is not None:
            return value
    return False


def is_non_interactive_bypass_enabled(environ: Mapping[str, str] | None = None) -> bool:
    """True when TOLLGATE_ALLOW_UNSAFE_SHELL=1."""
    return EnvironmentFlags.from_env(environ).allow_unsafe_shell
