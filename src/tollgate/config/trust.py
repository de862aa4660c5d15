"""
Project trust status.

Whoever launches Tollgate decides whether the current project is trusted
and passes the answer in TOLLGATE_PROJECT_TRUST_STATUS. Project-scoped
settings (permission rules, the shell interpolation toggle) are honored
only when the status is exactly "trusted". Missing or unknown values fail
closed to "untrusted".
"""

import os
from collections.abc import Mapping
from enum import Enum

PROJECT_TRUST_STATUS_ENV = "TOLLGATE_PROJECT_TRUST_STATUS"


class ProjectTrustStatus(str, Enum):
    """Trust states reported for the project in the working directory."""

    TRUSTED = "trusted"
    UNTRUSTED = "untrusted"
    STALE_FINGERPRINT = "stale_fingerprint"


def get_project_trust_status(environ: Mapping[str, str] | None = None) -> ProjectTrustStatus:
    """Read the trust status from the environment, failing closed."""
    env = os.environ if environ is None else environ
    raw = env.get(PROJECT_TRUST_STATUS_ENV, "")
    try:
        return ProjectTrustStatus(raw)
    except ValueError:
        return ProjectTrustStatus.UNTRUSTED


def is_project_trusted(environ: Mapping[str, str] | None = None) -> bool:
    """True only when project settings may be loaded."""
    return get_project_trust_status(environ) == ProjectTrustStatus.TRUSTED
