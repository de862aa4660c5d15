"""
Pytest configuration and fixtures for Tollgate tests.

This module provides shared fixtures used across unit and security tests.
Every test runs with a clean TOLLGATE_* environment and a private user
settings directory, so nothing on the developer's machine leaks in.
"""

import json
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from tollgate.config.flags import (
    ALLOW_UNSAFE_SHELL_ENV,
    ALLOWED_TOOLS_ENV,
    DISALLOWED_TOOLS_ENV,
    ENABLE_INTERPOLATION_ENV,
    HOME_ENV,
    LEGACY_INTERPOLATION_ENV,
)
from tollgate.config.loader import default_store
from tollgate.config.trust import PROJECT_TRUST_STATUS_ENV
from tollgate.policy.audit import clear_audit_trail

TOLLGATE_ENV_VARS = (
    HOME_ENV,
    ALLOWED_TOOLS_ENV,
    DISALLOWED_TOOLS_ENV,
    ENABLE_INTERPOLATION_ENV,
    LEGACY_INTERPOLATION_ENV,
    ALLOW_UNSAFE_SHELL_ENV,
    PROJECT_TRUST_STATUS_ENV,
)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def user_home(temp_dir: Path) -> Path:
    """User settings directory (TOLLGATE_HOME) for the current test."""
    home = temp_dir / "home"
    home.mkdir()
    return home


@pytest.fixture
def project_dir(temp_dir: Path) -> Path:
    """An empty project directory."""
    project = temp_dir / "project"
    project.mkdir()
    return project


@pytest.fixture(autouse=True)
def isolated_env(
    monkeypatch: pytest.MonkeyPatch, user_home: Path
) -> Generator[None, None, None]:
    """Clear Tollgate env vars, point TOLLGATE_HOME at a temp dir, reset globals."""
    for name in TOLLGATE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv(HOME_ENV, str(user_home))
    default_store.reset()
    clear_audit_trail()
    yield
    default_store.reset()
    clear_audit_trail()


@pytest.fixture
def trusted_project(monkeypatch: pytest.MonkeyPatch) -> None:
    """Mark the project under test as trusted."""
    monkeypatch.setenv(PROJECT_TRUST_STATUS_ENV, "trusted")


@pytest.fixture
def write_settings() -> Callable[..., Path]:
    """
    Return a helper that writes a settings file.

    Usage:
        write_settings(project_dir / ".tollgate" / "settings.json", deny=["Read(./.env)"])
    """

    def _write(path: Path, raw: Any = None, **permissions: list) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        data = raw if raw is not None else {"permissions": permissions}
        text = data if isinstance(data, str) else json.dumps(data)
        path.write_text(text, encoding="utf-8")
        return path

    return _write
