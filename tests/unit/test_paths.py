"""
Unit tests for variable expansion and path specifier resolution.
"""

import os
from pathlib import Path

from tollgate.rules.paths import (
    build_expansion_vars,
    canonicalize_path,
    expand_variables,
    find_project_root,
    resolve_path_specifier,
)
from tollgate.schema import ExpansionVars

EXPANSION = ExpansionVars(cwd="/work/app", home="/home/dev", project="/work")
SETTINGS_DIR = "/work/app/.tollgate"


class TestExpandVariables:
    """Tests for {cwd}/{home}/{project} expansion."""

    def test_all_variables(self) -> None:
        """Each known variable is replaced."""
        assert expand_variables("{cwd}:{home}:{project}", EXPANSION) == "/work/app:/home/dev:/work"

    def test_repeated_variable(self) -> None:
        """Every occurrence is replaced."""
        assert expand_variables("{cwd}/{cwd}", EXPANSION) == "/work/app//work/app"

    def test_unknown_variable_untouched(self) -> None:
        """Unknown names stay as written."""
        assert expand_variables("{user}/x", EXPANSION) == "{user}/x"

    def test_values_not_rescanned(self) -> None:
        """A value containing a variable name is not expanded again."""
        expansion = ExpansionVars(cwd="{home}", home="/home/dev", project="/p")
        assert expand_variables("{cwd}", expansion) == "{home}"


class TestResolvePathSpecifier:
    """Tests for gitignore-style anchoring."""

    def test_double_slash_is_absolute(self) -> None:
        """// anchors at the filesystem root."""
        assert resolve_path_specifier("//etc/passwd", SETTINGS_DIR, EXPANSION) == "/etc/passwd"

    def test_tilde_is_home(self) -> None:
        """~/ anchors at the home directory."""
        assert resolve_path_specifier("~/.ssh/**", SETTINGS_DIR, EXPANSION) == "/home/dev/.ssh/**"

    def test_dot_slash_is_cwd(self) -> None:
        """./ anchors at the working directory."""
        assert resolve_path_specifier("./.env", SETTINGS_DIR, EXPANSION) == "/work/app/.env"

    def test_single_slash_is_settings_dir(self) -> None:
        """/ anchors at the directory of the settings file."""
        result = resolve_path_specifier("/src/**/*.ts", SETTINGS_DIR, EXPANSION)
        assert result == "/work/app/.tollgate/src/**/*.ts"

    def test_bare_is_cwd_relative(self) -> None:
        """A bare relative path anchors at the working directory."""
        assert resolve_path_specifier("*.env", SETTINGS_DIR, EXPANSION) == "/work/app/*.env"

    def test_variable_expanding_to_absolute(self) -> None:
        """A leading variable that expands to an absolute path is used as is."""
        result = resolve_path_specifier("{project}/secrets/**", SETTINGS_DIR, EXPANSION)
        assert result == "/work/secrets/**"

    def test_anchor_read_before_expansion(self) -> None:
        """{home} at the start is not mistaken for a settings-relative path."""
        result = resolve_path_specifier("{home}/.aws/**", SETTINGS_DIR, EXPANSION)
        assert result == "/home/dev/.aws/**"


class TestCanonicalizePath:
    """Tests for invocation path canonicalization."""

    def test_relative_joined_with_cwd(self) -> None:
        """Relative paths are made absolute against cwd."""
        assert canonicalize_path("src/index.ts", "/nonexistent/app") == "/nonexistent/app/src/index.ts"

    def test_dot_dot_collapsed(self) -> None:
        """Traversal segments are collapsed."""
        assert canonicalize_path("./a/b/../../.env", "/nonexistent/app") == "/nonexistent/app/.env"

    def test_duplicate_slashes_collapsed(self) -> None:
        """Duplicate separators are collapsed."""
        assert canonicalize_path("./src//index.ts", "/nonexistent/app") == "/nonexistent/app/src/index.ts"

    def test_absolute_kept(self) -> None:
        """Absolute paths ignore cwd."""
        assert canonicalize_path("/nonexistent/other/file", "/nonexistent/app") == "/nonexistent/other/file"

    def test_symlink_resolved(self, temp_dir: Path) -> None:
        """Existing symlinks are resolved to their target."""
        target = temp_dir / "real.env"
        target.write_text("SECRET=1")
        link = temp_dir / "link.env"
        os.symlink(target, link)

        assert canonicalize_path("link.env", str(temp_dir)) == str(target)

    def test_dot_dot_after_symlink_follows_target(self, temp_dir: Path) -> None:
        """`..` after a symlinked directory climbs from the link target."""
        secret = temp_dir / "secret"
        (secret / "sub").mkdir(parents=True)
        (secret / "key.pem").write_text("KEY")
        project = temp_dir / "project"
        project.mkdir()
        os.symlink(secret / "sub", project / "link")

        assert canonicalize_path("link/../key.pem", str(project)) == str(secret / "key.pem")


class TestProjectRoot:
    """Tests for project root discovery."""

    def test_finds_git_ancestor(self, temp_dir: Path) -> None:
        """The nearest ancestor holding .git is the project root."""
        (temp_dir / ".git").mkdir()
        nested = temp_dir / "a" / "b"
        nested.mkdir(parents=True)

        assert find_project_root(str(nested)) == str(temp_dir)

    def test_falls_back_to_cwd(self, project_dir: Path) -> None:
        """Without a .git ancestor the cwd itself is the project root."""
        result = find_project_root(str(project_dir))
        # An enclosing checkout (e.g. the test runner's) may also qualify.
        assert result == str(project_dir) or (Path(result) / ".git").exists()

    def test_build_expansion_vars(self, temp_dir: Path) -> None:
        """Expansion variables use the given home override."""
        (temp_dir / ".git").mkdir()
        expansion = build_expansion_vars(str(temp_dir), home="/home/dev")

        assert expansion.cwd == str(temp_dir)
        assert expansion.home == "/home/dev"
        assert expansion.project == str(temp_dir)
