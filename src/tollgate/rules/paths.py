"""
Variable expansion and path resolution for permission specifiers.

Path specifiers follow gitignore-style anchoring:
    //abs/path     absolute from filesystem root
    ~/path         relative to the home directory
    ./path         relative to the working directory
    /path          relative to the directory of the settings file
    path           relative to the working directory

`{cwd}`, `{home}` and `{project}` are expanded literally before matching.

Security Note:
    Invocation paths are canonicalized (symlinks resolved when the target
    exists, ".." collapsed otherwise) before matching, so a rule on
    `/project/.env` also catches `./a/b/../../.env`.
"""

import os
import re
from pathlib import Path

from tollgate.schema import ExpansionVars

VARIABLE_PATTERN = re.compile(r"\{(cwd|home|project)\}")


def expand_variables(pattern: str, expansion: ExpansionVars) -> str:
    """
    Replace `{cwd}`, `{home}` and `{project}` in a pattern.

    Replacement is literal: values are not re-scanned, and unknown
    `{names}` are left untouched.
    """
    return VARIABLE_PATTERN.sub(lambda match: getattr(expansion, match.group(1)), pattern)


def resolve_path_specifier(
    specifier: str,
    settings_dir: str,
    expansion: ExpansionVars,
) -> str:
    """
    Turn a path specifier into an absolute glob pattern.

    The anchoring prefix is read from the specifier as written, before
    variable expansion.

    Args:
        specifier: Path specifier from a rule
        settings_dir: Directory of the settings file that defined the rule
        expansion: Variables for `{cwd}`, `{home}`, `{project}`

    Returns:
        Absolute glob pattern

    Examples:
        "//etc/passwd" -> "/etc/passwd"
        "/src/**/*.ts" (settings_dir=/project/.tollgate) -> "/project/.tollgate/src/**/*.ts"
        "*.env" (cwd=/project) -> "/project/*.env"
    """
    if specifier.startswith("//"):
        return expand_variables(specifier[1:], expansion)
    if specifier.startswith("~/"):
        return os.path.join(expansion.home, expand_variables(specifier[2:], expansion))
    if specifier.startswith("./"):
        return os.path.join(expansion.cwd, expand_variables(specifier[2:], expansion))
    if specifier.startswith("/"):
        return os.path.join(settings_dir, expand_variables(specifier[1:], expansion))

    expanded = expand_variables(specifier, expansion)
    if os.path.isabs(expanded):
        return expanded
    return os.path.join(expansion.cwd, expanded)


def canonicalize_path(path: str, cwd: str) -> str:
    """
    Resolve an invocation path to an absolute canonical form.

    When the path exists it is resolved the way the kernel would open it:
    symlinks first, then "..". Otherwise the path is normalized lexically.

    Examples:
        "./src//index.ts" (cwd=/project) -> "/project/src/index.ts"
        "./a/b/../../.env" (cwd=/project) -> "/project/.env"
        "link/../key.pem" (link -> /secret/sub) -> "/secret/key.pem"
    """
    absolute = os.path.join(cwd, os.path.expanduser(path))
    if os.path.exists(absolute):
        return os.path.realpath(absolute)
    return os.path.normpath(absolute)


def find_project_root(cwd: str) -> str:
    """Return the nearest ancestor of cwd holding a `.git` entry, or cwd itself."""
    start = Path(cwd)
    for candidate in (start, *start.parents):
        if (candidate / ".git").exists():
            return str(candidate)
    return cwd


def build_expansion_vars(cwd: str, home: str | None = None) -> ExpansionVars:
    """
    Build expansion variables for a working directory.

    Args:
        cwd: Working directory of the invocation
        home: Home directory override (defaults to the user's home)
    """
    return ExpansionVars(
        cwd=cwd,
        home=home or str(Path.home()),
        project=find_project_root(cwd),
    )
