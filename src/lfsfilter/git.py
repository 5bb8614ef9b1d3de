"""Git integration for lfsfilter.

Registers the driver as a git filter (``filter.<name>.clean`` /
``filter.<name>.smudge``) and discovers repository roots, so that git's own
clean/smudge hook calls ``lfsfilter clean -- <path>`` during checkout and
commit.

Design follows Function Core / Imperative Shell:
- Pure functions: filter_config_entries, _validate_filter_name
- Subprocess wrapper: _run_git (thin, never raises on non-zero; uses GitResult)
- Imperative shell: discover_repo_root, install_filter, uninstall_filter
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path

from lfsfilter.errors import ConfigurationError, RepoDiscoveryError
from lfsfilter.subprocess_result import GitResult

SUBPROCESS_TIMEOUT_SECONDS = 30
DEFAULT_FILTER_NAME = "lfs"
DEFAULT_FILTER_COMMAND = "lfsfilter"

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Pure functions
# ---------------------------------------------------------------------------

_FILTER_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


def _validate_filter_name(name: str) -> None:
    """Reject filter names git would not accept as a config subsection key.

    Raises:
        ValueError: If the name is empty or contains unsafe characters.
    """
    if not name:
        msg = "filter name must not be empty"
        raise ValueError(msg)
    if not _FILTER_NAME_PATTERN.match(name):
        msg = (
            f"Invalid filter name {name!r}: must start with an alphanumeric character "
            "and contain only alphanumerics, hyphens, and underscores."
        )
        raise ValueError(msg)


def filter_config_entries(
    name: str = DEFAULT_FILTER_NAME,
    command: str = DEFAULT_FILTER_COMMAND,
) -> dict[str, str]:
    """Compute the git config entries that route *name* through *command*.

    ``%f`` is expanded by git to the path of the file being filtered.
    """
    _validate_filter_name(name)
    return {
        f"filter.{name}.clean": f"{command} clean -- %f",
        f"filter.{name}.smudge": f"{command} smudge -- %f",
        f"filter.{name}.required": "true",
    }


# ---------------------------------------------------------------------------
# Subprocess wrapper
# ---------------------------------------------------------------------------


def _run_git(*args: str, cwd: Path) -> GitResult:
    """Execute ``git <args>`` and return the result.

    Does **not** raise on non-zero exit codes — callers decide what constitutes
    an error.
    """
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        timeout=SUBPROCESS_TIMEOUT_SECONDS,
    )
    return GitResult(
        returncode=result.returncode,
        stdout=result.stdout.strip(),
        stderr=result.stderr.strip(),
    )


# ---------------------------------------------------------------------------
# Imperative shell
# ---------------------------------------------------------------------------


def discover_repo_root(path: Path | None = None) -> Path:
    """Discover the git repository root.

    Args:
        path: Directory to start searching from. Defaults to the current
            working directory.

    Returns:
        Absolute path to the repository root.

    Raises:
        RepoDiscoveryError: If the path is not inside a git repository.
    """
    cwd = path or Path.cwd()
    result = _run_git("rev-parse", "--show-toplevel", cwd=cwd)
    if not result.ok:
        msg = f"Not a git repository (or any parent up to mount point): {cwd}"
        raise RepoDiscoveryError(msg)
    return Path(result.stdout)


def install_filter(
    repo_root: Path,
    name: str = DEFAULT_FILTER_NAME,
    command: str = DEFAULT_FILTER_COMMAND,
) -> dict[str, str]:
    """Write the filter driver entries into the repository's local config.

    Returns:
        The entries that were written.

    Raises:
        ConfigurationError: If ``git config`` fails.
    """
    entries = filter_config_entries(name, command)
    for key, value in entries.items():
        result = _run_git("config", "--local", key, value, cwd=repo_root)
        if not result.ok:
            msg = f"Failed to set {key} in {repo_root}: {result.stderr}"
            raise ConfigurationError(msg)

    logger.info("Installed filter %r in %s", name, repo_root)
    return entries


def uninstall_filter(repo_root: Path, name: str = DEFAULT_FILTER_NAME) -> bool:
    """Remove the ``filter.<name>`` section from the repository's local config.

    Returns:
        True if a section was removed, False if none existed.

    Raises:
        ConfigurationError: If ``git config`` fails for another reason.
    """
    _validate_filter_name(name)
    result = _run_git("config", "--local", "--remove-section", f"filter.{name}", cwd=repo_root)
    if result.ok:
        logger.info("Removed filter %r from %s", name, repo_root)
        return True
    if "no such section" in result.stderr.lower():
        return False

    msg = f"Failed to remove filter.{name} from {repo_root}: {result.stderr}"
    raise ConfigurationError(msg)
