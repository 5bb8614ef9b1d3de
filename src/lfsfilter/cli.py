"""CLI entry point for lfsfilter.

Provides ``lfsfilter clean``, ``lfsfilter smudge``, ``lfsfilter install``,
``lfsfilter uninstall`` and ``lfsfilter worker`` subcommands. ``clean`` and
``smudge`` are what git runs through ``filter.<name>.clean/smudge``: content
arrives on stdin and the filtered content is written to stdout, so logging
and error messages go to stderr only.

Follows Function Core / Imperative Shell:
- Pure functions: exit_code_for, format_install_result
- Imperative shell: configure_logging, _resolve_repo_root, _run_filter
- Click commands: main, clean, smudge, install, uninstall, worker
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from lfsfilter.config import load_settings
from lfsfilter.errors import (
    ConfigurationError,
    FilterError,
    RepoDiscoveryError,
    ToolNotInstalledError,
)
from lfsfilter.filter import LfsFilter
from lfsfilter.git import (
    DEFAULT_FILTER_COMMAND,
    DEFAULT_FILTER_NAME,
    discover_repo_root,
    install_filter,
    uninstall_filter,
)
from lfsfilter.models import FilterInvocation, FilterMode

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INFRASTRUCTURE_ERROR = 3

DEFAULT_TEMPORAL_ADDRESS = "localhost:7233"

_LOG_FORMAT = "lfsfilter: %(levelname)s %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Pure functions
# ---------------------------------------------------------------------------


def exit_code_for(error: FilterError) -> int:
    """Map a filter failure to the process exit code.

    A missing tool or bad configuration is an environment problem; anything
    else is a failure of this particular file.
    """
    if isinstance(error, (ToolNotInstalledError, ConfigurationError, RepoDiscoveryError)):
        return EXIT_INFRASTRUCTURE_ERROR
    return EXIT_FAILURE


def format_install_result(entries: dict[str, str]) -> str:
    """Format written git config entries as ``key = value`` lines."""
    return "\n".join(f"{key} = {value}" for key, value in entries.items())


# ---------------------------------------------------------------------------
# Imperative shell
# ---------------------------------------------------------------------------


def configure_logging(verbose: bool) -> None:
    """Send log records to stderr; stdout carries filtered content."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=_LOG_FORMAT,
        stream=sys.stderr,
    )


def _resolve_repo_root(repo_root: str | None) -> Path:
    if repo_root:
        return Path(repo_root)
    try:
        return discover_repo_root()
    except RepoDiscoveryError:
        # git runs filters from the worktree top.
        return Path.cwd()


def _run_filter(
    mode: FilterMode,
    path: str,
    repo_root: str | None,
    tool: str | None,
    verbose: bool,
) -> None:
    configure_logging(verbose)
    try:
        invocation = FilterInvocation(path=path, repo_root=_resolve_repo_root(repo_root), mode=mode)
    except ValidationError as e:
        msg = "must be a non-empty path relative to the repository root"
        raise click.BadParameter(msg, param_hint="PATH") from e

    try:
        settings = load_settings()
        if tool:
            settings = settings.model_copy(update={"tool": tool, "tool_path": None})
        source = click.get_binary_stream("stdin")
        sink = click.get_binary_stream("stdout")
        asyncio.run(LfsFilter(settings).run(invocation, source, sink))
    except FilterError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(exit_code_for(e))


# ---------------------------------------------------------------------------
# Click commands
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="lfsfilter")
def main() -> None:
    """lfsfilter — git clean/smudge driver for Large File Storage."""


def _filter_options(func):
    func = click.option("--verbose", is_flag=True, help="Log debug output to stderr.")(func)
    func = click.option(
        "--tool",
        default=None,
        help="Filter tool to run instead of LFSFILTER_TOOL / git-lfs.",
    )(func)
    func = click.option(
        "--repo-root",
        type=click.Path(file_okay=False),
        default=None,
        help="Repository root (default: discovered from the current directory).",
    )(func)
    return click.argument("path")(func)


@main.command()
@_filter_options
def clean(path: str, repo_root: str | None, tool: str | None, verbose: bool) -> None:
    """Clean PATH: working-tree content on stdin, stored content on stdout."""
    _run_filter(FilterMode.CLEAN, path, repo_root, tool, verbose)


@main.command()
@_filter_options
def smudge(path: str, repo_root: str | None, tool: str | None, verbose: bool) -> None:
    """Smudge PATH: stored content on stdin, working-tree content on stdout."""
    _run_filter(FilterMode.SMUDGE, path, repo_root, tool, verbose)


@main.command()
@click.option("--repo", "repo", type=click.Path(file_okay=False), default=None)
@click.option("--name", default=DEFAULT_FILTER_NAME, show_default=True, help="Filter name.")
@click.option(
    "--command",
    default=DEFAULT_FILTER_COMMAND,
    show_default=True,
    help="Command git should run for the filter.",
)
def install(repo: str | None, name: str, command: str) -> None:
    """Register the filter driver in a repository's git config."""
    try:
        repo_root = Path(repo) if repo else discover_repo_root()
        entries = install_filter(repo_root, name=name, command=command)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--name") from e
    except FilterError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(exit_code_for(e))

    click.echo(format_install_result(entries))


@main.command()
@click.option("--repo", "repo", type=click.Path(file_okay=False), default=None)
@click.option("--name", default=DEFAULT_FILTER_NAME, show_default=True, help="Filter name.")
def uninstall(repo: str | None, name: str) -> None:
    """Remove the filter driver from a repository's git config."""
    try:
        repo_root = Path(repo) if repo else discover_repo_root()
        removed = uninstall_filter(repo_root, name=name)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--name") from e
    except FilterError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(exit_code_for(e))

    if removed:
        click.echo(f"Removed filter.{name}")
    else:
        click.echo(f"filter.{name} was not configured")


@main.command()
@click.option(
    "--temporal-address",
    envvar="LFSFILTER_TEMPORAL_ADDRESS",
    default=DEFAULT_TEMPORAL_ADDRESS,
    show_default=True,
    help="Temporal server address.",
)
@click.option("--verbose", is_flag=True, help="Log debug output.")
def worker(temporal_address: str, verbose: bool) -> None:
    """Start the Temporal worker serving clean/smudge activities."""
    from lfsfilter.worker import run_worker

    configure_logging(verbose)
    try:
        asyncio.run(run_worker(address=temporal_address))
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_INFRASTRUCTURE_ERROR)
