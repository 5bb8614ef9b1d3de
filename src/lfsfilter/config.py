"""Filter driver settings.

Settings come from explicit construction or from ``LFSFILTER_*`` environment
variables via ``load_settings``. Unset variables fall back to the defaults
below.
"""

from __future__ import annotations

import os
import shlex
import sys
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, ValidationError

from lfsfilter.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_TOOL = "git-lfs"
DEFAULT_CHUNK_SIZE = 64 * 1024

# cmd.exe reports 9009 for an unknown command; POSIX shells and env use 127.
WINDOWS_NOT_FOUND_EXIT_CODES = frozenset({9009})
POSIX_NOT_FOUND_EXIT_CODES = frozenset({127})

LFSFILTER_TOOL_ENV = "LFSFILTER_TOOL"
LFSFILTER_TOOL_PATH_ENV = "LFSFILTER_TOOL_PATH"
LFSFILTER_TOOL_ARGS_ENV = "LFSFILTER_TOOL_ARGS"
LFSFILTER_CHUNK_SIZE_ENV = "LFSFILTER_CHUNK_SIZE"
LFSFILTER_NOT_FOUND_EXIT_CODES_ENV = "LFSFILTER_NOT_FOUND_EXIT_CODES"


def default_not_found_exit_codes(platform: str = sys.platform) -> frozenset[int]:
    """Return the exit codes that mean "command not found" on *platform*."""
    if platform == "win32":
        return WINDOWS_NOT_FOUND_EXIT_CODES
    return POSIX_NOT_FOUND_EXIT_CODES


class FilterSettings(BaseModel):
    """How to locate and drive the external filter tool."""

    tool: str = Field(
        default=DEFAULT_TOOL,
        min_length=1,
        description="Tool name, resolved on PATH and used in messages.",
    )
    tool_path: str | None = Field(
        default=None,
        description="Explicit executable. When None, ``tool`` is resolved on PATH.",
    )
    tool_args: list[str] = Field(
        default_factory=list,
        description="Arguments placed before the mode, e.g. ['lfs'] for tool='git'.",
    )
    chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        gt=0,
        description="Pump read size in bytes.",
    )
    not_found_exit_codes: frozenset[int] = Field(
        default_factory=default_not_found_exit_codes,
        description="Exit codes treated as 'tool not installed'. Secondary to spawn failure.",
    )

    def executable(self) -> str:
        return self.tool_path or self.tool


# ---------------------------------------------------------------------------
# Environment loading
# ---------------------------------------------------------------------------


def _parse_exit_codes(raw: str) -> frozenset[int]:
    try:
        return frozenset(int(part) for part in raw.split(",") if part.strip())
    except ValueError as e:
        msg = f"{LFSFILTER_NOT_FOUND_EXIT_CODES_ENV} must be comma-separated integers, got {raw!r}"
        raise ConfigurationError(msg) from e


def load_settings(env: Mapping[str, str] | None = None) -> FilterSettings:
    """Build ``FilterSettings`` from environment variables.

    Args:
        env: Mapping to read from. Defaults to ``os.environ``.

    Raises:
        ConfigurationError: If a variable holds an invalid value.
    """
    if env is None:
        env = os.environ

    values: dict[str, object] = {}
    if tool := env.get(LFSFILTER_TOOL_ENV):
        values["tool"] = tool
    if tool_path := env.get(LFSFILTER_TOOL_PATH_ENV):
        values["tool_path"] = tool_path
    if tool_args := env.get(LFSFILTER_TOOL_ARGS_ENV):
        values["tool_args"] = shlex.split(tool_args)
    if chunk_size := env.get(LFSFILTER_CHUNK_SIZE_ENV):
        values["chunk_size"] = chunk_size
    if exit_codes := env.get(LFSFILTER_NOT_FOUND_EXIT_CODES_ENV):
        values["not_found_exit_codes"] = _parse_exit_codes(exit_codes)

    try:
        return FilterSettings.model_validate(values)
    except ValidationError as e:
        msg = f"Invalid lfsfilter settings: {e}"
        raise ConfigurationError(msg) from e
