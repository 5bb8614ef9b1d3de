"""Exceptions raised by the lfsfilter driver.

Every failure surfaced to callers derives from ``FilterError`` so that the
enclosing checkout/commit workflow can decide, with a single ``except``,
whether to abort the larger operation. None of these are retried internally.
"""

from __future__ import annotations

INSTALL_URL = "https://git-lfs.github.com/"


class FilterError(Exception):
    """Base exception for all lfsfilter operations."""


class ToolNotInstalledError(FilterError):
    """The filter tool could not be started, or reported itself missing."""

    def __init__(self, tool: str, detail: str | None = None) -> None:
        self.tool = tool
        self.detail = detail
        msg = (
            f"{tool} is not installed on the current server, but it is required by this "
            f"repository. See {INSTALL_URL} for installation instructions."
        )
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class ToolExecutionError(FilterError):
    """The filter tool ran and exited with a non-zero code."""

    def __init__(self, tool: str, returncode: int, diagnostics: str) -> None:
        self.tool = tool
        self.returncode = returncode
        self.diagnostics = diagnostics
        super().__init__(f"{tool} exited with code {returncode}\nMessages: {diagnostics}")


class StreamIOError(FilterError):
    """A stream pump failed mid-copy (broken pipe or stream fault)."""


class InputRejectedError(StreamIOError):
    """The tool closed its stdin before the whole source was written."""

    def __init__(self, bytes_accepted: int, reason: str = "") -> None:
        self.bytes_accepted = bytes_accepted
        msg = f"Filter tool stopped accepting input after {bytes_accepted} bytes"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class ConfigurationError(FilterError):
    """Invalid filter settings, or git configuration could not be updated."""


class RepoDiscoveryError(FilterError):
    """Failed to discover the git repository root."""
