"""LFS clean/smudge filter driver.

Runs ``<tool> <mode> -- <path>`` in the repository root and streams one file's
content through it. Three tasks run concurrently for every invocation: the
input pump (caller source -> tool stdin), the output pump (tool stdout ->
caller sink) and the diagnostics drain (tool stderr -> memory). Running the
pumps sequentially deadlocks as soon as the payload exceeds the OS pipe
buffer, because the tool stops reading input while its output pipe is full.

Design follows Function Core / Imperative Shell:
- Pure functions: build_argv, classify_outcome
- Stream helpers: pump_input, pump_output, drain_diagnostics
- Imperative shell: launch_tool, FilterSession, LfsFilter, filter_bytes
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import io
import logging
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from lfsfilter.config import DEFAULT_CHUNK_SIZE, FilterSettings
from lfsfilter.errors import (
    FilterError,
    InputRejectedError,
    StreamIOError,
    ToolExecutionError,
    ToolNotInstalledError,
)
from lfsfilter.models import FilterInvocation, FilterMode, FilterState
from lfsfilter.subprocess_result import ExitOutcome

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pure functions
# ---------------------------------------------------------------------------


def build_argv(settings: FilterSettings, invocation: FilterInvocation) -> list[str]:
    """Compute the command line for *invocation*.

    Returns ``[<executable>, *tool_args, <mode>, "--", <path>]``. The ``--``
    keeps paths that start with a dash from being parsed as options.
    """
    return [
        settings.executable(),
        *settings.tool_args,
        invocation.mode.value,
        "--",
        invocation.path,
    ]


def classify_outcome(outcome: ExitOutcome, settings: FilterSettings) -> None:
    """Raise the failure that *outcome* represents, or return on success.

    Raises:
        ToolNotInstalledError: If the exit code is a "command not found" sentinel.
        ToolExecutionError: For any other non-zero exit code.
    """
    if outcome.ok:
        return
    if outcome.returncode in settings.not_found_exit_codes:
        raise ToolNotInstalledError(settings.tool, detail=f"exit code {outcome.returncode}")
    raise ToolExecutionError(settings.tool, outcome.returncode, outcome.diagnostics)


# ---------------------------------------------------------------------------
# Process launcher
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class ProcessHandle:
    """A running filter process and its three piped streams."""

    process: asyncio.subprocess.Process
    argv: tuple[str, ...]

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdin(self) -> asyncio.StreamWriter:
        assert self.process.stdin is not None
        return self.process.stdin

    @property
    def stdout(self) -> asyncio.StreamReader:
        assert self.process.stdout is not None
        return self.process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader:
        assert self.process.stderr is not None
        return self.process.stderr


async def launch_tool(
    tool: str,
    args: Sequence[str],
    cwd: Path,
    *,
    display_name: str | None = None,
) -> ProcessHandle:
    """Start *tool* with all three standard streams piped.

    Args:
        tool: Executable name (resolved on PATH) or path.
        args: Arguments passed after the executable.
        cwd: Working directory for the process.
        display_name: Name used in error messages. Defaults to *tool*.

    Raises:
        ToolNotInstalledError: If the operating system refuses to start the
            process (missing executable, permission denied, bad cwd).
    """
    kwargs: dict[str, int] = {}
    if sys.platform == "win32":
        kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

    try:
        process = await asyncio.create_subprocess_exec(
            tool,
            *args,
            cwd=cwd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            **kwargs,
        )
    except OSError as e:
        logger.warning("Failed to start %s: %s", tool, e)
        raise ToolNotInstalledError(display_name or tool, detail=str(e)) from e

    return ProcessHandle(process=process, argv=(tool, *args))


# ---------------------------------------------------------------------------
# Stream pumps
# ---------------------------------------------------------------------------


# Closed Python file objects raise ValueError rather than OSError.
_STREAM_FAULTS = (OSError, ValueError)

# How a pipe reports that the tool closed its end of stdin.
_PIPE_CLOSED = (BrokenPipeError, ConnectionResetError)


async def _read_source(source: BinaryIO, size: int) -> bytes:
    # In-memory buffers never block, so skip the thread hop.
    if isinstance(source, io.BytesIO):
        return source.read(size)
    return await asyncio.to_thread(source.read, size)


async def _write_sink(sink: BinaryIO, data: bytes) -> None:
    if isinstance(sink, io.BytesIO):
        sink.write(data)
        return
    await asyncio.to_thread(sink.write, data)


async def _flush_sink(sink: BinaryIO) -> None:
    if isinstance(sink, io.BytesIO):
        sink.flush()
        return
    await asyncio.to_thread(sink.flush)


async def pump_input(
    source: BinaryIO,
    stdin: asyncio.StreamWriter,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """Copy *source* into the tool's stdin until *source* is exhausted.

    Does not close *stdin*; the caller does that once this returns.

    Returns:
        Number of bytes copied.

    Raises:
        InputRejectedError: The tool closed its stdin before the source
            was exhausted.
        StreamIOError: Reading the source or writing the pipe failed.
    """
    total = 0
    while True:
        try:
            chunk = await _read_source(source, chunk_size)
        except _STREAM_FAULTS as e:
            msg = f"Failed to read filter input after {total} bytes: {e}"
            raise StreamIOError(msg) from e
        if not chunk:
            return total

        try:
            stdin.write(chunk)
            await stdin.drain()
        except _PIPE_CLOSED as e:
            raise InputRejectedError(total, str(e)) from e
        except OSError as e:
            msg = f"Failed to write filter input after {total} bytes: {e}"
            raise StreamIOError(msg) from e
        total += len(chunk)


async def pump_output(
    stdout: asyncio.StreamReader,
    sink: BinaryIO,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """Copy the tool's stdout into *sink* until the tool closes it.

    Returns:
        Number of bytes copied.

    Raises:
        StreamIOError: If reading the pipe or writing the sink fails.
    """
    total = 0
    while True:
        try:
            chunk = await stdout.read(chunk_size)
        except OSError as e:
            msg = f"Failed to read filter output after {total} bytes: {e}"
            raise StreamIOError(msg) from e
        if not chunk:
            break

        try:
            await _write_sink(sink, chunk)
        except _STREAM_FAULTS as e:
            msg = f"Failed to write filter output after {total} bytes: {e}"
            raise StreamIOError(msg) from e
        total += len(chunk)

    try:
        await _flush_sink(sink)
    except _STREAM_FAULTS as e:
        msg = f"Failed to flush filter output: {e}"
        raise StreamIOError(msg) from e
    return total


async def drain_diagnostics(stderr: asyncio.StreamReader) -> str:
    """Read the tool's stderr to EOF and decode it."""
    data = await stderr.read()
    return data.decode("utf-8", errors="replace")


# ---------------------------------------------------------------------------
# Lifecycle coordinator
# ---------------------------------------------------------------------------


def _first_error(group: BaseExceptionGroup) -> BaseException:
    """Pick the exception to surface from a failed task group, preferring FilterErrors."""
    leaves: list[BaseException] = []

    def _collect(exc: BaseException) -> None:
        if isinstance(exc, BaseExceptionGroup):
            for inner in exc.exceptions:
                _collect(inner)
        else:
            leaves.append(exc)

    _collect(group)
    for exc in leaves:
        if isinstance(exc, FilterError):
            return exc
    return leaves[0]


async def _release(handle: ProcessHandle) -> None:
    """Kill the process if it is still running, reap it, and close its pipes."""
    process = handle.process
    if process.returncode is None:
        logger.warning("Terminating filter process %d (%s)", handle.pid, handle.argv[0])
        with contextlib.suppress(ProcessLookupError):
            process.kill()

    handle.stdin.close()
    # Reading to EOF lets asyncio close the read pipes of a killed process.
    with contextlib.suppress(OSError):
        await handle.stdout.read()
    with contextlib.suppress(OSError):
        await handle.stderr.read()
    await process.wait()


class FilterSession:
    """Owns one filter process from launch to exit-code classification.

    A session runs exactly once. ``state`` follows
    ``not_started -> running -> input_closed -> output_drained -> exited ->
    classified``; ``input_closed`` and ``output_drained`` may be reached in
    either order since the pumps are independent.
    """

    def __init__(self, invocation: FilterInvocation, settings: FilterSettings) -> None:
        self.invocation = invocation
        self.settings = settings
        self.state = FilterState.NOT_STARTED
        self.handle: ProcessHandle | None = None
        self.outcome: ExitOutcome | None = None
        self.input_rejected: InputRejectedError | None = None

    def _transition(self, state: FilterState) -> None:
        logger.debug(
            "Filter %s %s: %s -> %s",
            self.invocation.mode,
            self.invocation.path,
            self.state,
            state,
        )
        self.state = state

    async def run(self, source: BinaryIO, sink: BinaryIO) -> ExitOutcome:
        """Stream *source* through the tool into *sink* and classify the exit.

        Cancelling the awaiting task kills the tool and releases every pipe
        before ``CancelledError`` propagates.

        Raises:
            ToolNotInstalledError: The tool could not be started or reported
                itself missing.
            ToolExecutionError: The tool exited with a non-zero code.
            InputRejectedError: The tool exited 0 without reading all of
                its input.
            StreamIOError: A pump failed mid-copy on the caller's side.
        """
        if self.state is not FilterState.NOT_STARTED:
            msg = "FilterSession.run() may only be called once"
            raise RuntimeError(msg)

        argv = build_argv(self.settings, self.invocation)
        logger.info(
            "Running %s %s for %s",
            self.settings.tool,
            self.invocation.mode,
            self.invocation.path,
        )
        handle = await launch_tool(
            argv[0],
            argv[1:],
            self.invocation.repo_root,
            display_name=self.settings.tool,
        )
        self.handle = handle
        self._transition(FilterState.RUNNING)

        try:
            diagnostics = await self._pump(handle, source, sink)
            returncode = await handle.process.wait()
            self._transition(FilterState.EXITED)
        finally:
            await _release(handle)

        outcome = ExitOutcome(returncode=returncode, diagnostics=diagnostics)
        self.outcome = outcome
        try:
            classify_outcome(outcome, self.settings)
            if self.input_rejected is not None:
                raise self.input_rejected
        except FilterError:
            logger.warning(
                "%s %s failed for %s with code %d",
                self.settings.tool,
                self.invocation.mode,
                self.invocation.path,
                returncode,
            )
            raise
        finally:
            self._transition(FilterState.CLASSIFIED)

        if diagnostics:
            logger.debug(
                "%s diagnostics for %s: %s",
                self.settings.tool,
                self.invocation.path,
                diagnostics,
            )
        return outcome

    async def _pump(self, handle: ProcessHandle, source: BinaryIO, sink: BinaryIO) -> str:
        """Run both pumps and the diagnostics drain concurrently."""
        chunk_size = self.settings.chunk_size

        async def _feed() -> None:
            # A tool that rejects a file may exit without reading stdin. Stop
            # feeding and let the exit code decide the outcome.
            try:
                await pump_input(source, handle.stdin, chunk_size)
            except InputRejectedError as e:
                logger.debug("%s closed its input early: %s", self.settings.tool, e)
                self.input_rejected = e
            handle.stdin.close()
            with contextlib.suppress(OSError):
                await handle.stdin.wait_closed()
            self._transition(FilterState.INPUT_CLOSED)

        async def _copy() -> None:
            await pump_output(handle.stdout, sink, chunk_size)
            self._transition(FilterState.OUTPUT_DRAINED)

        try:
            async with asyncio.TaskGroup() as group:
                group.create_task(_feed())
                group.create_task(_copy())
                drain = group.create_task(drain_diagnostics(handle.stderr))
        except ExceptionGroup as e:
            raise _first_error(e) from None

        return drain.result()


class LfsFilter:
    """Clean/smudge filter backed by an external tool (``git-lfs`` by default)."""

    def __init__(self, settings: FilterSettings | None = None) -> None:
        self.settings = settings or FilterSettings()

    async def clean(
        self,
        path: str,
        repo_root: Path | str,
        source: BinaryIO,
        sink: BinaryIO,
    ) -> ExitOutcome:
        """Working tree -> repository: replace content with the tool's output."""
        invocation = FilterInvocation(path=path, repo_root=Path(repo_root), mode=FilterMode.CLEAN)
        return await self.run(invocation, source, sink)

    async def smudge(
        self,
        path: str,
        repo_root: Path | str,
        source: BinaryIO,
        sink: BinaryIO,
    ) -> ExitOutcome:
        """Repository -> working tree: restore content from the tool's output."""
        invocation = FilterInvocation(path=path, repo_root=Path(repo_root), mode=FilterMode.SMUDGE)
        return await self.run(invocation, source, sink)

    async def run(
        self,
        invocation: FilterInvocation,
        source: BinaryIO,
        sink: BinaryIO,
    ) -> ExitOutcome:
        return await FilterSession(invocation, self.settings).run(source, sink)


async def filter_bytes(
    invocation: FilterInvocation,
    data: bytes,
    settings: FilterSettings | None = None,
) -> bytes:
    """Run one invocation over in-memory *data* and return the tool's output."""
    sink = io.BytesIO()
    await LfsFilter(settings).run(invocation, io.BytesIO(data), sink)
    return sink.getvalue()
