"""Clean/smudge Temporal activities for lfsfilter.

Thin wrappers around ``LfsFilter`` so that an automation workflow can filter
whole files as Temporal activities. Each activity heartbeats while the tool
runs; Temporal delivers cancellation through the heartbeat, which cancels the
filter session and kills the tool.

Output is written to ``<destination>.partial`` and renamed into place only on
success, so a failed or cancelled filter never leaves a truncated file behind.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from temporalio import activity
from temporalio.exceptions import ApplicationError

from lfsfilter.config import load_settings
from lfsfilter.errors import FilterError
from lfsfilter.filter import LfsFilter
from lfsfilter.models import FilterFileInput, FilterFileOutput, FilterInvocation, FilterMode

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL_SECONDS = 10
_PARTIAL_SUFFIX = ".partial"


@asynccontextmanager
async def heartbeat_during(
    *details: object,
    interval_seconds: float = HEARTBEAT_INTERVAL_SECONDS,
) -> AsyncIterator[None]:
    """Heartbeat with *details* every *interval_seconds* while the body runs."""

    async def _loop() -> None:
        while True:
            activity.heartbeat(*details)
            await asyncio.sleep(interval_seconds)

    task = asyncio.create_task(_loop())
    try:
        yield
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


def partial_path(destination: Path) -> Path:
    """Return the temporary path output is streamed to before the final rename."""
    return destination.with_name(destination.name + _PARTIAL_SUFFIX)


async def _filter_file(input: FilterFileInput, mode: FilterMode) -> FilterFileOutput:
    invocation = FilterInvocation(path=input.path, repo_root=Path(input.repo_root), mode=mode)
    destination = Path(input.destination_path)
    partial = partial_path(destination)

    try:
        driver = LfsFilter(load_settings())
        with open(input.source_path, "rb") as source, partial.open("wb") as sink:
            async with heartbeat_during(input.path, mode.value):
                outcome = await driver.run(invocation, source, sink)
        partial.replace(destination)
    except FilterError as e:
        raise ApplicationError(str(e), type=type(e).__name__, non_retryable=True) from e
    finally:
        partial.unlink(missing_ok=True)

    bytes_written = destination.stat().st_size
    logger.info("%s %s: %d bytes -> %s", mode, input.path, bytes_written, destination)
    return FilterFileOutput(
        destination_path=str(destination),
        bytes_written=bytes_written,
        diagnostics=outcome.diagnostics,
    )


@activity.defn
async def clean_file_activity(input: FilterFileInput) -> FilterFileOutput:
    """Run the clean filter over a working-tree file."""
    logger.info("Clean: path=%s repo_root=%s", input.path, input.repo_root)
    return await _filter_file(input, FilterMode.CLEAN)


@activity.defn
async def smudge_file_activity(input: FilterFileInput) -> FilterFileOutput:
    """Run the smudge filter over a stored (pointer) file."""
    logger.info("Smudge: path=%s repo_root=%s", input.path, input.repo_root)
    return await _filter_file(input, FilterMode.SMUDGE)
