"""Tests for lfsfilter.activities.filter_activities — clean/smudge activity wrappers."""

from __future__ import annotations

import asyncio
import shlex
import sys
from typing import TYPE_CHECKING

import pytest
from temporalio.exceptions import ApplicationError
from temporalio.testing import ActivityEnvironment

from lfsfilter.activities.filter_activities import (
    clean_file_activity,
    heartbeat_during,
    partial_path,
    smudge_file_activity,
)
from lfsfilter.filter import ProcessHandle, launch_tool
from lfsfilter.models import FilterFileInput

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def use_fake_tool(monkeypatch: pytest.MonkeyPatch, fake_tool: Path):
    """Point load_settings() at the fake tool; call with a behavior."""

    def _use(behavior: str) -> None:
        monkeypatch.setenv("LFSFILTER_TOOL", "fake-lfs")
        monkeypatch.setenv("LFSFILTER_TOOL_PATH", sys.executable)
        monkeypatch.setenv("LFSFILTER_TOOL_ARGS", shlex.join([str(fake_tool), behavior]))

    return _use


def _input(repo: Path, source: Path, destination: Path) -> FilterFileInput:
    return FilterFileInput(
        repo_root=str(repo),
        path="assets/model.bin",
        source_path=str(source),
        destination_path=str(destination),
    )


# ---------------------------------------------------------------------------
# partial_path
# ---------------------------------------------------------------------------


class TestPartialPath:
    def test_appends_suffix(self, tmp_path: Path) -> None:
        assert partial_path(tmp_path / "model.bin") == tmp_path / "model.bin.partial"


# ---------------------------------------------------------------------------
# heartbeat_during
# ---------------------------------------------------------------------------


class TestHeartbeatDuring:
    @pytest.mark.asyncio
    async def test_heartbeats_with_details(self) -> None:
        env = ActivityEnvironment()
        beats: list[tuple] = []
        env.on_heartbeat = lambda *details: beats.append(details)

        async def _body() -> None:
            async with heartbeat_during("a.bin", "clean", interval_seconds=0.01):
                await asyncio.sleep(0.05)

        await env.run(_body)

        assert beats
        assert beats[0] == ("a.bin", "clean")


# ---------------------------------------------------------------------------
# clean_file_activity / smudge_file_activity
# ---------------------------------------------------------------------------


class TestFilterFileActivities:
    @pytest.mark.asyncio
    async def test_clean_writes_destination(self, tmp_path: Path, use_fake_tool) -> None:
        use_fake_tool("echo")
        source = tmp_path / "source.bin"
        destination = tmp_path / "destination.bin"
        source.write_bytes(b"\x89PNG" * 50_000)

        result = await ActivityEnvironment().run(
            clean_file_activity, _input(tmp_path, source, destination)
        )

        assert destination.read_bytes() == source.read_bytes()
        assert result.bytes_written == 200_000
        assert result.destination_path == str(destination)
        assert not partial_path(destination).exists()

    @pytest.mark.asyncio
    async def test_smudge_writes_destination(self, tmp_path: Path, use_fake_tool) -> None:
        use_fake_tool("echo")
        source = tmp_path / "pointer.txt"
        destination = tmp_path / "restored.bin"
        source.write_bytes(b"version https://git-lfs.github.com/spec/v1\n")

        result = await ActivityEnvironment().run(
            smudge_file_activity, _input(tmp_path, source, destination)
        )

        assert destination.read_bytes() == source.read_bytes()
        assert result.bytes_written == len(source.read_bytes())

    @pytest.mark.asyncio
    async def test_failure_is_non_retryable(self, tmp_path: Path, use_fake_tool) -> None:
        use_fake_tool("fail")
        source = tmp_path / "source.bin"
        destination = tmp_path / "destination.bin"
        source.write_bytes(b"data")

        with pytest.raises(ApplicationError) as exc_info:
            await ActivityEnvironment().run(
                clean_file_activity, _input(tmp_path, source, destination)
            )

        assert exc_info.value.type == "ToolExecutionError"
        assert exc_info.value.non_retryable
        assert "bad object" in str(exc_info.value)
        assert not destination.exists()
        assert not partial_path(destination).exists()

    @pytest.mark.asyncio
    async def test_missing_tool(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("LFSFILTER_TOOL_PATH", str(tmp_path / "missing-git-lfs"))
        monkeypatch.delenv("LFSFILTER_TOOL_ARGS", raising=False)
        source = tmp_path / "source.bin"
        source.write_bytes(b"data")

        with pytest.raises(ApplicationError) as exc_info:
            await ActivityEnvironment().run(
                smudge_file_activity, _input(tmp_path, source, tmp_path / "out.bin")
            )

        assert exc_info.value.type == "ToolNotInstalledError"
        assert "git-lfs.github.com" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_cancellation_kills_tool_and_removes_partial(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        use_fake_tool,
    ) -> None:
        use_fake_tool("hang")
        handles: list[ProcessHandle] = []

        async def _recording_launch(*args, **kwargs) -> ProcessHandle:
            handle = await launch_tool(*args, **kwargs)
            handles.append(handle)
            return handle

        monkeypatch.setattr("lfsfilter.filter.launch_tool", _recording_launch)
        source = tmp_path / "source.bin"
        destination = tmp_path / "destination.bin"
        source.write_bytes(b"data")

        env = ActivityEnvironment()
        task = asyncio.create_task(
            env.run(clean_file_activity, _input(tmp_path, source, destination))
        )
        async with asyncio.timeout(30):
            while not handles:
                await asyncio.sleep(0.01)
        assert partial_path(destination).exists()

        env.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert handles[0].process.returncode is not None
        assert not partial_path(destination).exists()
        assert not destination.exists()
