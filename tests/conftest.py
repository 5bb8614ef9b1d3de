"""Shared test fixtures for lfsfilter."""

from __future__ import annotations

import subprocess
import sys
import textwrap
from typing import TYPE_CHECKING

import pytest

from lfsfilter.config import FilterSettings

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


# A stand-in for git-lfs. Invoked as ``python fake_lfs.py <behavior> <mode> -- <path>``.
_FAKE_TOOL_SOURCE = textwrap.dedent(
    """\
    import json
    import os
    import shutil
    import sys
    import time

    behavior = sys.argv[1]
    stdin = sys.stdin.buffer
    stdout = sys.stdout.buffer
    stderr = sys.stderr.buffer

    if behavior == "echo":
        shutil.copyfileobj(stdin, stdout, 65536)
    elif behavior == "record":
        stdin.read()
        stdout.write(json.dumps({"argv": sys.argv[2:], "cwd": os.getcwd()}).encode())
    elif behavior == "chatty":
        noise = b"progress " * 512
        while True:
            chunk = stdin.read(65536)
            if not chunk:
                break
            stdout.write(chunk)
            stderr.write(noise)
        for _ in range(256):
            stderr.write(noise)
    elif behavior == "fail":
        stdin.read()
        stderr.write(b"bad object")
        sys.exit(1)
    elif behavior == "not-found":
        stdin.read()
        sys.exit(127)
    elif behavior == "reject":
        stderr.write(b"bad object")
        sys.exit(1)
    elif behavior == "reject-not-found":
        sys.exit(127)
    elif behavior == "ignore-input":
        stdout.write(b"pointer")
    elif behavior == "hang":
        time.sleep(600)
    else:
        sys.exit(f"unknown behavior {behavior!r}")
    """
)


@pytest.fixture
def fake_tool(tmp_path: Path) -> Path:
    """Write the fake filter tool script and return its path."""
    script = tmp_path / "fake_lfs.py"
    script.write_text(_FAKE_TOOL_SOURCE)
    return script


@pytest.fixture
def make_settings(fake_tool: Path) -> Callable[..., FilterSettings]:
    """Build FilterSettings that run the fake tool with a given behavior."""

    def _make(behavior: str, **overrides: object) -> FilterSettings:
        return FilterSettings(
            tool="fake-lfs",
            tool_path=sys.executable,
            tool_args=[str(fake_tool), behavior],
            **overrides,
        )

    return _make


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a temporary git repository with one initial commit.

    Returns the path to the repository root.
    """
    subprocess.run(["git", "init", "-b", "main"], cwd=tmp_path, check=True, capture_output=True)
    subprocess.run(
        ["git", "config", "user.email", "test@lfsfilter.test"],
        cwd=tmp_path,
        check=True,
        capture_output=True,
    )
    subprocess.run(
        ["git", "config", "user.name", "lfsfilter Test"],
        cwd=tmp_path,
        check=True,
        capture_output=True,
    )

    readme = tmp_path / "README.md"
    readme.write_text("# Test repo\n")
    subprocess.run(["git", "add", "README.md"], cwd=tmp_path, check=True, capture_output=True)
    subprocess.run(
        ["git", "commit", "-m", "Initial commit"],
        cwd=tmp_path,
        check=True,
        capture_output=True,
    )

    return tmp_path
