"""Core data models for lfsfilter."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class FilterMode(StrEnum):
    """Direction of a filter invocation."""

    CLEAN = "clean"
    SMUDGE = "smudge"


class FilterState(StrEnum):
    """Lifecycle states of a single filter invocation."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    INPUT_CLOSED = "input_closed"
    OUTPUT_DRAINED = "output_drained"
    EXITED = "exited"
    CLASSIFIED = "classified"


class FilterInvocation(BaseModel):
    """One file passed through the filter tool in one direction."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(min_length=1, description="Path of the file, relative to repo_root.")
    repo_root: Path = Field(description="Working directory for the filter tool.")
    mode: FilterMode


# ---------------------------------------------------------------------------
# Activity models
# ---------------------------------------------------------------------------


class FilterFileInput(BaseModel):
    """Input to the clean/smudge file activities."""

    repo_root: str
    path: str = Field(description="Repository-relative path handed to the filter tool.")
    source_path: str = Field(description="File whose bytes are fed to the tool.")
    destination_path: str = Field(description="File that receives the tool's output.")


class FilterFileOutput(BaseModel):
    """Result of a clean/smudge file activity."""

    destination_path: str
    bytes_written: int
    diagnostics: str = ""
