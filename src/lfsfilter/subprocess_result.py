"""Subprocess result dataclasses.

``ExitOutcome`` is produced by the streaming filter driver; ``GitResult`` by
the captured-output ``git config`` helpers.
"""

from __future__ import annotations

import dataclasses


@dataclasses.dataclass(frozen=True)
class ExitOutcome:
    """Exit code and captured diagnostics of one filter process. Internal transport only."""

    returncode: int
    diagnostics: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


@dataclasses.dataclass(frozen=True)
class GitResult:
    """Captured output of a short ``git`` command."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0
