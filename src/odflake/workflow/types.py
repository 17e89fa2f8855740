"""Shared data structures for workflow execution."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ProcessOutput:
    """Represents the raw outcome of running a subprocess to completion."""

    command: str
    exit_code: int | None
    output: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def tail(self, lines: int = 40) -> str:
        """Last ``lines`` lines of the captured output, for diagnostics."""

        return "\n".join(self.output.strip().splitlines()[-lines:])
