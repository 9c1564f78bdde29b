"""Process-invocation seam for the companion executable.

Everything that spawns a child process goes through a :class:`ProcessRunner`
so that detection and invocation can be tested with a fake runner instead
of real binaries.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Protocol, Sequence

from maascli.exceptions import CompanionCommandError, CompanionTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    """Exit status and captured output of a finished child process."""

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessRunner(Protocol):
    def run(self, args: Sequence[str], timeout: float) -> ProcessResult:
        """Run *args* (no shell) and wait at most *timeout* seconds.

        Raises:
            CompanionCommandError: The executable could not be started.
            CompanionTimeoutError: The child outlived *timeout* and was killed.
        """
        ...


class SubprocessRunner:
    """:class:`ProcessRunner` backed by :func:`subprocess.run`.

    The child gets no stdin, so a command that unexpectedly prompts fails
    fast instead of hanging until its timeout.
    """

    def run(self, args: Sequence[str], timeout: float) -> ProcessResult:
        argv = list(args)
        logger.debug("Running %s (timeout %.0fs)", argv, timeout)
        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                stdin=subprocess.DEVNULL,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise CompanionTimeoutError(
                f"'{argv[0]}' did not finish within {timeout:.0f}s"
            ) from exc
        except OSError as exc:
            raise CompanionCommandError(f"Cannot run '{argv[0]}': {exc}") from exc

        return ProcessResult(
            args=tuple(argv),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
