"""Run memory operations through the companion executable.

Commands are built as argument lists and executed without a shell, with
``--output json`` appended so the result can be parsed. The memory helpers
return an :class:`~maascli.models.Outcome` rather than raising, which is
the shape :class:`~maascli.routing.router.OperationRouter` expects from a
backend.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional, Sequence

from maascli.companion.detector import CapabilityDetector
from maascli.companion.runner import ProcessRunner, SubprocessRunner
from maascli.exceptions import CompanionCommandError, CompanionError, CompanionParseError
from maascli.models import Outcome

logger = logging.getLogger(__name__)


class CompanionInvoker:
    """Execute companion commands and parse their JSON output.

    Args:
        detector: Supplies the executable name that answered detection.
        runner: Process runner. Defaults to :class:`SubprocessRunner`.
        timeout: Seconds allowed for each command.
        verbose: Append ``--verbose`` to every command.
    """

    def __init__(
        self,
        detector: CapabilityDetector,
        runner: Optional[ProcessRunner] = None,
        timeout: float = 30.0,
        verbose: bool = False,
    ) -> None:
        self._detector = detector
        self._runner = runner or SubprocessRunner()
        self._timeout = timeout
        self._verbose = verbose

    def build_args(self, command: Sequence[str]) -> list[str]:
        """Full argv for *command*, e.g. ``["onasis", "memory", "list", "--output", "json"]``."""
        self._detector.detect()
        executable = self._detector.executable
        if executable is None:
            raise CompanionError("Companion executable is not available")
        args = [executable, *command, "--output", "json"]
        if self._verbose:
            args.append("--verbose")
        return args

    def run_json(self, command: Sequence[str]) -> Any:
        """Run *command* and return its parsed JSON output.

        Raises:
            CompanionError: No executable was detected.
            CompanionCommandError: Non-zero exit or launch failure.
            CompanionTimeoutError: The command outlived its timeout.
            CompanionParseError: stdout is not valid JSON.
        """
        args = self.build_args(command)
        result = self._runner.run(args, self._timeout)
        if not result.ok:
            detail = result.stderr.strip() or result.stdout.strip() or "no output"
            raise CompanionCommandError(
                f"'{' '.join(command)}' exited with status {result.returncode}: {detail}",
                returncode=result.returncode,
                stderr=result.stderr,
            )
        if result.stderr.strip():
            logger.warning("Companion warning: %s", result.stderr.strip())
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise CompanionParseError(
                f"'{' '.join(command)}' returned invalid JSON: {exc}"
            ) from exc

    # ------------------------------------------------------------------ #
    # Memory operations
    # ------------------------------------------------------------------ #

    def create_memory(
        self,
        title: str,
        content: str,
        memory_type: str = "context",
        tags: Sequence[str] = (),
        topic_id: Optional[str] = None,
    ) -> Outcome[Any]:
        command = ["memory", "create", "--title", title, "--content", content, "--memory-type", memory_type]
        if tags:
            command += ["--tags", ",".join(tags)]
        if topic_id:
            command += ["--topic-id", topic_id]
        return self._outcome(lambda: self.run_json(command))

    def list_memories(
        self,
        limit: Optional[int] = None,
        memory_type: Optional[str] = None,
        tags: Sequence[str] = (),
        sort_by: Optional[str] = None,
    ) -> Outcome[Any]:
        command = ["memory", "list"]
        if limit:
            command += ["--limit", str(limit)]
        if memory_type:
            command += ["--memory-type", memory_type]
        if tags:
            command += ["--tags", ",".join(tags)]
        if sort_by:
            command += ["--sort-by", sort_by]
        return self._outcome(lambda: self.run_json(command))

    def search_memories(
        self,
        query: str,
        limit: Optional[int] = None,
        memory_types: Sequence[str] = (),
    ) -> Outcome[Any]:
        command = ["memory", "search", query]
        if limit:
            command += ["--limit", str(limit)]
        if memory_types:
            command += ["--memory-types", ",".join(memory_types)]
        return self._outcome(lambda: self.run_json(command))

    def health(self) -> Outcome[Any]:
        return self._outcome(lambda: self.run_json(["health"]))

    @staticmethod
    def _outcome(call: Callable[[], Any]) -> Outcome[Any]:
        try:
            return Outcome(data=call())
        except CompanionError as exc:
            return Outcome(error=str(exc))
