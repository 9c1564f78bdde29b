"""Shared test fixtures for maascli.

Provides isolated config/data directories, output state management, a CLI
runner, and a scriptable fake process runner for companion probes. These
fixtures are discovered by pytest and available to all test modules.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence, Union

import pytest

from maascli.companion.runner import ProcessResult
from maascli.exceptions import CompanionCommandError
from maascli.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams and the
    test finishes, the cached references become stale.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and credentials to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path
    and clears all MAASCLI_* environment variables.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("maascli.config._is_xdg_platform", lambda: True)

    for var in ["MAASCLI_PROFILE", "MAASCLI_API_BASE", "MAASCLI_AUTH_BASE"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True, no_color=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()


# ---------------------------------------------------------------------------
# Fake process runner
# ---------------------------------------------------------------------------

Reply = Union[ProcessResult, BaseException, Callable[[Sequence[str], float], ProcessResult]]


class FakeRunner:
    """Process runner that answers from a table keyed by argv.

    Unknown commands behave like a missing executable.
    """

    def __init__(self, replies: dict[tuple[str, ...], Reply] | None = None) -> None:
        self.replies: dict[tuple[str, ...], Reply] = dict(replies or {})
        self.calls: list[tuple[tuple[str, ...], float]] = []

    def add(self, args: Sequence[str], stdout: str = "", returncode: int = 0, stderr: str = "") -> None:
        key = tuple(args)
        self.replies[key] = ProcessResult(args=key, returncode=returncode, stdout=stdout, stderr=stderr)

    def run(self, args: Sequence[str], timeout: float) -> ProcessResult:
        key = tuple(args)
        self.calls.append((key, timeout))
        reply = self.replies.get(key)
        if reply is None:
            raise CompanionCommandError(f"Cannot run '{key[0]}': not found")
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(args, timeout)
        return reply

    def commands(self) -> list[tuple[str, ...]]:
        return [args for args, _ in self.calls]


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


def companion_runner(
    version: str = "onasis 1.6.0",
    executable: str = "onasis",
    mcp: bool = True,
    authenticated: bool = True,
) -> FakeRunner:
    """FakeRunner for a healthy companion install."""
    runner = FakeRunner()
    runner.add([executable, "--version"], stdout=version + "\n")
    runner.add(
        [executable, "mcp", "status", "--output", "json"],
        stdout='{"connected": true}',
        returncode=0 if mcp else 1,
    )
    runner.add(
        [executable, "auth", "status", "--output", "json"],
        stdout='{"authenticated": %s}' % ("true" if authenticated else "false"),
    )
    return runner


@pytest.fixture
def make_companion_runner() -> Callable[..., FakeRunner]:
    """Factory fixture around :func:`companion_runner`."""
    return companion_runner
