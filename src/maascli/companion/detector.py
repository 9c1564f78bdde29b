"""Companion capability detection.

:class:`CapabilityDetector` answers one question for the router: may this
operation go through the companion executable? It probes, in order:

1. ``<exe> --version`` for each candidate executable (first that answers wins)
2. the semantic version against the minimum protocol-compliant release
3. ``<exe> mcp status --output json`` (exit code 0 sets ``mcp_support``)
4. ``<exe> auth status --output json`` (``{"authenticated": true}`` sets
   ``authenticated``)

The result is memoized for the life of the detector. Detection never
raises: any probe failure leaves that flag ``False``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Optional, Sequence

from maascli.companion.runner import ProcessRunner, SubprocessRunner
from maascli.exceptions import CompanionError
from maascli.models import CLICapabilities

logger = logging.getLogger(__name__)

DEFAULT_EXECUTABLES = ("onasis", "lanonasis")
MIN_VERSION = "1.5.2"

_SEMVER = re.compile(r"(\d+)\.(\d+)\.(\d+)")


def parse_version(text: str) -> Optional[tuple[int, int, int]]:
    """Return the first ``major.minor.patch`` found in *text*, or ``None``."""
    match = _SEMVER.search(text or "")
    if match is None:
        return None
    major, minor, patch = (int(part) for part in match.groups())
    return major, minor, patch


class CapabilityDetector:
    """Probe the companion executable once and cache what it can do.

    Args:
        runner: Process runner. Defaults to :class:`SubprocessRunner`.
        executables: Names tried in order for the version probe.
        min_version: Lowest version that speaks the companion protocol.
        version_timeout: Seconds allowed for ``--version``.
        probe_timeout: Seconds allowed for each status probe.
    """

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        executables: Sequence[str] = DEFAULT_EXECUTABLES,
        min_version: str = MIN_VERSION,
        version_timeout: float = 5.0,
        probe_timeout: float = 3.0,
    ) -> None:
        floor = parse_version(min_version)
        if floor is None:
            raise ValueError(f"min_version must look like X.Y.Z, got {min_version!r}")
        self._runner = runner or SubprocessRunner()
        self._executables = tuple(executables)
        self._floor = floor
        self._version_timeout = version_timeout
        self._probe_timeout = probe_timeout
        self._cached: Optional[CLICapabilities] = None
        self._executable: Optional[str] = None

    @property
    def cached(self) -> Optional[CLICapabilities]:
        """The memoized snapshot, or ``None`` if :meth:`detect` has not run."""
        return self._cached

    @property
    def executable(self) -> Optional[str]:
        """Name of the executable that answered the version probe."""
        return self._executable

    def detect(self) -> CLICapabilities:
        if self._cached is None:
            self._cached = self._safe_probe()
        return self._cached

    def refresh(self) -> CLICapabilities:
        """Discard the cached snapshot and probe again."""
        self._cached = None
        self._executable = None
        return self.detect()

    # ------------------------------------------------------------------ #
    # Probes
    # ------------------------------------------------------------------ #

    def _safe_probe(self) -> CLICapabilities:
        try:
            return self._probe()
        except Exception as exc:  # detection must not raise
            logger.debug("Companion detection failed: %s", exc)
            self._executable = None
            return CLICapabilities()

    def _probe(self) -> CLICapabilities:
        found = self._find_executable()
        if found is None:
            return CLICapabilities()
        executable, version_output = found

        version = parse_version(version_output)
        if version is None:
            logger.debug("No version number in %r output: %r", executable, version_output)
            return CLICapabilities()
        self._executable = executable
        version_text = ".".join(str(part) for part in version)

        if version < self._floor:
            logger.debug("Companion %s %s is below %s", executable, version_text, self._floor)
            return CLICapabilities(available=True, version=version_text)

        return CLICapabilities(
            available=True,
            version=version_text,
            mcp_support=self._probe_mcp(executable),
            authenticated=self._probe_auth(executable),
            protocol_compliant=True,
        )

    def _find_executable(self) -> Optional[tuple[str, str]]:
        for executable in self._executables:
            try:
                result = self._runner.run([executable, "--version"], self._version_timeout)
            except CompanionError as exc:
                logger.debug("Version probe for %s failed: %s", executable, exc)
                continue
            if result.ok:
                return executable, result.stdout.strip()
            logger.debug("%s --version exited %d", executable, result.returncode)
        return None

    def _probe_mcp(self, executable: str) -> bool:
        try:
            result = self._runner.run(
                [executable, "mcp", "status", "--output", "json"], self._probe_timeout
            )
        except CompanionError as exc:
            logger.debug("MCP probe failed: %s", exc)
            return False
        return result.ok

    def _probe_auth(self, executable: str) -> bool:
        try:
            result = self._runner.run(
                [executable, "auth", "status", "--output", "json"], self._probe_timeout
            )
        except CompanionError as exc:
            logger.debug("Auth probe failed: %s", exc)
            return False
        if not result.ok:
            return False
        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError:
            logger.debug("Auth probe returned non-JSON output")
            return False
        return isinstance(payload, dict) and payload.get("authenticated") is True
