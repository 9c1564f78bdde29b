"""Companion executable integration: capability detection and invocation.

Classes:
    :class:`CapabilityDetector` -- memoized probe of version, MCP channel,
    and auth status.
    :class:`CompanionInvoker` -- runs memory commands with ``--output json``.
    :class:`SubprocessRunner` -- the real process runner behind both.
"""

from maascli.companion.detector import CapabilityDetector, parse_version
from maascli.companion.invoker import CompanionInvoker
from maascli.companion.runner import ProcessResult, ProcessRunner, SubprocessRunner

__all__ = [
    "CapabilityDetector",
    "CompanionInvoker",
    "ProcessResult",
    "ProcessRunner",
    "SubprocessRunner",
    "parse_version",
]
