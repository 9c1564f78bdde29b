"""Companion-first operation routing with a single fallback to the API.

For each operation :class:`OperationRouter` consults the (memoized)
:class:`~maascli.companion.detector.CapabilityDetector`:

- companion usable and preferred: run ``companion_fn``; on an error outcome
  or an exception, run ``api_fn`` once if fallback is enabled
- otherwise: run ``api_fn`` directly

Attempts are strictly sequential, so a write is never sent down both paths
at once. Exceptions raised by ``api_fn`` propagate unchanged.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from maascli.companion.detector import CapabilityDetector
from maascli.models import OperationResult, Outcome

logger = logging.getLogger(__name__)

T = TypeVar("T")

Backend = Callable[[], Outcome[T]]


class OperationRouter:
    """Decide per call whether to use the companion or the direct API.

    Args:
        detector: Capability source. Probed once, then served from cache.
        prefer_companion: Master switch for the companion path.
        fallback_to_api: Retry through the API when the companion fails.
    """

    def __init__(
        self,
        detector: CapabilityDetector,
        prefer_companion: bool = True,
        fallback_to_api: bool = True,
    ) -> None:
        self._detector = detector
        self.prefer_companion = prefer_companion
        self.fallback_to_api = fallback_to_api

    def should_use_companion(self) -> bool:
        if not self.prefer_companion:
            return False
        return self._detector.detect().usable

    def execute(
        self,
        name: str,
        companion_fn: Backend[T],
        api_fn: Backend[T],
    ) -> OperationResult[T]:
        """Run operation *name* on the best available path.

        Args:
            name: Operation label used in log messages.
            companion_fn: Companion backend.
            api_fn: Direct API backend.

        Returns:
            An :class:`~maascli.models.OperationResult` tagged with the
            path that produced it.
        """
        if not self.should_use_companion():
            return self._via_api(api_fn)

        capabilities = self._detector.detect()
        try:
            outcome = companion_fn()
        except Exception as exc:
            if not self.fallback_to_api:
                logger.debug("Companion %s raised with fallback disabled: %s", name, exc)
                return OperationResult(error=str(exc) or f"Companion {name} failed", source="companion")
            logger.warning("Companion %s error, falling back to API: %s", name, exc)
            return self._via_api(api_fn)

        if outcome.error is not None:
            if not self.fallback_to_api:
                return OperationResult(error=outcome.error, source="companion")
            logger.warning("Companion %s failed, falling back to API: %s", name, outcome.error)
            return self._via_api(api_fn)

        return OperationResult(
            data=outcome.data,
            source="companion",
            enhanced_channel_used=capabilities.mcp_support,
        )

    @staticmethod
    def _via_api(api_fn: Backend[T]) -> OperationResult[T]:
        outcome = api_fn()
        return OperationResult(data=outcome.data, error=outcome.error, source="api")
