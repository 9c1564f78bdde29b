"""Backoff gate for repeated authentication failures.

The failure counter is an explicit :class:`~maascli.models.AuthFailureState`
value: every method takes the current state and, where it changes, returns
a new one. Persisting the state between runs is done by
:class:`~maascli.auth.credential_store.CredentialStore`.

Delay schedule (seconds) with the defaults::

    count   0  1  2  3  4  5   6   7+
    delay   0  0  0  2  4  8  16  30
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable

from maascli.models import AuthFailureState

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Keeps 2 ** exponent inside float range for persisted counts.
_MAX_EXPONENT = 32


class BackoffController:
    """Decide whether, and for how long, to wait before the next attempt.

    Args:
        threshold: Failure count from which a delay is imposed.
        base: Seconds multiplied by ``2 ** (count - 2)``.
        cap: Upper bound on any single delay, in seconds.
        clock: Returns the current aware datetime. Injected for tests.
        sleep: Blocks for the given number of seconds. Injected for tests.
    """

    def __init__(
        self,
        threshold: int = 3,
        base: float = 1.0,
        cap: float = 30.0,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.threshold = threshold
        self.base = base
        self.cap = cap
        self._clock = clock
        self._sleep = sleep

    def should_delay(self, state: AuthFailureState) -> bool:
        return state.count >= self.threshold

    def delay_for(self, state: AuthFailureState) -> float:
        """Seconds to wait before the next attempt. Non-decreasing in ``count``."""
        if not self.should_delay(state):
            return 0.0
        exponent = min(state.count - 2, _MAX_EXPONENT)
        return min(self.base * 2 ** exponent, self.cap)

    def record_failure(self, state: AuthFailureState) -> AuthFailureState:
        return AuthFailureState(count=state.count + 1, last_failure_at=self._clock())

    def clear(self) -> AuthFailureState:
        return AuthFailureState()

    def wait(self, state: AuthFailureState) -> float:
        """Block for the full delay owed by *state*.

        Returns:
            The number of seconds slept (``0.0`` when no delay applies).
        """
        delay = self.delay_for(state)
        if delay > 0:
            logger.info("Delaying authentication %.0fs after %d failures", delay, state.count)
            self._sleep(delay)
        return delay
