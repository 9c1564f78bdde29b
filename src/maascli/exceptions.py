"""Exception hierarchy for maascli.

All exceptions inherit from :class:`MaasError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`maascli.exit_codes`.
The top-level handler in :func:`maascli.app.main` catches ``MaasError``
and exits with that code; anything else produces a crash log.

Subclass hierarchy::

    MaasError (exit 1)
    +-- InvalidUsageError          (exit 2)
    +-- ConfigError                (exit 1)
    +-- AuthError                  (exit 1)
    |   +-- VendorKeyFormatError
    |   +-- ExchangeError
    |   |   +-- ExchangeTimeoutError
    |   +-- CallbackError
    |   |   +-- CallbackTimeoutError
    |   |   +-- LoginCancelledError
    |   +-- StateMismatchError
    |   +-- AuthenticationFailedError
    |   +-- BackoffActiveError
    +-- ApiError                   (exit 1 for 401/403, else 5)
    +-- ConnectionError_           (exit 6)
    +-- CompanionError             (exit 1)
        +-- CompanionCommandError
        +-- CompanionTimeoutError
        +-- CompanionParseError
"""

from __future__ import annotations

from typing import Any, Optional

from maascli.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_SERVER_ERROR,
)


class MaasError(Exception):
    """Base exception for all maascli errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(MaasError):
    """Raised for invalid or conflicting CLI arguments."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(MaasError):
    """Raised for configuration problems (invalid JSON, unknown profile)."""

    exit_code = EXIT_GENERIC_FAILURE


# --- Authentication ---


class AuthError(MaasError):
    """Raised when authentication or credential validation fails."""

    exit_code = EXIT_AUTH_FAILURE


class VendorKeyFormatError(AuthError):
    """Raised when a vendor key does not match ``pk_<alnum>.sk_<alnum>``.

    The message names the first constraint that was violated.
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ExchangeError(AuthError):
    """Raised when the token endpoint rejects a request or cannot be reached.

    Args:
        message: Error text, taken from ``error_description`` / ``error``
            in the response body when present.
        status: HTTP status code, or ``None`` for transport failures.
        details: Extra fields from the error body (``details`` key, or the
            raw body when it is not JSON).
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.status = status
        self.message = message
        self.details = details


class ExchangeTimeoutError(ExchangeError):
    """Raised when the token endpoint does not answer within its timeout."""


class CallbackError(AuthError):
    """Raised when the OAuth redirect carries an ``error`` parameter."""

    def __init__(self, message: str, error: str | None = None, description: str | None = None):
        super().__init__(message)
        self.error = error
        self.description = description


class CallbackTimeoutError(CallbackError):
    """Raised when no redirect arrives before the listener's deadline."""


class LoginCancelledError(CallbackError):
    """Raised when the login attempt is cancelled before a redirect arrives."""


class StateMismatchError(AuthError):
    """Raised when the redirect ``state`` does not match the one we sent."""


class AuthenticationFailedError(AuthError):
    """Raised after a failed attempt has been classified and recorded.

    Args:
        message: Headline of the remediation guidance.
        category: The :class:`~maascli.auth.failures.FailureCategory`.
        guidance: The :class:`~maascli.auth.failures.Guidance` to show.
    """

    def __init__(self, message: str, category: Any, guidance: Any = None):
        super().__init__(message)
        self.category = category
        self.guidance = guidance


class BackoffActiveError(AuthError):
    """Raised by non-interactive callers that refuse to wait out a backoff delay."""

    def __init__(self, message: str, delay: float):
        super().__init__(message)
        self.delay = delay


# --- Direct API ---


class ApiError(MaasError):
    """Raised when the memory service API answers with an error status.

    Args:
        message: Error text extracted from the response body.
        status: HTTP status code.
        body: Parsed JSON body (or raw text) of the error response.
    """

    def __init__(self, message: str, status: int, body: Any = None):
        exit_code = EXIT_AUTH_FAILURE if status in (401, 403) else EXIT_SERVER_ERROR
        super().__init__(message, exit_code=exit_code)
        self.status = status
        self.body = body


class ConnectionError_(MaasError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


# --- Companion executable ---


class CompanionError(MaasError):
    """Base class for failures while invoking the companion executable."""

    exit_code = EXIT_GENERIC_FAILURE


class CompanionCommandError(CompanionError):
    """Raised when the companion exits non-zero or cannot be started."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class CompanionTimeoutError(CompanionError):
    """Raised when a companion invocation exceeds its timeout (the child is killed)."""


class CompanionParseError(CompanionError):
    """Raised when companion output requested as JSON is not valid JSON."""
