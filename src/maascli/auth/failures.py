"""Failure classification and progressive remediation guidance.

:func:`classify` maps any error raised during login or credential
validation to a :class:`FailureCategory`. :func:`remediation` turns the
category, the auth method in use, and the running failure count into
user-facing :class:`Guidance`. Both are pure: recording the failure and
clearing credentials is the caller's job (see :mod:`maascli.auth.login`).
"""

from __future__ import annotations

import errno
import socket
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from maascli.exceptions import ApiError, ConnectionError_, ExchangeError, ExchangeTimeoutError

AuthMethod = Literal["vendor_key", "jwt", "oauth"]

RECOVERY_THRESHOLD = 3
ESCALATION_THRESHOLD = 5

_NETWORK_ERRNOS = frozenset(
    {
        errno.ECONNREFUSED,
        errno.ECONNRESET,
        errno.ETIMEDOUT,
        errno.ENETUNREACH,
        errno.EHOSTUNREACH,
    }
)
_NETWORK_CODES = frozenset({"ECONNREFUSED", "ENOTFOUND", "ECONNRESET", "ETIMEDOUT", "ENETUNREACH"})


class FailureCategory(str, Enum):
    """Why an authentication attempt failed."""

    INVALID_CREDENTIALS = "invalid_credentials"
    NETWORK_ERROR = "network_error"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"
    EXPIRED_TOKEN = "expired_token"
    UNKNOWN = "unknown"


class Guidance(BaseModel):
    """Remediation text for one failed attempt.

    Attributes:
        headline: One-line description of what went wrong.
        hints: Category-specific suggestions.
        recovery: Extra options shown once failures start repeating; empty
            below :data:`RECOVERY_THRESHOLD`.
    """

    model_config = ConfigDict(frozen=True)

    category: FailureCategory
    headline: str
    hints: list[str] = Field(default_factory=list)
    recovery: list[str] = Field(default_factory=list)
    failure_count: int = 0
    last_failure_at: Optional[datetime] = None


# ------------------------------------------------------------------ #
# Classification
# ------------------------------------------------------------------ #


def _status_and_body(error: BaseException) -> tuple[Optional[int], Any]:
    if isinstance(error, ExchangeError):
        return error.status, error.details
    if isinstance(error, ApiError):
        return error.status, error.body
    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        return response.status_code, body
    return None, None


def _mentions_expiry(body: Any, message: str) -> bool:
    if isinstance(body, dict):
        fields = [body.get("error"), body.get("error_description"), body.get("message")]
        text = " ".join(str(f) for f in fields if f)
    elif body is None:
        text = ""
    else:
        text = str(body)
    return "expired" in text.lower() or "expired" in message.lower()


def _is_transport_error(error: BaseException) -> bool:
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(error, (ExchangeTimeoutError, ConnectionError_)):
        return True
    if isinstance(error, socket.gaierror):
        return True
    if isinstance(error, OSError) and error.errno in _NETWORK_ERRNOS:
        return True
    code = getattr(error, "code", None)
    return isinstance(code, str) and code in _NETWORK_CODES


def classify(error: Optional[BaseException]) -> FailureCategory:
    """Map *error* to a :class:`FailureCategory`.

    HTTP status wins when one is known, then transport-level signals
    (checked on the error and its ``__cause__``), then keywords in the
    message.
    """
    if error is None:
        return FailureCategory.UNKNOWN

    message = str(error)
    status, body = _status_and_body(error)
    if status is not None:
        if status == 401:
            if _mentions_expiry(body, message):
                return FailureCategory.EXPIRED_TOKEN
            return FailureCategory.INVALID_CREDENTIALS
        if status == 403:
            return FailureCategory.INVALID_CREDENTIALS
        if status == 429:
            return FailureCategory.RATE_LIMITED
        if 500 <= status <= 599:
            return FailureCategory.SERVER_ERROR

    for candidate in (error, error.__cause__):
        if candidate is not None and _is_transport_error(candidate):
            return FailureCategory.NETWORK_ERROR

    lowered = message.lower()
    if any(word in lowered for word in ("network", "connection", "timeout")):
        return FailureCategory.NETWORK_ERROR
    if any(word in lowered for word in ("invalid", "unauthorized", "forbidden")):
        return FailureCategory.INVALID_CREDENTIALS
    if "expired" in lowered:
        return FailureCategory.EXPIRED_TOKEN
    if "rate limit" in lowered or "too many" in lowered:
        return FailureCategory.RATE_LIMITED
    return FailureCategory.UNKNOWN


def should_clear_credential(category: FailureCategory) -> bool:
    """Only an expired token invalidates what is stored."""
    return category is FailureCategory.EXPIRED_TOKEN


# ------------------------------------------------------------------ #
# Remediation
# ------------------------------------------------------------------ #

_INVALID_HINTS: dict[str, list[str]] = {
    "vendor_key": [
        "Check your vendor key format: pk_xxx.sk_xxx",
        "Verify the key is active in your account dashboard",
        "Ensure you copied the complete key including both parts",
    ],
    "jwt": [
        "Check that the token was copied completely",
        "Tokens are tied to one account; make sure it belongs to this service",
        "Request a new token if this one was revoked",
    ],
    "oauth": [
        "Sign in again and approve the requested permissions",
        "Make sure you are signing in with the right account",
    ],
}


def _category_text(
    category: FailureCategory,
    method: AuthMethod,
    failure_count: int,
    api_base: str,
    error_message: Optional[str],
) -> tuple[str, list[str]]:
    if category is FailureCategory.INVALID_CREDENTIALS:
        return "Invalid credentials provided", list(_INVALID_HINTS[method])
    if category is FailureCategory.NETWORK_ERROR:
        hints = [
            "Check your internet connection",
            f"Verify you can access {api_base}",
            "Try again in a few moments",
        ]
        if failure_count >= 2:
            hints.append("Consider using a different network if issues persist")
        return "Network connection failed", hints
    if category is FailureCategory.SERVER_ERROR:
        return "Server temporarily unavailable", [
            "The authentication service may be experiencing issues",
            "Please try again in a few minutes",
        ]
    if category is FailureCategory.RATE_LIMITED:
        return "Too many authentication attempts", [
            "Please wait before trying again",
            "Rate limiting helps protect your account",
            "Consider using a vendor key for automated access",
        ]
    if category is FailureCategory.EXPIRED_TOKEN:
        return "Authentication token has expired", [
            "Log in again to refresh your session",
            "Consider using a vendor key for longer-term access",
            "The stored credential has been cleared",
        ]
    return f"Unexpected error: {error_message or 'Unknown error'}", [
        "Please try again",
        "If the problem persists, run: maascli auth diagnose",
    ]


def _recovery_options(method: AuthMethod, failure_count: int) -> list[str]:
    if method == "vendor_key":
        options = [
            "Generate a new vendor key from your dashboard",
            "Try: maascli auth logout && maascli auth login",
            "Switch to browser login: maascli auth login --oauth",
        ]
    else:
        options = [
            "Try vendor key authentication instead: maascli auth login --vendor-key pk_xxx.sk_xxx",
            "Clear stored credentials: maascli auth logout",
        ]
        if method == "jwt":
            options.append("Switch to browser login: maascli auth login --oauth")
    if failure_count >= ESCALATION_THRESHOLD:
        options.append("Regenerate your credentials or switch to a different auth method")
        options.append("Contact support if issues persist, including the error details")
    return options


def remediation(
    category: FailureCategory,
    method: AuthMethod,
    failure_count: int,
    last_failure_at: Optional[datetime] = None,
    api_base: str = "https://api.lanonasis.com",
    error_message: Optional[str] = None,
) -> Guidance:
    """Build progressive guidance for a failed attempt.

    Args:
        category: Result of :func:`classify`.
        method: Auth method that was attempted.
        failure_count: Consecutive failures *including* this one.
        last_failure_at: Timestamp of the latest failure, for display.
        api_base: API base URL mentioned in network hints.
        error_message: Raw error text, used only for the unknown category.

    Returns:
        A :class:`Guidance` whose :attr:`~Guidance.recovery` list is empty
        below :data:`RECOVERY_THRESHOLD` failures.
    """
    headline, hints = _category_text(category, method, failure_count, api_base, error_message)
    recovery = _recovery_options(method, failure_count) if failure_count >= RECOVERY_THRESHOLD else []
    return Guidance(
        category=category,
        headline=headline,
        hints=hints,
        recovery=recovery,
        failure_count=failure_count,
        last_failure_at=last_failure_at,
    )
