"""Token endpoint client: authorization-code exchange, refresh, and revocation.

:class:`TokenExchanger` performs exactly one HTTP request per call and never
retries. Retry and backoff decisions belong to the caller, which feeds
failures through :func:`~maascli.auth.failures.classify` and
:class:`~maascli.auth.backoff.BackoffController`.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from maascli.exceptions import ExchangeError, ExchangeTimeoutError
from maascli.models import TokenResponse

logger = logging.getLogger(__name__)


class TokenExchanger:
    """Trade authorization codes and refresh tokens for access tokens.

    Args:
        client_id: Public OAuth client identifier sent with every request.
        token_endpoint: Absolute URL of ``/oauth/token``.
        timeout: Per-request timeout in seconds.
        http_client: Optional :class:`httpx.Client` to send requests with
            (mainly for tests). Defaults to module-level ``httpx.post``.
        revoke_endpoint: Absolute URL of ``/oauth/revoke`` for
            :meth:`revoke`.
    """

    def __init__(
        self,
        client_id: str,
        token_endpoint: str,
        timeout: float = 5.0,
        http_client: Optional[httpx.Client] = None,
        revoke_endpoint: Optional[str] = None,
    ) -> None:
        self.client_id = client_id
        self.token_endpoint = token_endpoint
        self.revoke_endpoint = revoke_endpoint
        self.timeout = timeout
        self._http_client = http_client

    def exchange(self, code: str, verifier: str, redirect_uri: str) -> TokenResponse:
        """Exchange an authorization code plus PKCE verifier for tokens.

        Raises:
            ExchangeError: On a non-2xx response, a transport failure, or a
                response without ``access_token``.
            ExchangeTimeoutError: When the endpoint does not answer in time.
        """
        body = {
            "grant_type": "authorization_code",
            "code": code,
            "code_verifier": verifier,
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
        }
        return self._request_token(body, "Token exchange")

    def refresh(self, refresh_token: str) -> TokenResponse:
        """Obtain a new access token using *refresh_token*.

        Raises:
            ExchangeError: Same conditions as :meth:`exchange`.
        """
        body = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
        }
        return self._request_token(body, "Token refresh")

    def revoke(self, token: str, token_type_hint: str = "refresh_token") -> bool:
        """Ask the server to revoke *token*. Best effort: never raises.

        Returns:
            ``True`` if the server acknowledged the revocation.
        """
        if not self.revoke_endpoint:
            return False
        try:
            response = self._post(
                self.revoke_endpoint,
                {"token": token, "token_type_hint": token_type_hint, "client_id": self.client_id},
            )
        except httpx.HTTPError as exc:
            logger.debug("Token revocation failed: %s", exc)
            return False
        return response.is_success

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _post(self, url: str, body: dict[str, str]) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if self._http_client is not None:
            return self._http_client.post(url, json=body, headers=headers, timeout=self.timeout)
        return httpx.post(url, json=body, headers=headers, timeout=self.timeout)

    def _request_token(self, body: dict[str, str], action: str) -> TokenResponse:
        try:
            response = self._post(self.token_endpoint, body)
        except httpx.TimeoutException as exc:
            raise ExchangeTimeoutError(
                f"{action} timed out after {self.timeout:.0f}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExchangeError(f"{action} failed: {exc}") from exc

        if not response.is_success:
            message, details = _error_from_response(response)
            raise ExchangeError(
                f"{action} failed ({response.status_code}): {message}",
                status=response.status_code,
                details=details,
            )

        try:
            return TokenResponse.model_validate(response.json())
        except ValueError as exc:
            # ValidationError is a ValueError, as is a JSON decode failure.
            reason = "missing 'access_token'" if isinstance(exc, ValidationError) else "invalid JSON"
            raise ExchangeError(
                f"{action} returned an unusable response: {reason}",
                status=response.status_code,
            ) from exc


def _error_from_response(response: httpx.Response) -> tuple[str, Any]:
    """Extract ``(message, details)`` from an error response body."""
    try:
        data = response.json()
    except ValueError:
        text = response.text.strip()
        return (text[:200] or response.reason_phrase or "request failed"), text or None

    if isinstance(data, dict):
        message = (
            data.get("error_description")
            or data.get("error")
            or data.get("message")
            or response.reason_phrase
            or "request failed"
        )
        return str(message), data.get("details", data)
    return str(data), data
