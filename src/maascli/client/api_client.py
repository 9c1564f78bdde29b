"""Direct HTTP client for the memory service API.

:class:`ApiClient` wraps :class:`httpx.Client` and layers on:

- **Auth injection** -- headers derived from the active
  :data:`~maascli.models.Credential` (``X-API-Key`` for vendor keys,
  ``Authorization: Bearer`` otherwise).
- **Retry with backoff** -- idempotent requests are retried on 5xx and
  network errors with exponential delay (1 s, 2 s, 4 s, ...).
- **Error mapping** -- error statuses raise
  :class:`~maascli.exceptions.ApiError`, transport failures raise
  :class:`~maascli.exceptions.ConnectionError_`.

This is the retry layer behind the router's API path; the router itself
never retries.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Sequence

import httpx

from maascli.auth.credentials import auth_headers
from maascli.exceptions import ApiError, ConnectionError_
from maascli.models import Credential

logger = logging.getLogger(__name__)

_IDEMPOTENT = frozenset({"GET", "HEAD", "DELETE"})
_MEMORY = "/api/v1/memory"


class ApiClient:
    """Blocking client for the memory service.

    Must be used as a context manager so the underlying transport is
    opened and closed properly.

    Args:
        base_url: API base, e.g. ``https://api.lanonasis.com``.
        credential: Credential injected into every request. ``None`` sends
            unauthenticated requests (enough for ``/health``).
        timeout: Per-request timeout in seconds.
        max_retries: Extra attempts for retryable requests.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
        sleep: Called with the delay between retries.

    Example::

        with ApiClient(config.api_base, credential) as client:
            memories = client.list_memories(limit=10)
    """

    def __init__(
        self,
        base_url: str,
        credential: Optional[Credential] = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._credential = credential
        self._timeout = timeout
        self._max_retries = max_retries
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.Client] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> ApiClient:
        headers = {"Accept": "application/json"}
        if self._credential is not None:
            headers.update(auth_headers(self._credential))
        self._client = httpx.Client(
            base_url=self._base_url,
            headers=headers,
            timeout=self._timeout,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Memory service operations
    # ------------------------------------------------------------------ #

    def health(self) -> Any:
        return self.request("GET", "/health")

    def list_memories(
        self,
        limit: Optional[int] = None,
        memory_type: Optional[str] = None,
        tags: Sequence[str] = (),
        sort_by: Optional[str] = None,
    ) -> Any:
        params: dict[str, Any] = {}
        if limit:
            params["limit"] = limit
        if memory_type:
            params["memory_type"] = memory_type
        if tags:
            params["tags"] = ",".join(tags)
        if sort_by:
            params["sort"] = sort_by
        return self.request("GET", _MEMORY, params=params or None)

    def create_memory(
        self,
        title: str,
        content: str,
        memory_type: str = "context",
        tags: Sequence[str] = (),
        topic_id: Optional[str] = None,
    ) -> Any:
        body: dict[str, Any] = {"title": title, "content": content, "memory_type": memory_type}
        if tags:
            body["tags"] = list(tags)
        if topic_id:
            body["topic_id"] = topic_id
        return self.request("POST", _MEMORY, json_body=body)

    def search_memories(
        self,
        query: str,
        limit: Optional[int] = None,
        memory_types: Sequence[str] = (),
    ) -> Any:
        body: dict[str, Any] = {"query": query}
        if limit:
            body["limit"] = limit
        if memory_types:
            body["memory_types"] = list(memory_types)
        # Search does not modify state, so it is safe to retry.
        return self.request("POST", f"{_MEMORY}/search", json_body=body, retry=True)

    def get_memory(self, memory_id: str) -> Any:
        return self.request("GET", f"{_MEMORY}/{memory_id}")

    def delete_memory(self, memory_id: str) -> Any:
        return self.request("DELETE", f"{_MEMORY}/{memory_id}")

    # ------------------------------------------------------------------ #
    # Request plumbing
    # ------------------------------------------------------------------ #

    def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json_body: Optional[Any] = None,
        retry: Optional[bool] = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path appended to the base URL.
            params: Query parameters.
            json_body: JSON request body.
            retry: Force retry on or off. Defaults to on for idempotent
                methods only.

        Returns:
            The parsed JSON body, the raw text for non-JSON bodies, or
            ``None`` for an empty body (e.g. 204).

        Raises:
            ApiError: On 4xx / 5xx (after retries for 5xx).
            ConnectionError_: On network / timeout errors after retries.
        """
        method = method.upper()
        if retry is None:
            retry = method in _IDEMPOTENT
        response = self._execute_with_retry(method, path, params, json_body, retry)
        self._map_response_error(response)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _execute_with_retry(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]],
        json_body: Optional[Any],
        retry: bool,
    ) -> httpx.Response:
        if self._client is None:
            raise RuntimeError("Client not initialised -- use as context manager")

        max_retries = self._max_retries if retry else 0
        for attempt in range(max_retries + 1):
            try:
                response = self._client.request(method, path, params=params, json=json_body)
            except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
                if attempt < max_retries:
                    delay = 2 ** attempt
                    logger.debug(
                        "Connection error: %s, retrying in %ds (attempt %d/%d)",
                        exc, delay, attempt + 1, max_retries,
                    )
                    self._sleep(delay)
                    continue
                raise ConnectionError_(
                    f"Connection to {self._base_url} failed after {attempt + 1} attempt(s): {exc}"
                ) from exc

            if response.status_code >= 500 and attempt < max_retries:
                delay = 2 ** attempt
                logger.debug(
                    "Server error %d, retrying in %ds (attempt %d/%d)",
                    response.status_code, delay, attempt + 1, max_retries,
                )
                self._sleep(delay)
                continue
            return response

        raise AssertionError("unreachable")  # pragma: no cover

    @staticmethod
    def _map_response_error(response: httpx.Response) -> None:
        """Raise :class:`ApiError` for error HTTP status codes."""
        status = response.status_code
        if status < 400:
            return

        body: Any
        try:
            body = response.json()
            if isinstance(body, dict):
                msg = body.get("message") or body.get("error") or body.get("detail") or ""
            else:
                msg = str(body)
        except ValueError:
            body = response.text
            msg = response.text[:200] if response.text else ""

        full_msg = f"HTTP {status}: {msg}" if msg else f"HTTP {status}"
        raise ApiError(full_msg, status=status, body=body)


def validate_credential(
    base_url: str,
    timeout: float = 30.0,
    transport: Optional[httpx.BaseTransport] = None,
) -> Callable[[Credential], None]:
    """Return a validator that checks a credential with an authenticated health call.

    The validator raises :class:`ApiError` / :class:`ConnectionError_` when
    the server rejects the credential or cannot be reached.
    """

    def _validate(credential: Credential) -> None:
        with ApiClient(base_url, credential, timeout=timeout, max_retries=0, transport=transport) as client:
            client.health()

    return _validate
