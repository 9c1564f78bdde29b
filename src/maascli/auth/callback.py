"""Single-use local HTTP listener for the OAuth redirect.

:class:`CallbackListener` binds a loopback port, serves exactly one
``GET /callback`` request, answers it with a static HTML page, and resolves
a :class:`concurrent.futures.Future` with the authorization code. A timer
races the request: whichever finishes first wins and the other is
cancelled, so the port is never left bound.

The listener is reachable by any local process while it is open, so every
response carries ``nosniff`` / ``DENY`` framing headers and any text echoed
back from the query string is HTML-escaped.
"""

from __future__ import annotations

import html
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional
from urllib.parse import parse_qs, urlparse

from maascli.exceptions import (
    AuthError,
    CallbackError,
    CallbackTimeoutError,
    LoginCancelledError,
    StateMismatchError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store",
}

_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body style="font-family: monospace; background: #1a1a1a; color: {color}; padding: 40px; text-align: center;">
<h2>{title}</h2>
<p>{message}</p>
<p style="color: #888;">You can close this window and return to the terminal.</p>
</body>
</html>
"""


def render_page(title: str, message: str, success: bool) -> str:
    """Render the confirmation page. *message* is always HTML-escaped."""
    return _PAGE.format(
        title=html.escape(title),
        message=html.escape(message),
        color="#27c93f" if success else "#ff5f56",
    )


@dataclass(frozen=True)
class CallbackResult:
    """Authorization code and state delivered by the redirect."""

    code: str
    state: str


class _CallbackServer(ThreadingHTTPServer):
    listener: "CallbackListener"
    daemon_threads = True
    block_on_close = False


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackServer

    # Idle connections (browser preconnects, port scanners) are dropped.
    timeout = 5

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        listener = self.server.listener
        if parsed.path != listener.path:
            self._send(404, render_page("Not Found", "Unknown path.", success=False))
            return
        if listener.done:
            self._send(409, render_page("Already Handled", "This login attempt is finished.", success=False))
            return

        params = parse_qs(parsed.query)
        code = _first(params, "code")
        state = _first(params, "state")
        error = _first(params, "error")
        description = _first(params, "error_description")

        outcome: CallbackResult | AuthError
        if error:
            message = description or error
            self._send(400, render_page("Authentication Failed", message, success=False))
            outcome = CallbackError(
                f"Authorization failed: {message}", error=error, description=description
            )
        elif listener.expected_state is not None and state != listener.expected_state:
            self._send(400, render_page("Security Error", "State mismatch - possible CSRF attack.", success=False))
            outcome = StateMismatchError("State mismatch - possible CSRF attack")
        elif not code:
            self._send(400, render_page("Authentication Failed", "No authorization code received.", success=False))
            outcome = CallbackError("No authorization code received")
        else:
            self._send(200, render_page("Authentication Successful", "Authorization code received.", success=True))
            outcome = CallbackResult(code=code, state=state or "")

        listener._complete(outcome)

    def _send(self, status: int, body: str) -> None:
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.send_header("Connection", "close")
        for name, value in _SECURITY_HEADERS.items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format: str, *args: object) -> None:
        logger.debug("callback listener: " + format, *args)


def _first(params: dict[str, list[str]], key: str) -> Optional[str]:
    values = params.get(key)
    return values[0] if values else None


class CallbackListener:
    """Serve one OAuth redirect on a loopback port, with a hard timeout.

    Args:
        port: Port to bind. ``0`` picks a free ephemeral port; read
            :attr:`port` after :meth:`listen` for the actual value.
        host: Interface to bind. Defaults to IPv4 loopback.
        timeout: Seconds to wait for the redirect before failing with
            :class:`~maascli.exceptions.CallbackTimeoutError`.
        expected_state: When set, a redirect whose ``state`` differs is
            rejected with :class:`~maascli.exceptions.StateMismatchError`.
        path: Redirect path to accept.

    Example::

        listener = CallbackListener(port=8899, expected_state=codes.state)
        future = listener.listen()
        webbrowser.open(auth_url)
        result = future.result()
    """

    poll_interval = 0.1

    def __init__(
        self,
        port: int = 8899,
        host: str = "127.0.0.1",
        timeout: float = DEFAULT_TIMEOUT,
        expected_state: Optional[str] = None,
        path: str = "/callback",
    ) -> None:
        self.host = host
        self.timeout = timeout
        self.expected_state = expected_state
        self.path = path
        self._requested_port = port
        self._server: Optional[_CallbackServer] = None
        self._thread: Optional[threading.Thread] = None
        self._timer: Optional[threading.Timer] = None
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._future: Future[CallbackResult] = Future()

    @property
    def port(self) -> int:
        """The bound port (the requested one until :meth:`listen` is called)."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._requested_port

    @property
    def done(self) -> bool:
        return self._future.done()

    def listen(self) -> Future[CallbackResult]:
        """Bind the port and start waiting for the redirect.

        Returns:
            A future that resolves to a :class:`CallbackResult`, or fails
            with a :class:`~maascli.exceptions.CallbackError` subclass.

        Raises:
            CallbackError: If the port cannot be bound.
            RuntimeError: If called twice.
        """
        if self._server is not None:
            raise RuntimeError("CallbackListener.listen() may only be called once")
        try:
            server = _CallbackServer((self.host, self._requested_port), _CallbackHandler)
        except OSError as exc:
            raise CallbackError(
                f"Failed to start callback server on port {self._requested_port}: {exc}"
            ) from exc
        server.listener = self
        server.timeout = self.poll_interval
        self._server = server

        self._thread = threading.Thread(
            target=self._serve, args=(server,), name="maascli-callback", daemon=True
        )
        self._thread.start()

        self._timer = threading.Timer(self.timeout, self._on_timeout)
        self._timer.daemon = True
        self._timer.start()

        logger.debug("Callback listener on %s:%d (timeout %.0fs)", self.host, self.port, self.timeout)
        return self._future

    def cancel(self) -> None:
        """Stop listening, release the port, and fail the future if still pending."""
        self._shutdown()
        self._complete(LoginCancelledError("Login cancelled before a callback was received"))

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _serve(self, server: _CallbackServer) -> None:
        try:
            while not self._stop.is_set():
                server.handle_request()
        finally:
            server.server_close()
            logger.debug("Callback listener on port %d closed", self.port)

    def _on_timeout(self) -> None:
        if self.done:
            return
        self._shutdown()
        self._complete(
            CallbackTimeoutError(
                f"Authentication timeout - no callback received within {self.timeout:.0f}s"
            )
        )

    def _shutdown(self) -> None:
        """Stop the serve loop and wait until the socket is closed."""
        self._stop.set()
        if self._timer is not None:
            self._timer.cancel()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.poll_interval * 10 + 1.0)
            if thread.is_alive() and self._server is not None:
                logger.debug("Serve loop still running; closing the listening socket directly")
                self._server.server_close()

    def _complete(self, outcome: CallbackResult | BaseException) -> None:
        """Resolve the future once; later outcomes are discarded."""
        with self._lock:
            if self._future.done():
                return
            if isinstance(outcome, BaseException):
                self._future.set_exception(outcome)
            else:
                self._future.set_result(outcome)
        self._stop.set()
        if self._timer is not None:
            self._timer.cancel()
