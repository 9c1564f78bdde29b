"""Login orchestration: backoff gate, PKCE browser flow, static credentials, logout.

A single :class:`LoginFlow` ties the auth components together for one
profile::

    gate (BackoffController)
      -> generate_pkce
      -> CallbackListener.listen()  (started before the browser opens)
      -> browser handoff
      -> TokenExchanger.exchange
      -> CredentialStore.save, failure state cleared

Any failure along the way is classified, recorded in the profile's
:class:`~maascli.models.AuthFailureState`, and re-raised as
:class:`~maascli.exceptions.AuthenticationFailedError` carrying the
remediation :class:`~maascli.auth.failures.Guidance`. The backoff delay
gates the *next* attempt, never the one that just failed.
"""

from __future__ import annotations

import logging
import threading
import webbrowser
from datetime import datetime, timezone
from typing import Callable, Optional
from urllib.parse import urlencode

from maascli.auth.backoff import BackoffController
from maascli.auth.callback import CallbackListener
from maascli.auth.credential_store import CredentialStore
from maascli.auth.credentials import credential_from_token_response, needs_refresh
from maascli.auth.failures import (
    AuthMethod,
    FailureCategory,
    Guidance,
    classify,
    remediation,
    should_clear_credential,
)
from maascli.auth.pkce import generate_pkce
from maascli.auth.token_exchange import TokenExchanger
from maascli.auth.vendor_key import validate_vendor_key
from maascli.exceptions import (
    ApiError,
    AuthenticationFailedError,
    AuthError,
    BackoffActiveError,
    ConnectionError_,
    InvalidUsageError,
)
from maascli.models import (
    AuthFailureState,
    Credential,
    JWTCredential,
    OAuthCredential,
    OAuthSettings,
    PKCECodes,
    VendorKeyCredential,
)

logger = logging.getLogger(__name__)

Validator = Callable[[Credential], None]
"""Raises (``ApiError``, ``ConnectionError_``, ...) when the server rejects a credential."""

_RECORDABLE = (AuthError, ApiError, ConnectionError_)


def build_authorize_url(settings: OAuthSettings, codes: PKCECodes, redirect_uri: str) -> str:
    """Return the ``/oauth/authorize`` URL for one login attempt."""
    params = {
        "response_type": "code",
        "client_id": settings.client_id,
        "redirect_uri": redirect_uri,
        "scope": settings.scope,
        "code_challenge": codes.challenge,
        "code_challenge_method": "S256",
        "state": codes.state,
    }
    return f"{settings.authorize_url}?{urlencode(params)}"


class LoginFlow:
    """Authenticate one profile and keep its credential fresh.

    Args:
        settings: OAuth endpoints, client id, callback port and timeouts.
        store: Credential store of the active profile.
        exchanger: Token endpoint client. Built from *settings* by default.
        backoff: Failure gate. Defaults to the standard schedule.
        validator: Live server check for vendor keys and JWTs. When
            ``None`` credentials are stored without validation.
        open_browser: Called with the authorization URL on a background
            thread. Defaults to :func:`webbrowser.open`.
        pkce_factory: Produces the PKCE codes for each attempt.
        api_base: Shown in network remediation hints.
        on_delay: Called with ``(state, seconds)`` before the gate sleeps.
    """

    def __init__(
        self,
        settings: OAuthSettings,
        store: CredentialStore,
        exchanger: Optional[TokenExchanger] = None,
        backoff: Optional[BackoffController] = None,
        validator: Optional[Validator] = None,
        open_browser: Callable[[str], object] = webbrowser.open,
        pkce_factory: Callable[[], PKCECodes] = generate_pkce,
        api_base: str = "https://api.lanonasis.com",
        on_delay: Optional[Callable[[AuthFailureState, float], None]] = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.exchanger = exchanger or TokenExchanger(
            client_id=settings.client_id,
            token_endpoint=settings.token_url,
            timeout=settings.exchange_timeout,
            revoke_endpoint=settings.revoke_url,
        )
        self.backoff = backoff or BackoffController()
        self.validator = validator
        self._open_browser = open_browser
        self._pkce_factory = pkce_factory
        self._api_base = api_base
        self._on_delay = on_delay

    # ------------------------------------------------------------------ #
    # Backoff gate
    # ------------------------------------------------------------------ #

    def gate(self, wait: bool = True) -> float:
        """Wait out any delay owed by previous failures.

        Args:
            wait: When ``False``, raise instead of sleeping.

        Returns:
            Seconds waited.

        Raises:
            BackoffActiveError: If a delay applies and *wait* is ``False``.
        """
        state = self.store.load_failures()
        delay = self.backoff.delay_for(state)
        if delay <= 0:
            return 0.0
        if not wait:
            raise BackoffActiveError(
                f"{state.count} recent authentication failures; "
                f"wait {delay:.0f}s before trying again",
                delay=delay,
            )
        if self._on_delay is not None:
            self._on_delay(state, delay)
        return self.backoff.wait(state)

    # ------------------------------------------------------------------ #
    # Login methods
    # ------------------------------------------------------------------ #

    def login_oauth(
        self,
        port: Optional[int] = None,
        launch_browser: bool = True,
        on_authorize_url: Optional[Callable[[str], None]] = None,
        wait: bool = True,
    ) -> OAuthCredential:
        """Run the authorization-code + PKCE flow and store the tokens.

        Args:
            port: Callback port. Defaults to ``settings.callback_port``;
                ``0`` binds an ephemeral port.
            launch_browser: Open the authorization URL automatically.
            on_authorize_url: Called with the URL so it can be shown to the
                user (needed when *launch_browser* is ``False``).
            wait: Passed to :meth:`gate`.

        Raises:
            AuthenticationFailedError: The attempt failed and was recorded.
            BackoffActiveError: A delay applies and *wait* is ``False``.
        """
        self.gate(wait=wait)
        codes = self._pkce_factory()
        listener = CallbackListener(
            port=self.settings.callback_port if port is None else port,
            timeout=self.settings.callback_timeout,
            expected_state=codes.state,
        )
        try:
            future = listener.listen()
            redirect_uri = self.settings.redirect_uri(listener.port)
            url = build_authorize_url(self.settings, codes, redirect_uri)
            if on_authorize_url is not None:
                on_authorize_url(url)
            if launch_browser:
                self._launch_browser(url)

            callback = future.result()
            tokens = self.exchanger.exchange(callback.code, codes.verifier, redirect_uri)
        except AuthError as exc:
            raise self._fail(exc, "oauth") from exc
        finally:
            listener.cancel()

        credential = credential_from_token_response(tokens)
        self._succeed(credential)
        logger.debug("OAuth login stored for profile %s", self.store.profile_name)
        return credential

    def login_vendor_key(self, raw: str, wait: bool = True) -> VendorKeyCredential:
        """Validate a vendor key (format, then server) and store it.

        Raises:
            VendorKeyFormatError: The key is malformed. Not recorded as a
                failed attempt.
            AuthenticationFailedError: The server rejected the key.
        """
        credential = VendorKeyCredential(raw=validate_vendor_key(raw))
        self.gate(wait=wait)
        self._validate(credential, "vendor_key")
        self._succeed(credential)
        return credential

    def login_jwt(self, token: str, wait: bool = True) -> JWTCredential:
        """Validate an opaque bearer token against the server and store it."""
        token = (token or "").strip()
        if not token:
            raise InvalidUsageError("Token is required")
        credential = JWTCredential(token=token)
        self.gate(wait=wait)
        self._validate(credential, "jwt")
        self._succeed(credential)
        return credential

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def ensure_fresh_credential(self, now: Optional[datetime] = None) -> Optional[Credential]:
        """Return the stored credential, refreshing an OAuth token in its buffer.

        Returns:
            The usable credential, or ``None`` if nothing is stored.

        Raises:
            AuthError: The OAuth session expired and has no refresh token.
            AuthenticationFailedError: The refresh request failed.
        """
        credential = self.store.load()
        if not isinstance(credential, OAuthCredential) or not needs_refresh(credential, now):
            return credential

        if not credential.refresh_token:
            self.store.clear()
            raise AuthError("OAuth session expired. Run: maascli auth login --oauth")

        logger.debug("Refreshing OAuth token for profile %s", self.store.profile_name)
        try:
            tokens = self.exchanger.refresh(credential.refresh_token)
        except AuthError as exc:
            failure = self._fail(exc, "oauth")
            if failure.category is FailureCategory.INVALID_CREDENTIALS:
                self.store.clear()
            raise failure from exc

        refreshed = credential_from_token_response(
            tokens, now=now, previous_refresh_token=credential.refresh_token
        )
        self.store.save(refreshed)
        return refreshed

    def logout(self) -> bool:
        """Forget the credential and failure history of the profile.

        An OAuth refresh token is revoked first, best effort.

        Returns:
            ``True`` if a token was revoked server-side.
        """
        credential = self.store.load()
        revoked = False
        if isinstance(credential, OAuthCredential) and credential.refresh_token:
            revoked = self.exchanger.revoke(credential.refresh_token)
            if not revoked:
                logger.info("Refresh token revocation was not acknowledged")
        self.store.remove()
        return revoked

    def record_failure(self, error: BaseException, method: AuthMethod) -> Guidance:
        """Classify *error*, bump the failure counter, and build guidance.

        An expired token also clears the stored credential so that the next
        attempt forces a fresh login.
        """
        category = classify(error)
        state = self.backoff.record_failure(self.store.load_failures())
        self.store.save_failures(state)
        if should_clear_credential(category):
            self.store.clear()
        logger.debug(
            "Recorded %s failure #%d for profile %s", category.value, state.count, self.store.profile_name
        )
        return remediation(
            category,
            method,
            state.count,
            last_failure_at=state.last_failure_at,
            api_base=self._api_base,
            error_message=str(error),
        )

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _validate(self, credential: Credential, method: AuthMethod) -> None:
        if self.validator is None:
            return
        try:
            self.validator(credential)
        except _RECORDABLE as exc:
            raise self._fail(exc, method) from exc

    def _fail(self, error: BaseException, method: AuthMethod) -> AuthenticationFailedError:
        guidance = self.record_failure(error, method)
        return AuthenticationFailedError(guidance.headline, guidance.category, guidance)

    def _succeed(self, credential: Credential) -> None:
        self.store.save(credential)
        self.store.save_failures(self.backoff.clear())

    def _launch_browser(self, url: str) -> None:
        def _open() -> None:
            try:
                self._open_browser(url)
            except Exception as exc:  # browser handoff is advisory
                logger.warning("Could not open a browser: %s", exc)

        threading.Thread(target=_open, name="maascli-browser", daemon=True).start()


def failure_summary(state: AuthFailureState, now: Optional[datetime] = None) -> str:
    """Human-readable summary such as ``"3 failures, last 2m ago"``."""
    if state.count == 0:
        return "no recent failures"
    noun = "failure" if state.count == 1 else "failures"
    if state.last_failure_at is None:
        return f"{state.count} {noun}"
    now = now or datetime.now(timezone.utc)
    last = state.last_failure_at
    if last.tzinfo is None:
        last = last.replace(tzinfo=timezone.utc)
    seconds = max(int((now - last).total_seconds()), 0)
    if seconds < 60:
        ago = f"{seconds}s ago"
    elif seconds < 3600:
        ago = f"{seconds // 60}m ago"
    else:
        ago = f"{seconds // 3600}h ago"
    return f"{state.count} {noun}, last {ago}"
