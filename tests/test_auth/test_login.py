"""Tests for the login flow: OAuth end to end, static credentials, refresh, logout."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from http.client import HTTPConnection
from pathlib import Path
from typing import Any, Callable
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from maascli.auth.backoff import BackoffController
from maascli.auth.credential_store import CredentialStore
from maascli.auth.failures import FailureCategory
from maascli.auth.login import LoginFlow, build_authorize_url, failure_summary
from maascli.auth.token_exchange import TokenExchanger
from maascli.exceptions import (
    ApiError,
    AuthenticationFailedError,
    AuthError,
    BackoffActiveError,
    ConnectionError_,
    InvalidUsageError,
    VendorKeyFormatError,
)
from maascli.models import (
    AuthFailureState,
    JWTCredential,
    OAuthCredential,
    OAuthSettings,
    PKCECodes,
    VendorKeyCredential,
)

VENDOR_KEY = "pk_abcd1234.sk_abcdefgh12345678"
NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
CODES = PKCECodes(verifier="v" * 43, challenge="c" * 43, state="xyz")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> CredentialStore:
    monkeypatch.setattr("maascli.auth.credential_store.get_data_dir", lambda: tmp_path)
    return CredentialStore("default")


@pytest.fixture()
def settings() -> OAuthSettings:
    return OAuthSettings(auth_base="https://auth.example.com", callback_timeout=10.0)


class TokenServer:
    """Scriptable token endpoint behind an httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.token_reply: httpx.Response = httpx.Response(
            200, json={"access_token": "A", "refresh_token": "B", "expires_in": 3600}
        )
        self.revoke_reply: httpx.Response = httpx.Response(200)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request.url.path, body))
        if request.url.path.endswith("/revoke"):
            return self.revoke_reply
        return self.token_reply

    def exchanger(self, settings: OAuthSettings) -> TokenExchanger:
        return TokenExchanger(
            client_id=settings.client_id,
            token_endpoint=settings.token_url,
            revoke_endpoint=settings.revoke_url,
            http_client=httpx.Client(transport=httpx.MockTransport(self)),
        )


@pytest.fixture()
def token_server() -> TokenServer:
    return TokenServer()


def _redirecting_browser(**params: str) -> Callable[[str], None]:
    """Browser stand-in that follows the authorize URL straight to the callback."""

    def _open(url: str) -> None:
        query = parse_qs(urlparse(url).query)
        redirect = urlparse(query["redirect_uri"][0])
        payload = "&".join(f"{k}={v}" for k, v in params.items())
        conn = HTTPConnection("127.0.0.1", redirect.port, timeout=5)
        try:
            conn.request("GET", f"{redirect.path}?{payload}")
            conn.getresponse().read()
        finally:
            conn.close()

    return _open


def _flow(
    settings: OAuthSettings,
    store: CredentialStore,
    token_server: TokenServer,
    **kwargs: Any,
) -> LoginFlow:
    kwargs.setdefault("pkce_factory", lambda: CODES)
    kwargs.setdefault("backoff", BackoffController(sleep=lambda s: None))
    return LoginFlow(settings, store, exchanger=token_server.exchanger(settings), **kwargs)


# ---------------------------------------------------------------------------
# Authorize URL
# ---------------------------------------------------------------------------


class TestBuildAuthorizeUrl:
    def test_parameters(self, settings: OAuthSettings) -> None:
        url = build_authorize_url(settings, CODES, "http://localhost:8899/callback")
        parsed = urlparse(url)
        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == "https://auth.example.com/oauth/authorize"
        query = {k: v[0] for k, v in parse_qs(parsed.query).items()}
        assert query == {
            "response_type": "code",
            "client_id": settings.client_id,
            "redirect_uri": "http://localhost:8899/callback",
            "scope": settings.scope,
            "code_challenge": CODES.challenge,
            "code_challenge_method": "S256",
            "state": "xyz",
        }


# ---------------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------------


class TestLoginOAuth:
    def test_end_to_end(self, settings, store, token_server) -> None:
        flow = _flow(settings, store, token_server, open_browser=_redirecting_browser(code="abc", state="xyz"))
        before = datetime.now(timezone.utc)

        credential = flow.login_oauth(port=0)

        assert credential.access_token == "A"
        assert credential.refresh_token == "B"
        expected = before + timedelta(seconds=3600)
        assert abs((credential.expires_at - expected).total_seconds()) < 30
        assert store.load() == credential
        assert store.load_failures().count == 0

        path, body = token_server.requests[0]
        assert path == "/oauth/token"
        assert body["code"] == "abc"
        assert body["code_verifier"] == CODES.verifier
        assert body["redirect_uri"].startswith("http://localhost:")
        assert body["redirect_uri"].endswith("/callback")

    def test_authorize_url_reported(self, settings, store, token_server) -> None:
        urls: list[str] = []
        flow = _flow(settings, store, token_server, open_browser=_redirecting_browser(code="abc", state="xyz"))
        flow.login_oauth(port=0, on_authorize_url=urls.append)
        assert len(urls) == 1
        assert "code_challenge_method=S256" in urls[0]

    def test_exchange_failure_is_recorded(self, settings, store, token_server) -> None:
        token_server.token_reply = httpx.Response(503, json={"error": "unavailable"})
        flow = _flow(settings, store, token_server, open_browser=_redirecting_browser(code="abc", state="xyz"))

        with pytest.raises(AuthenticationFailedError) as exc_info:
            flow.login_oauth(port=0)

        assert exc_info.value.category is FailureCategory.SERVER_ERROR
        assert exc_info.value.guidance.headline == "Server temporarily unavailable"
        assert store.load() is None
        assert store.load_failures().count == 1

    def test_state_mismatch_is_recorded(self, settings, store, token_server) -> None:
        flow = _flow(settings, store, token_server, open_browser=_redirecting_browser(code="abc", state="evil"))
        with pytest.raises(AuthenticationFailedError):
            flow.login_oauth(port=0)
        assert store.load_failures().count == 1
        assert token_server.requests == []

    def test_denied_in_browser(self, settings, store, token_server) -> None:
        flow = _flow(
            settings, store, token_server, open_browser=_redirecting_browser(error="access_denied", state="xyz")
        )
        with pytest.raises(AuthenticationFailedError):
            flow.login_oauth(port=0)
        assert store.load_failures().count == 1

    def test_success_resets_failures(self, settings, store, token_server) -> None:
        store.save_failures(AuthFailureState(count=2, last_failure_at=NOW))
        flow = _flow(settings, store, token_server, open_browser=_redirecting_browser(code="abc", state="xyz"))
        flow.login_oauth(port=0)
        assert store.load_failures() == AuthFailureState()


# ---------------------------------------------------------------------------
# Static credentials
# ---------------------------------------------------------------------------


class TestLoginVendorKey:
    def test_validated_and_stored(self, settings, store, token_server) -> None:
        seen: list[Any] = []
        flow = _flow(settings, store, token_server, validator=seen.append)
        credential = flow.login_vendor_key(f" {VENDOR_KEY} ")
        assert credential == VendorKeyCredential(raw=VENDOR_KEY)
        assert seen == [credential]
        assert store.load() == credential

    def test_format_error_not_recorded(self, settings, store, token_server) -> None:
        called: list[Any] = []
        flow = _flow(settings, store, token_server, validator=called.append)
        with pytest.raises(VendorKeyFormatError):
            flow.login_vendor_key("not-a-key")
        assert called == []
        assert store.load_failures().count == 0

    def test_rejected_by_server(self, settings, store, token_server) -> None:
        def reject(credential: Any) -> None:
            raise ApiError("HTTP 401: Invalid API key", 401)

        flow = _flow(settings, store, token_server, validator=reject)
        with pytest.raises(AuthenticationFailedError) as exc_info:
            flow.login_vendor_key(VENDOR_KEY)
        assert exc_info.value.category is FailureCategory.INVALID_CREDENTIALS
        assert exc_info.value.guidance.hints[0] == "Check your vendor key format: pk_xxx.sk_xxx"
        assert store.load() is None
        assert store.load_failures().count == 1

    def test_network_failure(self, settings, store, token_server) -> None:
        def offline(credential: Any) -> None:
            raise ConnectionError_("Connection to https://api.example.com failed")

        flow = _flow(settings, store, token_server, validator=offline)
        with pytest.raises(AuthenticationFailedError) as exc_info:
            flow.login_vendor_key(VENDOR_KEY)
        assert exc_info.value.category is FailureCategory.NETWORK_ERROR

    def test_recovery_after_repeated_failures(self, settings, store, token_server) -> None:
        def reject(credential: Any) -> None:
            raise ApiError("HTTP 401: Invalid API key", 401)

        flow = _flow(settings, store, token_server, validator=reject)
        guidance = None
        for _ in range(3):
            with pytest.raises(AuthenticationFailedError) as exc_info:
                flow.login_vendor_key(VENDOR_KEY)
            guidance = exc_info.value.guidance
        assert guidance is not None
        assert guidance.failure_count == 3
        assert guidance.recovery[0] == "Generate a new vendor key from your dashboard"


class TestLoginJwt:
    def test_stored(self, settings, store, token_server) -> None:
        flow = _flow(settings, store, token_server)
        assert flow.login_jwt("tok") == JWTCredential(token="tok")
        assert store.load() == JWTCredential(token="tok")

    def test_empty_token(self, settings, store, token_server) -> None:
        with pytest.raises(InvalidUsageError):
            _flow(settings, store, token_server).login_jwt("  ")


# ---------------------------------------------------------------------------
# Backoff gate
# ---------------------------------------------------------------------------


class TestGate:
    def test_waits_when_failures_accumulate(self, settings, store, token_server) -> None:
        slept: list[float] = []
        announced: list[float] = []
        store.save_failures(AuthFailureState(count=4, last_failure_at=NOW))
        flow = _flow(
            settings,
            store,
            token_server,
            backoff=BackoffController(sleep=slept.append),
            on_delay=lambda state, delay: announced.append(delay),
        )
        flow.login_vendor_key(VENDOR_KEY)
        assert slept == [4.0]
        assert announced == [4.0]

    def test_no_wait_raises(self, settings, store, token_server) -> None:
        store.save_failures(AuthFailureState(count=3, last_failure_at=NOW))
        flow = _flow(settings, store, token_server)
        with pytest.raises(BackoffActiveError) as exc_info:
            flow.login_jwt("tok", wait=False)
        assert exc_info.value.delay == 2.0
        assert store.load() is None

    def test_no_delay_below_threshold(self, settings, store, token_server) -> None:
        store.save_failures(AuthFailureState(count=2, last_failure_at=NOW))
        assert _flow(settings, store, token_server).gate(wait=False) == 0.0


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------


class TestEnsureFreshCredential:
    def test_nothing_stored(self, settings, store, token_server) -> None:
        assert _flow(settings, store, token_server).ensure_fresh_credential(now=NOW) is None

    def test_fresh_token_untouched(self, settings, store, token_server) -> None:
        credential = OAuthCredential(access_token="A", refresh_token="B", expires_at=NOW + timedelta(hours=1))
        store.save(credential)
        assert _flow(settings, store, token_server).ensure_fresh_credential(now=NOW) == credential
        assert token_server.requests == []

    def test_refreshes_inside_buffer(self, settings, store, token_server) -> None:
        token_server.token_reply = httpx.Response(200, json={"access_token": "A2", "expires_in": 3600})
        store.save(OAuthCredential(access_token="A", refresh_token="B", expires_at=NOW + timedelta(minutes=2)))

        refreshed = _flow(settings, store, token_server).ensure_fresh_credential(now=NOW)

        assert isinstance(refreshed, OAuthCredential)
        assert refreshed.access_token == "A2"
        assert refreshed.refresh_token == "B"
        assert refreshed.expires_at == NOW + timedelta(seconds=3600)
        assert store.load() == refreshed
        assert token_server.requests[0][1]["grant_type"] == "refresh_token"

    def test_no_refresh_token_clears(self, settings, store, token_server) -> None:
        store.save(OAuthCredential(access_token="A", expires_at=NOW - timedelta(minutes=1)))
        with pytest.raises(AuthError, match="expired"):
            _flow(settings, store, token_server).ensure_fresh_credential(now=NOW)
        assert store.load() is None

    def test_expired_refresh_token_clears(self, settings, store, token_server) -> None:
        token_server.token_reply = httpx.Response(
            401, json={"error": "invalid_grant", "error_description": "Refresh token expired"}
        )
        store.save(OAuthCredential(access_token="A", refresh_token="B", expires_at=NOW))
        with pytest.raises(AuthenticationFailedError) as exc_info:
            _flow(settings, store, token_server).ensure_fresh_credential(now=NOW)
        assert exc_info.value.category is FailureCategory.EXPIRED_TOKEN
        assert store.load() is None
        assert store.load_failures().count == 1

    def test_revoked_refresh_token_clears(self, settings, store, token_server) -> None:
        token_server.token_reply = httpx.Response(401, json={"error": "invalid_grant"})
        store.save(OAuthCredential(access_token="A", refresh_token="B", expires_at=NOW))
        with pytest.raises(AuthenticationFailedError) as exc_info:
            _flow(settings, store, token_server).ensure_fresh_credential(now=NOW)
        assert exc_info.value.category is FailureCategory.INVALID_CREDENTIALS
        assert store.load() is None

    def test_server_error_keeps_credential(self, settings, store, token_server) -> None:
        token_server.token_reply = httpx.Response(502, json={"error": "bad gateway"})
        credential = OAuthCredential(access_token="A", refresh_token="B", expires_at=NOW)
        store.save(credential)
        with pytest.raises(AuthenticationFailedError):
            _flow(settings, store, token_server).ensure_fresh_credential(now=NOW)
        assert store.load() == credential

    def test_static_credential_returned(self, settings, store, token_server) -> None:
        store.save(VendorKeyCredential(raw=VENDOR_KEY))
        assert _flow(settings, store, token_server).ensure_fresh_credential(now=NOW) == VendorKeyCredential(
            raw=VENDOR_KEY
        )


# ---------------------------------------------------------------------------
# Logout and failure bookkeeping
# ---------------------------------------------------------------------------


class TestLogout:
    def test_revokes_refresh_token(self, settings, store, token_server) -> None:
        store.save(OAuthCredential(access_token="A", refresh_token="B", expires_at=NOW))
        store.save_failures(AuthFailureState(count=2, last_failure_at=NOW))

        assert _flow(settings, store, token_server).logout() is True

        path, body = token_server.requests[0]
        assert path == "/oauth/revoke"
        assert body["token"] == "B"
        assert not store.exists()

    def test_revocation_failure_still_logs_out(self, settings, store, token_server) -> None:
        token_server.revoke_reply = httpx.Response(500)
        store.save(OAuthCredential(access_token="A", refresh_token="B", expires_at=NOW))
        assert _flow(settings, store, token_server).logout() is False
        assert store.load() is None

    def test_vendor_key_not_revoked(self, settings, store, token_server) -> None:
        store.save(VendorKeyCredential(raw=VENDOR_KEY))
        assert _flow(settings, store, token_server).logout() is False
        assert token_server.requests == []
        assert not store.exists()


class TestRecordFailure:
    def test_expired_clears_credential(self, settings, store, token_server) -> None:
        store.save(JWTCredential(token="tok"))
        guidance = _flow(settings, store, token_server).record_failure(
            ApiError("HTTP 401: jwt expired", 401), "jwt"
        )
        assert guidance.category is FailureCategory.EXPIRED_TOKEN
        assert store.load() is None

    def test_other_categories_keep_credential(self, settings, store, token_server) -> None:
        store.save(JWTCredential(token="tok"))
        _flow(settings, store, token_server).record_failure(ApiError("HTTP 429: slow down", 429), "jwt")
        assert store.load() == JWTCredential(token="tok")
        assert store.load_failures().count == 1


class TestFailureSummary:
    def test_none(self) -> None:
        assert failure_summary(AuthFailureState()) == "no recent failures"

    def test_minutes(self) -> None:
        state = AuthFailureState(count=3, last_failure_at=NOW - timedelta(minutes=2))
        assert failure_summary(state, now=NOW) == "3 failures, last 2m ago"

    def test_singular_seconds(self) -> None:
        state = AuthFailureState(count=1, last_failure_at=NOW - timedelta(seconds=5))
        assert failure_summary(state, now=NOW) == "1 failure, last 5s ago"

    def test_hours(self) -> None:
        state = AuthFailureState(count=6, last_failure_at=NOW - timedelta(hours=3))
        assert failure_summary(state, now=NOW) == "6 failures, last 3h ago"
