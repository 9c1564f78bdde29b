"""Helpers over the :data:`~maascli.models.Credential` union.

Expiry, header injection, and display formatting live here so that the
store, the login flow, and the API client agree on them.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from maascli.auth.vendor_key import mask_vendor_key
from maascli.models import (
    Credential,
    JWTCredential,
    OAuthCredential,
    TokenResponse,
    VendorKeyCredential,
)

REFRESH_BUFFER = timedelta(minutes=5)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def needs_refresh(credential: Credential, now: Optional[datetime] = None) -> bool:
    """True once an OAuth credential is inside its refresh buffer.

    Vendor keys and JWTs never expire locally; they are revalidated against
    the server instead.
    """
    if not isinstance(credential, OAuthCredential):
        return False
    now = now or datetime.now(timezone.utc)
    return now >= _aware(credential.expires_at) - REFRESH_BUFFER


def is_expired(credential: Credential, now: Optional[datetime] = None) -> bool:
    """Alias of :func:`needs_refresh`: a token in its buffer is treated as expired."""
    return needs_refresh(credential, now)


def auth_headers(credential: Credential) -> dict[str, str]:
    """HTTP headers that authenticate a request with *credential*."""
    if isinstance(credential, VendorKeyCredential):
        return {"X-API-Key": credential.raw}
    if isinstance(credential, JWTCredential):
        return {"Authorization": f"Bearer {credential.token}"}
    if isinstance(credential, OAuthCredential):
        return {"Authorization": f"Bearer {credential.access_token}"}
    raise TypeError(f"Unsupported credential type: {type(credential).__name__}")


def describe(credential: Credential) -> str:
    """Short, secret-free description for status output."""
    if isinstance(credential, VendorKeyCredential):
        return f"vendor key {mask_vendor_key(credential.raw)}"
    if isinstance(credential, JWTCredential):
        return f"JWT ...{credential.token[-6:]}"
    expires = _aware(credential.expires_at).isoformat(timespec="seconds")
    return f"OAuth token (expires {expires})"


def credential_from_token_response(
    tokens: TokenResponse,
    now: Optional[datetime] = None,
    previous_refresh_token: Optional[str] = None,
) -> OAuthCredential:
    """Build an :class:`OAuthCredential` from a token endpoint response.

    A refresh response may omit ``refresh_token``; *previous_refresh_token*
    is kept in that case.
    """
    now = now or datetime.now(timezone.utc)
    return OAuthCredential(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token or previous_refresh_token,
        expires_at=now + timedelta(seconds=tokens.expires_in),
    )
