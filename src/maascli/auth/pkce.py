"""PKCE (:rfc:`7636`) code generation for the authorization-code flow."""

from __future__ import annotations

import base64
import hashlib
import secrets

from maascli.models import PKCECodes

_VERIFIER_BYTES = 32
_STATE_BYTES = 16


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def challenge_for(verifier: str) -> str:
    """Return the S256 ``code_challenge`` for *verifier*."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return _b64url(digest)


def generate_pkce() -> PKCECodes:
    """Generate a fresh verifier, S256 challenge, and CSRF state.

    The verifier is 32 bytes from :mod:`secrets`, URL-safe base64 encoded
    without padding (43 characters). The state is 16 random bytes as hex.

    Returns:
        A :class:`~maascli.models.PKCECodes` for a single login attempt.
    """
    verifier = _b64url(secrets.token_bytes(_VERIFIER_BYTES))
    return PKCECodes(
        verifier=verifier,
        challenge=challenge_for(verifier),
        state=secrets.token_hex(_STATE_BYTES),
    )
