"""Authentication for maascli: OAuth2 PKCE, vendor keys, and token lifecycle.

The main entry points are:

- :class:`LoginFlow` -- runs the browser login, stores vendor keys and JWTs,
  refreshes OAuth tokens inside their refresh buffer, and logs out.
- :class:`CredentialStore` -- per-profile credential and failure-state file.
- :func:`classify` / :func:`remediation` -- turn a failure into a
  :class:`FailureCategory` and progressive user guidance.
- :class:`BackoffController` -- delay gate after repeated failures.
- :func:`validate_vendor_key` -- offline ``pk_xxx.sk_xxx`` format check.

Typical usage::

    from maascli.auth import CredentialStore, LoginFlow

    flow = LoginFlow(config.oauth, CredentialStore(profile))
    credential = flow.login_oauth()
"""

from maascli.auth.backoff import BackoffController
from maascli.auth.callback import CallbackListener, CallbackResult
from maascli.auth.credential_store import CredentialStore
from maascli.auth.credentials import auth_headers, needs_refresh
from maascli.auth.failures import FailureCategory, Guidance, classify, remediation
from maascli.auth.login import LoginFlow
from maascli.auth.pkce import generate_pkce
from maascli.auth.token_exchange import TokenExchanger
from maascli.auth.vendor_key import is_valid_vendor_key, validate_vendor_key

__all__ = [
    "BackoffController",
    "CallbackListener",
    "CallbackResult",
    "CredentialStore",
    "FailureCategory",
    "Guidance",
    "LoginFlow",
    "TokenExchanger",
    "auth_headers",
    "classify",
    "generate_pkce",
    "is_valid_vendor_key",
    "needs_refresh",
    "remediation",
    "validate_vendor_key",
]
