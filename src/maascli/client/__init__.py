"""HTTP client for the memory service API.

:class:`ApiClient` wraps :class:`httpx.Client` with credential header
injection, retry for idempotent calls, and error mapping to
:mod:`maascli.exceptions`.

Example::

    from maascli.client import ApiClient

    with ApiClient(config.api_base, credential) as client:
        client.health()
"""

from maascli.client.api_client import ApiClient, validate_credential

__all__ = ["ApiClient", "validate_credential"]
