"""Numeric process exit codes for the ``maascli`` command.

Each constant maps to an error category and is referenced by the matching
:class:`~maascli.exceptions.MaasError` subclass. Shell wrappers can rely on
``1`` meaning "authentication or validation failed" without parsing stderr.

Example::

    $ maascli auth login --vendor-key pk_bad
    $ echo $?
    1   # EXIT_AUTH_FAILURE -- the key was rejected
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_AUTH_FAILURE = 1
"""Authentication or credential validation failed."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid or conflicting arguments."""

EXIT_SERVER_ERROR = 5
"""The remote API returned an error that is not an auth failure."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""
