"""maascli -- authentication and request-routing core for the memory service CLI.

This package lets the command-line client obtain, refresh, and validate
credentials against the remote memory service, then decide per operation
whether to go through a locally installed companion executable or straight
to the HTTP API, falling back automatically when the companion fails.

Typical workflow::

    maascli auth login              # browser OAuth2 + PKCE
    maascli auth login --vendor-key pk_xxx.sk_xxx
    maascli memory search "meeting notes"

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration management.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric process exit codes.
    output: stdout/stderr formatting with Rich support.
    auth: PKCE login, token lifecycle, failure tracking.
    companion: Companion executable detection and invocation.
    client: Direct HTTP client for the memory service API.
    routing: Companion-first operation routing with API fallback.
    commands: Typer sub-command groups.
"""

__version__ = "0.3.0"
