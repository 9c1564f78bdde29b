"""Auth commands -- log in, log out, inspect and diagnose credentials.

Provides the ``maascli auth`` sub-command group. Credentials are stored per
profile (see :class:`~maascli.auth.credential_store.CredentialStore`).

Typical workflow::

    maascli auth login --vendor-key pk_xxx.sk_xxx
    maascli auth status
    maascli auth diagnose
"""

from __future__ import annotations

from typing import Optional

import typer

from maascli.auth.credentials import describe, needs_refresh
from maascli.auth.login import failure_summary
from maascli.auth.vendor_key import validate_vendor_key
from maascli.commands.common import (
    build_api_client,
    build_detector,
    build_login_flow,
    exit_on_error,
    resolve,
)
from maascli.config import config_path
from maascli.exceptions import InvalidUsageError, MaasError, VendorKeyFormatError
from maascli.models import OAuthCredential, VendorKeyCredential
from maascli.output import error, get_output, info, success, suggest, warning

auth_app = typer.Typer(no_args_is_help=True)


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    vendor_key: Optional[str] = typer.Option(
        None, "--vendor-key", "-k", help="Vendor key (pk_xxx.sk_xxx)."
    ),
    token: Optional[str] = typer.Option(None, "--token", help="Existing JWT bearer token."),
    oauth: bool = typer.Option(False, "--oauth", help="Browser login (default)."),
    port: Optional[int] = typer.Option(None, "--port", help="Local callback port."),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the login URL instead of opening a browser."
    ),
    no_wait: bool = typer.Option(
        False, "--no-wait", help="Fail instead of waiting out a failure delay."
    ),
) -> None:
    """Authenticate the active profile.

    With no method flag the browser (OAuth2 + PKCE) flow runs. After three
    consecutive failures each new attempt is delayed; the delay grows with
    the failure count up to 30 seconds.

    Example::

        maascli auth login --vendor-key pk_abc12345.sk_0123456789abcdef
        maascli auth login --oauth --no-browser
    """
    chosen = sum(1 for flag in (vendor_key is not None, token is not None, oauth) if flag)
    with exit_on_error():
        if chosen > 1:
            raise InvalidUsageError("Choose only one of --vendor-key, --token, --oauth")

        config, profile = resolve(ctx)
        flow = build_login_flow(config, profile)
        wait = not no_wait

        if vendor_key is not None:
            flow.login_vendor_key(vendor_key, wait=wait)
            success(f'Authenticated profile "{profile}" with vendor key.')
        elif token is not None:
            flow.login_jwt(token, wait=wait)
            success(f'Authenticated profile "{profile}" with token.')
        else:

            def _show_url(url: str) -> None:
                if no_browser:
                    info("Open this URL in your browser to continue:")
                    get_output().print_data(url)
                else:
                    info("Opening browser for authentication...")
                    info(f"If it does not open, visit: {url}")

            credential = flow.login_oauth(
                port=port,
                launch_browser=not no_browser,
                on_authorize_url=_show_url,
                wait=wait,
            )
            success(f'Authenticated profile "{profile}" via browser login.')
            info(f"Token expires {credential.expires_at.astimezone().strftime('%Y-%m-%d %H:%M:%S')}")
    suggest("Check it: maascli auth status")


@auth_app.command("logout")
def auth_logout(ctx: typer.Context) -> None:
    """Remove the stored credential and failure history of the active profile.

    An OAuth refresh token is revoked on the server first when possible.
    """
    force = bool((ctx.obj or {}).get("force"))
    with exit_on_error():
        config, profile = resolve(ctx)
        flow = build_login_flow(config, profile)
        if not flow.store.exists():
            info(f'Profile "{profile}" has no stored credentials.')
            return
        if not force and not typer.confirm(f'Log out profile "{profile}"?', default=True):
            info("Cancelled.")
            raise typer.Exit()
        revoked = flow.logout()
    if revoked:
        info("Refresh token revoked.")
    success(f'Logged out profile "{profile}".')


@auth_app.command("status")
def auth_status(ctx: typer.Context) -> None:
    """Show the stored credential and recent failure state."""
    with exit_on_error():
        config, profile = resolve(ctx)
        flow = build_login_flow(config, profile)
        credential = flow.store.load()
        state = flow.store.load_failures()

    rows: list[list[str]] = [["Profile", profile]]
    if credential is None:
        rows.append(["Credential", "none"])
    else:
        rows.append(["Credential", describe(credential)])
        if isinstance(credential, OAuthCredential):
            expiry = "refresh due" if needs_refresh(credential) else "valid"
            rows.append(["Token", expiry])
    rows.append(["Failures", failure_summary(state)])
    delay = flow.backoff.delay_for(state)
    rows.append(["Retry delay", f"{delay:.0f}s" if delay else "none"])

    get_output().print_table(["Field", "Value"], rows, title="Authentication")
    if credential is None:
        suggest("Log in: maascli auth login")


@auth_app.command("diagnose")
def auth_diagnose(ctx: typer.Context) -> None:
    """Step through configuration, credentials, server validation, and companion detection.

    Read-only: stored tokens are not refreshed and no failures are recorded.
    """
    with exit_on_error():
        config, profile = resolve(ctx)
    flow = build_login_flow(config, profile)
    store = flow.store
    issues: list[str] = []
    recommendations: list[str] = []

    info("1. Configuration")
    path = config_path()
    if path.is_file():
        success(f"   ✓ Config file at {path}")
    else:
        info(f"   - No config file at {path}; using defaults")
    info(f"   API base: {config.api_base}  Auth base: {config.oauth.auth_base}")

    info("2. Stored credentials")
    credential = store.load()
    if credential is None:
        error("   ✖ No credentials found")
        issues.append("No authentication credentials stored")
        recommendations.append("Run: maascli auth login --vendor-key pk_xxx.sk_xxx")
    else:
        success(f"   ✓ {describe(credential)}")
        if isinstance(credential, VendorKeyCredential):
            try:
                validate_vendor_key(credential.raw)
                success("   ✓ Vendor key format is valid")
            except VendorKeyFormatError as exc:
                error(f"   ✖ Vendor key format is invalid: {exc.reason}")
                issues.append("Stored vendor key is malformed")
                recommendations.append("Run: maascli auth logout && maascli auth login")
        elif isinstance(credential, OAuthCredential):
            if needs_refresh(credential):
                warning("   Token is expired or about to expire")
                if not credential.refresh_token:
                    issues.append("Authentication token has expired")
                    recommendations.append("Run: maascli auth login --oauth")
            else:
                success("   ✓ Token is not expired")

    info("3. Authentication history")
    state = store.load_failures()
    if state.count == 0:
        success("   ✓ No recent authentication failures")
    else:
        warning(f"   {failure_summary(state)}")
        delay = flow.backoff.delay_for(state)
        if delay:
            warning(f"   Authentication delay active: {delay:.0f}s")
        if state.count >= 3:
            issues.append(f"Multiple authentication failures ({state.count})")
            recommendations.append("Wait for the delay period, then try: maascli auth login")

    info("4. Server validation")
    credential_valid = False
    if credential is None:
        info("   - Skipped (no credentials to validate)")
    elif needs_refresh(credential):
        info("   - Skipped (token is due for refresh; the next memory command refreshes it)")
    else:
        try:
            with build_api_client(config, credential) as client:
                client.health()
            credential_valid = True
            success("   ✓ Server accepted the credentials")
        except MaasError as exc:
            error(f"   ✖ Could not validate with server: {exc}")
            issues.append("Stored credentials are invalid or could not be checked")
            recommendations.append("Run: maascli auth logout && maascli auth login")

    info("5. Endpoint connectivity")
    try:
        with build_api_client(config, None) as client:
            client.health()
        success(f"   ✓ {config.api_base} is reachable")
    except MaasError as exc:
        error(f"   ✖ Cannot reach {config.api_base}: {exc}")
        issues.append("Cannot reach the API endpoint")
        recommendations.append("Check internet connection and firewall settings")

    info("6. Companion tool")
    caps = build_detector(config).detect()
    if not caps.available:
        info("   - No companion executable found (direct API will be used)")
    elif not caps.protocol_compliant:
        warning(f"   Companion {caps.version} is older than {config.companion.min_version}")
    else:
        mcp = "with" if caps.mcp_support else "without"
        auth_text = "authenticated" if caps.authenticated else "not authenticated"
        success(f"   ✓ Companion {caps.version} ({auth_text}, {mcp} MCP channel)")

    info("")
    if not issues:
        success("All authentication checks passed.")
        return
    error(f"Found {len(issues)} issue(s):")
    for issue in issues:
        info(f"  • {issue}")
    info("Recommended actions:")
    for rec in dict.fromkeys(recommendations):
        suggest(rec)
    if state.count > 0 or not credential_valid:
        info("Additional troubleshooting:")
        info("  • Verify your vendor key format: pk_xxx.sk_xxx")
        info("  • Check that the key is active in the dashboard")
        info("  • Try browser authentication: maascli auth login --oauth")
