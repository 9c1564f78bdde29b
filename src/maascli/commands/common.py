"""Shared wiring for CLI commands: config resolution, factories, error display."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

import typer

from maascli.auth.credential_store import CredentialStore
from maascli.auth.failures import Guidance
from maascli.auth.login import LoginFlow
from maascli.client.api_client import ApiClient, validate_credential
from maascli.companion.detector import CapabilityDetector
from maascli.companion.invoker import CompanionInvoker
from maascli.config import resolve_config
from maascli.exceptions import AuthenticationFailedError, MaasError
from maascli.models import AuthFailureState, Credential, GlobalConfig
from maascli.output import error, get_output, info, suggest, warning


def resolve(ctx: typer.Context) -> tuple[GlobalConfig, str]:
    """Effective config and profile name for this invocation."""
    obj = ctx.obj or {}
    return resolve_config(cli_profile=obj.get("profile"), cli_api_base=obj.get("api_base"))


def _announce_delay(state: AuthFailureState, delay: float) -> None:
    warning(f"Multiple authentication failures detected ({state.count} attempts)")
    if state.last_failure_at is not None:
        info(f"Last failure: {state.last_failure_at.astimezone().strftime('%Y-%m-%d %H:%M:%S')}")
    info(f"Waiting {delay:.0f} seconds before retry...")


def build_login_flow(config: GlobalConfig, profile: str) -> LoginFlow:
    return LoginFlow(
        config.oauth,
        CredentialStore(profile),
        validator=validate_credential(config.api_base, timeout=config.request_timeout),
        api_base=config.api_base,
        on_delay=_announce_delay,
    )


def build_detector(config: GlobalConfig) -> CapabilityDetector:
    settings = config.companion
    return CapabilityDetector(
        executables=settings.executables,
        min_version=settings.min_version,
        version_timeout=settings.version_timeout,
        probe_timeout=settings.probe_timeout,
    )


def build_invoker(config: GlobalConfig, detector: CapabilityDetector) -> CompanionInvoker:
    return CompanionInvoker(
        detector,
        timeout=config.companion.command_timeout,
        verbose=get_output().is_verbose,
    )


def build_api_client(config: GlobalConfig, credential: Optional[Credential]) -> ApiClient:
    return ApiClient(
        config.api_base,
        credential,
        timeout=config.request_timeout,
        max_retries=config.max_retries,
    )


def show_guidance(guidance: Guidance) -> None:
    """Print remediation text for a failed authentication attempt."""
    error(f"Authentication failed: {guidance.headline}")
    for hint in guidance.hints:
        info(f"  • {hint}")
    if guidance.recovery:
        when = ""
        if guidance.last_failure_at is not None:
            when = f", last at {guidance.last_failure_at.astimezone().strftime('%Y-%m-%d %H:%M:%S')}"
        warning(f"Multiple failures detected ({guidance.failure_count} attempts{when}). Recovery options:")
        for option in guidance.recovery:
            suggest(option)


@contextmanager
def exit_on_error() -> Iterator[None]:
    """Turn :class:`MaasError` into a printed message and ``typer.Exit``."""
    try:
        yield
    except AuthenticationFailedError as exc:
        if exc.guidance is not None:
            show_guidance(exc.guidance)
        else:
            error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    except MaasError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
