"""Companion commands -- inspect the detected companion executable."""

from __future__ import annotations

import typer

from maascli.commands.common import build_detector, exit_on_error, resolve
from maascli.output import get_output, suggest

companion_app = typer.Typer(no_args_is_help=True)


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"


@companion_app.command("status")
def companion_status(
    ctx: typer.Context,
    refresh: bool = typer.Option(False, "--refresh", help="Probe again instead of using the cache."),
) -> None:
    """Show what the companion executable supports.

    Example::

        maascli companion status --refresh
    """
    with exit_on_error():
        config, _ = resolve(ctx)
    detector = build_detector(config)
    caps = detector.refresh() if refresh else detector.detect()

    rows = [
        ["Available", _yes_no(caps.available)],
        ["Executable", detector.executable or "-"],
        ["Version", caps.version or "-"],
        ["Protocol compliant", _yes_no(caps.protocol_compliant)],
        ["MCP channel", _yes_no(caps.mcp_support)],
        ["Authenticated", _yes_no(caps.authenticated)],
        ["Routing", "companion first" if caps.usable else "direct API"],
    ]
    get_output().print_table(["Capability", "Value"], rows, title="Companion")

    if caps.available and not caps.protocol_compliant:
        suggest(f"Upgrade the companion to {config.companion.min_version} or newer")
    elif caps.protocol_compliant and not caps.authenticated:
        suggest(f"Authenticate it: {detector.executable} auth login")
