"""Memory commands -- routed through the companion with API fallback.

Every command prints the result on stdout and reports which path served
it (``companion`` or ``api``) on stderr. ``get`` and ``delete`` are served
by the API only.

Typical workflow::

    maascli memory create --title "Deploy notes" --content "..." --tags ops,deploy
    maascli memory search "deploy"
    maascli memory get 3f2a...
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

import typer

from maascli.commands.common import (
    build_api_client,
    build_detector,
    build_invoker,
    build_login_flow,
    exit_on_error,
    resolve,
)
from maascli.exit_codes import EXIT_GENERIC_FAILURE
from maascli.models import OperationResult, dump_result
from maascli.output import OutputFormat, error, get_output, info, warning
from maascli.routing.router import OperationRouter
from maascli.routing.service import MemoryService

memory_app = typer.Typer(no_args_is_help=True)


def _split(value: Optional[str]) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


@contextmanager
def memory_service(ctx: typer.Context) -> Iterator[MemoryService]:
    """Build a :class:`MemoryService` for the active profile.

    A stored OAuth token inside its refresh buffer is refreshed first.
    """
    config, profile = resolve(ctx)
    credential = build_login_flow(config, profile).ensure_fresh_credential()
    if credential is None:
        warning(f'Profile "{profile}" is not logged in; direct API calls will be unauthenticated.')
    detector = build_detector(config)
    router = OperationRouter(
        detector,
        prefer_companion=config.routing.prefer_companion,
        fallback_to_api=config.routing.fallback_to_api,
    )
    with build_api_client(config, credential) as api:
        yield MemoryService(router, build_invoker(config, detector), api)


def _emit(result: OperationResult[Any]) -> None:
    output = get_output()
    if result.error is not None:
        error(f"{result.error} (via {result.source})")
        raise typer.Exit(code=EXIT_GENERIC_FAILURE)
    if output.format == OutputFormat.JSON:
        output.format_response(dump_result(result))
        return
    output.format_response(result.data)
    channel = " over MCP" if result.enhanced_channel_used else ""
    info(f"Source: {result.source}{channel}")


@memory_app.command("list")
def memory_list(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Maximum number of memories."),
    memory_type: Optional[str] = typer.Option(None, "--memory-type", help="Filter by type."),
    tags: Optional[str] = typer.Option(None, "--tags", help="Comma-separated tags."),
    sort_by: Optional[str] = typer.Option(None, "--sort-by", help="Sort field."),
) -> None:
    """List memories."""
    with exit_on_error(), memory_service(ctx) as service:
        result = service.list_memories(limit, memory_type, _split(tags), sort_by)
    _emit(result)


@memory_app.command("create")
def memory_create(
    ctx: typer.Context,
    title: str = typer.Option(..., "--title", "-t", help="Memory title."),
    content: str = typer.Option(..., "--content", "-c", help="Memory content."),
    memory_type: str = typer.Option("context", "--memory-type", help="Memory type."),
    tags: Optional[str] = typer.Option(None, "--tags", help="Comma-separated tags."),
    topic_id: Optional[str] = typer.Option(None, "--topic-id", help="Topic to file it under."),
) -> None:
    """Create a memory."""
    with exit_on_error(), memory_service(ctx) as service:
        result = service.create_memory(title, content, memory_type, _split(tags), topic_id)
    _emit(result)


@memory_app.command("search")
def memory_search(
    ctx: typer.Context,
    query: str = typer.Argument(help="Search text."),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Maximum number of results."),
    memory_types: Optional[str] = typer.Option(
        None, "--memory-types", help="Comma-separated memory types."
    ),
) -> None:
    """Search memories."""
    with exit_on_error(), memory_service(ctx) as service:
        result = service.search_memories(query, limit, _split(memory_types))
    _emit(result)


@memory_app.command("get")
def memory_get(
    ctx: typer.Context,
    memory_id: str = typer.Argument(help="Memory id."),
) -> None:
    """Fetch one memory (direct API)."""
    with exit_on_error(), memory_service(ctx) as service:
        result = service.get_memory(memory_id)
    _emit(result)


@memory_app.command("delete")
def memory_delete(
    ctx: typer.Context,
    memory_id: str = typer.Argument(help="Memory id."),
) -> None:
    """Delete one memory (direct API)."""
    force = bool((ctx.obj or {}).get("force"))
    if not force and not typer.confirm(f"Delete memory {memory_id}?", default=False):
        raise typer.Exit()
    with exit_on_error(), memory_service(ctx) as service:
        result = service.delete_memory(memory_id)
    _emit(result)


@memory_app.command("health")
def memory_health(ctx: typer.Context) -> None:
    """Check service health."""
    with exit_on_error(), memory_service(ctx) as service:
        result = service.health()
    _emit(result)
