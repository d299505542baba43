"""moonfin-pool CLI.

Commands only parse options, run one catalog view through the pool and
render the result; aggregation lives in `core.services`.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from adapters.jellyfin_api import JellyfinAPI
from adapters.json_exporter import export_result_json, result_to_dict
from adapters.server_store import load_registry, save_registry
from cli import doctor
from cli.ui_components import (
    build_failures_table,
    build_items_table,
    build_library_rows_table,
    build_servers_table,
    print_banner,
)
from core.config import AppSettings
from core.domain.models import ServerRecord
from core.domain.policy import AggregatedResult
from core.errors import PoolError
from core.registry import ServerRegistry
from core.services import catalog
from core.services.fanout import FanOutCoordinator, build_coordinator

app = typer.Typer(no_args_is_help=True, help="Browse every configured media server at once.")
servers_app = typer.Typer(no_args_is_help=True, help="Manage configured servers.")
app.add_typer(servers_app, name="servers")
app.add_typer(doctor.app, name="doctor")

_console = Console()
_err_console = Console(stderr=True)

View = Callable[[FanOutCoordinator, JellyfinAPI], Awaitable[AggregatedResult]]


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=_err_console, rich_tracebacks=False, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every fan-out (DEBUG)."),
) -> None:
    settings = AppSettings()
    configure_logging("DEBUG" if verbose else settings.log_level)


def _run_view(
    view: View,
    *,
    title: str,
    json_output: bool,
    output: Path | None,
    render: Callable[[AggregatedResult], Table] | None = None,
) -> None:
    settings = AppSettings()
    registry = load_registry(settings.servers_path)
    pool = build_coordinator(registry, settings)

    async def _go() -> AggregatedResult:
        async with JellyfinAPI(settings) as api:
            return await view(pool, api)

    try:
        result = asyncio.run(_go())
    except PoolError as exc:
        _err_console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    finally:
        if len(registry):
            save_registry(registry, settings.servers_path)

    if json_output:
        _console.print_json(data=result_to_dict(result), default=str)
    else:
        table = render(result) if render is not None else build_items_table(result, title=title)
        _console.print(table)
        if result.errors:
            _console.print(build_failures_table(result.errors))

    if output is not None:
        path = export_result_json(result=result, output_path=output)
        _console.print(f"[green]Saved:[/green] {path}")


_JSON_OPTION = typer.Option(False, "--json", help="Print the aggregated result as JSON.")
_OUTPUT_OPTION = typer.Option(None, "--output", "-o", help="Also write the result to a JSON file.")
_SHOW_ERRORS_OPTION = typer.Option(False, "--show-errors", help="Report servers that failed.")


def _ignore_errors(show_errors: bool) -> bool:
    return False if show_errors else AppSettings().ignore_errors


@app.command()
def libraries(
    json_output: bool = _JSON_OPTION,
    output: Optional[Path] = _OUTPUT_OPTION,
    show_errors: bool = _SHOW_ERRORS_OPTION,
) -> None:
    """Libraries of every server, by name."""

    ignore = _ignore_errors(show_errors)
    _run_view(
        lambda pool, api: catalog.get_all_libraries(pool=pool, api=api, ignore_errors=ignore),
        title="Libraries",
        json_output=json_output,
        output=output,
    )


@app.command()
def resume(
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1),
    json_output: bool = _JSON_OPTION,
    output: Optional[Path] = _OUTPUT_OPTION,
    show_errors: bool = _SHOW_ERRORS_OPTION,
) -> None:
    """Continue watching, most recently played first."""

    ignore = _ignore_errors(show_errors)
    size = limit or AppSettings().resume_limit
    _run_view(
        lambda pool, api: catalog.get_all_resume_items(pool=pool, api=api, limit=size, ignore_errors=ignore),
        title="Continue watching",
        json_output=json_output,
        output=output,
    )


@app.command(name="next-up")
def next_up(
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1),
    json_output: bool = _JSON_OPTION,
    output: Optional[Path] = _OUTPUT_OPTION,
    show_errors: bool = _SHOW_ERRORS_OPTION,
) -> None:
    """Next episodes across servers."""

    ignore = _ignore_errors(show_errors)
    size = limit or AppSettings().next_up_limit
    _run_view(
        lambda pool, api: catalog.get_all_next_up(pool=pool, api=api, limit=size, ignore_errors=ignore),
        title="Next up",
        json_output=json_output,
        output=output,
    )


@app.command()
def search(
    term: str = typer.Argument(..., help="Search term."),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1),
    json_output: bool = _JSON_OPTION,
    output: Optional[Path] = _OUTPUT_OPTION,
    show_errors: bool = _SHOW_ERRORS_OPTION,
) -> None:
    """Search every server."""

    ignore = _ignore_errors(show_errors)
    size = limit or AppSettings().search_limit
    _run_view(
        lambda pool, api: catalog.search_all(pool=pool, api=api, term=term, limit=size, ignore_errors=ignore),
        title=f"Search: {term}",
        json_output=json_output,
        output=output,
    )


@app.command()
def latest(
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1),
    library_id: Optional[str] = typer.Option(None, "--library-id", help="Only this library."),
    server_id: Optional[str] = typer.Option(
        None,
        "--server-id",
        help="Server owning --library-id (default: servers whose id prefixes it).",
    ),
    json_output: bool = _JSON_OPTION,
    output: Optional[Path] = _OUTPUT_OPTION,
    show_errors: bool = _SHOW_ERRORS_OPTION,
) -> None:
    """Recently added items, newest first."""

    ignore = _ignore_errors(show_errors)
    size = limit or AppSettings().latest_limit
    _run_view(
        lambda pool, api: catalog.get_all_latest(
            pool=pool,
            api=api,
            limit=size,
            library_id=library_id,
            server_id=server_id,
            ignore_errors=ignore,
        ),
        title="Latest",
        json_output=json_output,
        output=output,
    )


@app.command(name="latest-by-library")
def latest_by_library(
    exclude_library: Optional[List[str]] = typer.Option(
        None,
        "--exclude-library",
        help="Library id to skip (repeatable).",
    ),
    exclude_type: Optional[List[str]] = typer.Option(
        None,
        "--exclude-type",
        help="Collection type to skip, e.g. boxsets (repeatable).",
    ),
    json_output: bool = _JSON_OPTION,
    output: Optional[Path] = _OUTPUT_OPTION,
    show_errors: bool = _SHOW_ERRORS_OPTION,
) -> None:
    """Latest items of every library, one row per library."""

    ignore = _ignore_errors(show_errors)
    _run_view(
        lambda pool, api: catalog.get_latest_per_library(
            pool=pool,
            api=api,
            excluded_library_ids=exclude_library or [],
            excluded_collection_types=exclude_type or [],
            ignore_errors=ignore,
        ),
        title="Latest by library",
        json_output=json_output,
        output=output,
        render=lambda result: build_library_rows_table(result, title="Latest by library"),
    )


@app.command()
def favorites(
    json_output: bool = _JSON_OPTION,
    output: Optional[Path] = _OUTPUT_OPTION,
    show_errors: bool = _SHOW_ERRORS_OPTION,
) -> None:
    """Favorites from every server."""

    ignore = _ignore_errors(show_errors)
    _run_view(
        lambda pool, api: catalog.get_all_favorites(pool=pool, api=api, ignore_errors=ignore),
        title="Favorites",
        json_output=json_output,
        output=output,
    )


@app.command()
def genres(
    parent_id: Optional[str] = typer.Option(None, "--parent-id", help="Restrict to one library."),
    json_output: bool = _JSON_OPTION,
    output: Optional[Path] = _OUTPUT_OPTION,
    show_errors: bool = _SHOW_ERRORS_OPTION,
) -> None:
    """Genres merged by name, with item counts summed across servers."""

    ignore = _ignore_errors(show_errors)
    _run_view(
        lambda pool, api: catalog.get_all_genres(pool=pool, api=api, parent_id=parent_id, ignore_errors=ignore),
        title="Genres",
        json_output=json_output,
        output=output,
    )


@app.command()
def random(
    content_type: str = typer.Option("both", "--type", help="movies, tv or both."),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", min=1),
    json_output: bool = _JSON_OPTION,
    output: Optional[Path] = _OUTPUT_OPTION,
    show_errors: bool = _SHOW_ERRORS_OPTION,
) -> None:
    """A random pick from every server."""

    ignore = _ignore_errors(show_errors)
    size = limit or AppSettings().random_limit
    _run_view(
        lambda pool, api: catalog.get_random_items(
            pool=pool,
            api=api,
            content_type=content_type,
            limit=size,
            ignore_errors=ignore,
        ),
        title="Random",
        json_output=json_output,
        output=output,
    )


def _load() -> tuple[AppSettings, ServerRegistry]:
    settings = AppSettings()
    return settings, load_registry(settings.servers_path)


@servers_app.command("list")
def list_servers() -> None:
    """Show configured servers; `*` marks the active one."""

    _settings, registry = _load()
    if not len(registry):
        print_banner(_console)
        _console.print("[yellow]No servers configured.[/yellow] Add one with `moonfin-pool servers add`.")
        return
    _console.print(build_servers_table(registry.list_all(), registry.active_server_id))


@servers_app.command("add")
def add_server(
    url: str = typer.Option(..., "--url", help="Server address, e.g. 192.168.1.10 or https://media.example"),
    name: str = typer.Option(..., "--name", help="Display name."),
    user_id: str = typer.Option(..., "--user-id", help="User id on that server."),
    token: str = typer.Option(..., "--token", help="Access token for that user."),
    username: Optional[str] = typer.Option(None, "--username"),
    activate: bool = typer.Option(False, "--activate", help="Make it the active server."),
) -> None:
    """Add a server (an existing server with the same URL is updated)."""

    settings, registry = _load()
    existing = registry.find_by_url(url)
    server_id = existing.id if existing else f"server_{uuid.uuid4().hex[:12]}"
    try:
        record = ServerRecord(
            id=server_id,
            name=name,
            url=url,
            access_token=token,
            user_id=user_id,
            username=username,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    registry.add(record)
    if activate:
        registry.set_active(record.id)
    path = save_registry(registry, settings.servers_path)
    _console.print(f"[green]Saved {record.name} ({record.id}) to:[/green] {path}")


@servers_app.command("remove")
def remove_server(server_id: str = typer.Argument(...)) -> None:
    settings, registry = _load()
    if not registry.remove(server_id):
        _err_console.print(f"[red]Server not found: {server_id}[/red]")
        raise typer.Exit(code=1)
    save_registry(registry, settings.servers_path)
    _console.print(f"[green]Removed {server_id}[/green]")


@servers_app.command("activate")
def activate_server(server_id: str = typer.Argument(...)) -> None:
    settings, registry = _load()
    if not registry.set_active(server_id):
        _err_console.print(f"[red]Server not found: {server_id}[/red]")
        raise typer.Exit(code=1)
    save_registry(registry, settings.servers_path)
    _console.print(f"[green]Active server: {server_id}[/green]")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
