"""CLI UI components (Rich).

Keeps table/panel layout out of the command functions.
"""

from __future__ import annotations

from typing import Any, Sequence

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.models import ServerRecord
from core.domain.outcomes import Failure
from core.domain.policy import AggregatedResult
from core.services.fanout import SERVER_NAME_TAG


def print_banner(console: Console) -> None:
    title = Text("moonfin-pool", style="bold cyan")
    subtitle = Text("One view over every media server", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def build_servers_table(servers: Sequence[ServerRecord], active_id: str | None) -> Table:
    table = Table(title="Servers")
    table.add_column("", no_wrap=True)
    table.add_column("Id", style="dim", no_wrap=True)
    table.add_column("Name", style="cyan")
    table.add_column("URL", style="magenta")
    table.add_column("User", style="white")
    table.add_column("Online")
    table.add_column("Last connected", style="dim")
    for server in servers:
        table.add_row(
            "*" if server.id == active_id else "",
            server.id,
            server.name,
            server.url,
            server.username or server.user_id,
            "[green]yes[/green]" if server.connected else "[red]no[/red]",
            server.last_connected.isoformat(timespec="seconds") if server.last_connected else "-",
        )
    return table


def _describe(item: Any) -> tuple[str, str, str, str]:
    if not isinstance(item, dict):
        return ("", "", str(item), "")
    name = str(item.get("Name") or "")
    series = item.get("SeriesName")
    if isinstance(series, str) and series:
        season = item.get("ParentIndexNumber")
        episode = item.get("IndexNumber")
        if isinstance(season, int) and isinstance(episode, int):
            name = f"{series} S{season:02d}E{episode:02d} - {name}"
        else:
            name = f"{series} - {name}"
    return (
        str(item.get(SERVER_NAME_TAG) or ""),
        str(item.get("Type") or item.get("CollectionType") or ""),
        name,
        str(item.get("Id") or ""),
    )


def build_items_table(result: AggregatedResult, *, title: str) -> Table:
    total = result.total_record_count
    caption = f"{len(result.items)} shown" + (f" of {total}" if total is not None else "")
    table = Table(title=title, caption=caption)
    table.add_column("Server", style="cyan", no_wrap=True)
    table.add_column("Type", style="yellow")
    table.add_column("Name", style="white")
    table.add_column("Id", style="dim")
    for item in result.items:
        table.add_row(*_describe(item))
    return table


def build_failures_table(failures: Sequence[Failure]) -> Table:
    table = Table(title="Server errors")
    table.add_column("Server", style="cyan", no_wrap=True)
    table.add_column("Error", style="red")
    for failure in failures:
        table.add_row(failure.server_name or str(failure.server_id), str(failure.error))
    return table


def build_library_rows_table(result: AggregatedResult, *, title: str) -> Table:
    table = Table(title=title, caption=f"{len(result.items)} libraries")
    table.add_column("Server", style="cyan", no_wrap=True)
    table.add_column("Library", style="yellow")
    table.add_column("New", justify="right")
    table.add_column("Newest", style="white")
    for row in result.items:
        latest = row.get("latest") or []
        newest = ", ".join(_describe(item)[2] for item in latest[:3])
        table.add_row(str(row.get("serverName") or ""), str(row["lib"].get("Name") or ""), str(len(latest)), newest)
    return table
