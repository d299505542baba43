"""Doctor command for environment and server diagnostics."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from adapters.jellyfin_api import JellyfinAPI
from adapters.server_store import load_registry, save_registry
from core.config import AppSettings, get_user_env_file, write_user_env_vars
from core.domain.operations import operation
from core.domain.outcomes import OperationOutcome, Success
from core.errors import NoServersConfigured
from core.services.fanout import FanOutCoordinator, build_coordinator

app = typer.Typer(no_args_is_help=True, help="Configuration and connectivity checks.")

_console = Console()


async def _ping_all(settings: AppSettings, pool: FanOutCoordinator) -> list[OperationOutcome]:
    async with JellyfinAPI(settings) as api:
        return await pool.dispatch(operation(api.get_public_info, name="ping"))


def _describe(outcome: OperationOutcome) -> str:
    if isinstance(outcome, Success) and isinstance(outcome.payload, dict):
        version = outcome.payload.get("Version")
        server_name = outcome.payload.get("ServerName")
        return " ".join(str(part) for part in (server_name, version) if part) or "OK"
    if isinstance(outcome, Success):
        return "OK"
    return str(outcome.error)


@app.command()
def run() -> None:
    """Show the effective configuration and ping every server."""

    settings = AppSettings()

    table = Table(title="moonfin-pool Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    table.add_row("Servers file", "OK" if settings.servers_path.exists() else "MISSING", str(settings.servers_path))
    timeout = settings.server_timeout_seconds
    table.add_row(
        "Per-server timeout",
        "OK" if timeout else "WARN",
        f"{timeout:g}s" if timeout else "disabled: one unreachable server stalls every view",
    )
    table.add_row("Device id", "OK", settings.device_id)

    registry = load_registry(settings.servers_path)
    pool = build_coordinator(registry, settings)
    try:
        outcomes = asyncio.run(_ping_all(settings, pool))
    except NoServersConfigured:
        outcomes = []
        table.add_row("Servers", "FAIL", "No servers configured")

    snapshot = {server.id: server for server in registry.list_all()}
    for outcome in outcomes:
        server = snapshot.get(outcome.server_id or "")
        label = server.name if server else str(outcome.server_id)
        table.add_row(f"Server {label}", "OK" if outcome.ok else "FAIL", _describe(outcome))

    if outcomes:
        save_registry(registry, settings.servers_path)

    _console.print(table)


@app.command(name="save-device-id")
def save_device_id() -> None:
    """Persist the current device id so every run presents the same device."""

    settings = AppSettings()
    env_path = write_user_env_vars({"MOONFIN_DEVICE_ID": settings.device_id})
    _console.print(f"[green]Saved device id to:[/green] {env_path}")


@app.command(name="env-path")
def env_path() -> None:
    """Print where the user configuration (.env) lives."""

    _console.print(str(get_user_env_file()))
