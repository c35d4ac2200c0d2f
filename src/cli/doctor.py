"""Comando doctor: diagnóstico de endpoints y configuración."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from adapters.http_client import build_async_client
from core.config import AppSettings
from core.domain.models import BackoffPolicy

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


def socketio_probe_url(socket_url: str) -> str:
    """URL del handshake Engine.IO por polling; cualquier servidor Socket.IO responde 200."""

    return f"{socket_url.rstrip('/')}/socket.io/?EIO=4&transport=polling"


async def _check_http(url: str, settings: AppSettings) -> tuple[bool, str]:
    try:
        async with build_async_client(settings) as client:
            response = await client.get(url)
        return True, f"HTTP {response.status_code}"
    except Exception as exc:
        return False, str(exc) or exc.__class__.__name__


async def _check_socket(settings: AppSettings) -> tuple[bool, str]:
    ok, detail = await _check_http(socketio_probe_url(settings.socket_url), settings)
    if ok and detail != "HTTP 200":
        return False, f"{detail} (not a Socket.IO endpoint?)"
    return ok, detail


def _describe_backoff(policy: BackoffPolicy) -> str:
    text = f"{policy.max_attempts} attempts, {policy.base_delay:g}s apart"
    if policy.jitter:
        text += f" (+ up to {policy.jitter:g}s jitter)"
    return text


@app.command()
def run() -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = AppSettings()

    table = Table(title="shipwatch Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    table.add_row("Deploy endpoint", "OK", settings.deploy_url)
    table.add_row("Stream endpoint", "OK", settings.socket_url)
    table.add_row("Reconnect policy", "OK", _describe_backoff(settings.backoff_policy()))

    # Connectivity (best-effort): cualquier respuesta HTTP cuenta como alcanzable.
    ok_api, detail_api = asyncio.run(_check_http(settings.api_base_url, settings))
    table.add_row("Control-plane", "OK" if ok_api else "FAIL", detail_api)

    ok_socket, detail_socket = asyncio.run(_check_socket(settings))
    table.add_row("Log stream", "OK" if ok_socket else "FAIL", detail_socket)

    _console.print(table)

    if not (ok_api and ok_socket):
        _console.print(
            "\n[yellow]Note:[/yellow] set SHIPWATCH_API_BASE_URL / SHIPWATCH_SOCKET_URL "
            "or run `shipwatch config set-endpoints`."
        )
        raise typer.Exit(code=1)
