"""`shipwatch config`: muestra y persiste la configuración en el `.env` del usuario."""

from __future__ import annotations

import typer
from rich.console import Console

from cli.ui_components import build_settings_table
from core.config import AppSettings, get_user_env_file, write_user_env_vars

app = typer.Typer(no_args_is_help=True, help="Show or store shipwatch configuration.")

_console = Console()


@app.command()
def show() -> None:
    """Print the effective settings (env vars + .env files)."""

    settings = AppSettings()
    values: dict[str, object] = dict(settings.model_dump())
    values["user .env"] = get_user_env_file()
    _console.print(build_settings_table(values))


@app.command(name="set-endpoints")
def set_endpoints(
    api_base_url: str | None = typer.Option(None, "--api", help="Control-plane base URL."),
    socket_url: str | None = typer.Option(None, "--socket", help="Log stream (Socket.IO) URL."),
) -> None:
    """Store endpoints in the user config .env (prompts for missing values).

    Así no hace falta editar `.env` a mano para apuntar a otro backend.
    """

    current = AppSettings()
    if api_base_url is None:
        api_base_url = typer.prompt("Control-plane base URL", default=current.api_base_url).strip()
    if socket_url is None:
        socket_url = typer.prompt("Log stream URL", default=current.socket_url).strip()

    for label, value in (("control-plane", api_base_url), ("log stream", socket_url)):
        if not value.startswith(("http://", "https://")):
            raise typer.BadParameter(f"{label} URL must start with http:// or https://")

    env_path = write_user_env_vars(
        {
            "SHIPWATCH_API_BASE_URL": api_base_url,
            "SHIPWATCH_SOCKET_URL": socket_url,
        }
    )
    _console.print(f"[green]Saved endpoints to:[/green] {env_path}")
