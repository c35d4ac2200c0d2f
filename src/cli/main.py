"""CLI principal (Typer).

Comandos:
- `deploy`: valida, dispara el despliegue y sigue el stream de logs en vivo.
- `validate`: comprueba una URL sin tocar la red.
- `doctor` / `config`: diagnóstico y configuración.
"""

from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler

from cli import config_commands, doctor
from cli.ui_components import DeploymentView, print_banner
from core.config import AppSettings
from core.domain.errors import ShipwatchError
from core.domain.models import Notification, NotificationLevel
from core.domain.repo_url import repo_full_name, validate_repo_url
from core.services.session import SessionHooks, build_session

app = typer.Typer(
    no_args_is_help=True,
    help="Deploy GitHub repositories and follow their build logs live.",
)
app.add_typer(doctor.app, name="doctor")
app.add_typer(config_commands.app, name="config")

_console = Console()

EXIT_OK = 0
EXIT_RUNTIME_ERROR = 1
EXIT_INVALID_URL = 2


def configure_logging(level: str, *, console: Console | None = None) -> None:
    """Logging de diagnóstico por Rich; nunca interfiere con la vista en vivo."""

    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console or _console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


async def _follow(timeout: float | None) -> None:
    if timeout is not None:
        await asyncio.sleep(timeout)
        return
    # Hasta Ctrl-C.
    await asyncio.Event().wait()


async def run_deploy(
    *,
    settings: AppSettings,
    url: str,
    slug: str | None,
    timeout: float | None,
    console: Console,
) -> int:
    view = DeploymentView(console, max_lines=max(5, console.height - 10))
    hooks = SessionHooks(notify=view.notify, state_changed=view.update, log_appended=view.on_log)

    async with build_session(settings, hooks=hooks) as session:
        session.set_target(url)
        with Live(view, console=console, refresh_per_second=8):
            if not await session.channel.wait_ready(settings.connect_timeout_seconds):
                view.notify(
                    Notification(
                        level=NotificationLevel.ERROR,
                        message=f"Log stream unavailable at {settings.socket_url}",
                    )
                )
                return EXIT_RUNTIME_ERROR

            try:
                result = await session.deploy(slug=slug)
            except ShipwatchError as exc:
                view.notify(Notification(level=NotificationLevel.ERROR, message=str(exc)))
                return EXIT_RUNTIME_ERROR
            if result is None:
                return EXIT_RUNTIME_ERROR
            console.print(f"Preview URL: [link={result.preview_url}]{result.preview_url}[/link]")

            await _follow(timeout)
    return EXIT_OK


@app.command()
def deploy(
    url: str = typer.Argument(..., help="GitHub repository URL (https://github.com/<owner>/<repo>)."),
    slug: str | None = typer.Option(None, "--slug", help="Re-deploy an existing project slug."),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        min=0,
        help="Stop following logs after N seconds (default: until Ctrl-C).",
    ),
    no_banner: bool = typer.Option(False, "--no-banner", help="Do not print the banner."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Diagnostic logging (DEBUG)."),
) -> None:
    """Deploy a repository and stream its logs until the preview is ready."""

    settings = AppSettings()
    configure_logging("DEBUG" if verbose else settings.log_level)

    is_valid, message = validate_repo_url(url)
    if not is_valid:
        _console.print(f"[red]{message or 'Repository URL is required'}[/red]")
        raise typer.Exit(code=EXIT_INVALID_URL)

    if not no_banner:
        print_banner(_console)
    _console.print(f"Deploying [bold]{repo_full_name(url)}[/bold]")

    try:
        code = asyncio.run(
            run_deploy(settings=settings, url=url, slug=slug, timeout=timeout, console=_console)
        )
    except KeyboardInterrupt:
        _console.print("[dim]Stopped following logs.[/dim]")
        code = EXIT_OK
    raise typer.Exit(code=code)


@app.command()
def validate(url: str = typer.Argument(..., help="URL to check.")) -> None:
    """Check whether URL is a deployable GitHub repository URL."""

    is_valid, message = validate_repo_url(url)
    if is_valid:
        _console.print(f"[green]OK[/green] {repo_full_name(url)}")
        return
    _console.print(f"[red]{message or 'Repository URL is required'}[/red]")
    raise typer.Exit(code=EXIT_INVALID_URL)


def run() -> None:
    app()


if __name__ == "__main__":
    run()
