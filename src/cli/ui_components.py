"""Componentes de UI para CLI (Rich).

Por qué separar componentes:
- Evita mezclar lógica de comandos con detalles visuales.
- `DeploymentView` es la única pieza que conoce `SessionState`; los comandos
  solo le pasan hooks.
"""

from __future__ import annotations

from rich.align import Align
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.models import ConnectionState, DeploymentResult, LogEntry, Notification, NotificationLevel
from core.services.session import SessionState

_LEVEL_STYLES = {
    NotificationLevel.SUCCESS: "green",
    NotificationLevel.INFO: "cyan",
    NotificationLevel.WARNING: "yellow",
    NotificationLevel.ERROR: "red",
}

_STATE_STYLES = {
    ConnectionState.CONNECTED: "green",
    ConnectionState.CONNECTING: "yellow",
    ConnectionState.DISCONNECTED: "red",
}


def print_banner(console: Console) -> None:
    """Imprime el banner de bienvenida.

    Por qué aquí:
    - Permite desactivar banner en modos no interactivos (`--no-banner`).
    """

    title = Text("shipwatch", style="bold cyan")
    subtitle = Text("Deploy your GitHub projects with ease", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def format_notification(notification: Notification) -> Text:
    style = _LEVEL_STYLES.get(notification.level, "white")
    return Text.assemble((f"[{notification.level.value}] ", f"bold {style}"), (notification.message, style))


def build_status_line(state: SessionState) -> Text:
    conn = state.connection_state
    text = Text.assemble(
        ("Stream: ", "dim"),
        (conn.label(), _STATE_STYLES[conn]),
    )
    if state.in_progress:
        text.append("  •  Deploying...", style="yellow")
    if state.connection_banner:
        text.append(f"\n{state.connection_banner}", style="red")
    return text


def build_preview_panel(result: DeploymentResult) -> Panel:
    """Panel con la URL de preview del despliegue."""

    body = Text()
    body.append(result.preview_url, style=f"link {result.preview_url} bold sky_blue1")
    body.append(f"\nproject: {result.project_slug}", style="dim")
    return Panel(body, title="Preview URL", border_style="sky_blue1")


def build_log_panel(lines: tuple[str, ...] | list[str], *, max_lines: int = 20) -> Panel:
    """Últimas `max_lines` líneas: el panel siempre muestra lo más reciente."""

    visible = lines[-max_lines:] if max_lines > 0 else lines
    body = Text(no_wrap=False)
    for i, line in enumerate(visible):
        if i:
            body.append("\n")
        body.append(f"> {line}", style="green")
    hidden = len(lines) - len(visible)
    subtitle = f"{hidden} earlier line(s) hidden" if hidden else None
    return Panel(body, title=f"Logs ({len(lines)})", subtitle=subtitle, border_style="green")


def build_settings_table(values: dict[str, object]) -> Table:
    table = Table(title="shipwatch settings")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    for key, value in values.items():
        table.add_row(key, str(value))
    return table


class DeploymentView:
    """Renderable para `rich.live.Live` que refleja el último `SessionState`."""

    def __init__(self, console: Console, *, max_lines: int = 20) -> None:
        self._console = console
        self._max_lines = max_lines
        self._state = SessionState()
        self._lines: list[str] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def lines(self) -> tuple[str, ...]:
        return tuple(self._lines)

    def update(self, state: SessionState) -> None:
        self._state = state

    def on_log(self, entry: LogEntry) -> None:
        """Scroll-to-latest: la siguiente actualización muestra la línea nueva."""

        self._lines.append(entry.text)

    def notify(self, notification: Notification) -> None:
        self._console.print(format_notification(notification))

    def __rich__(self) -> RenderableType:
        parts: list[RenderableType] = [build_status_line(self._state)]
        if self._state.result is not None:
            parts.append(build_preview_panel(self._state.result))
        if self._lines:
            parts.append(build_log_panel(self._lines, max_lines=self._max_lines))
        return Group(*parts)
