"""Coordinador de la sesión de despliegue.

Por qué un coordinador:
- Compone validador, gateway del control-plane, canal y agregador de logs en
  un único estado observable.
- Las capas de presentación (CLI, tests) solo leen snapshots de `SessionState`
  y reaccionan a `SessionHooks`; nunca tocan la conexión ni el buffer.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterator

from adapters.control_plane import ControlPlaneClient
from adapters.socketio_transport import SocketIOTransport
from core.config import AppSettings
from core.domain.errors import NetworkError, ShipwatchError, StreamConnectionError, TargetValidationError
from core.domain.models import (
    BackoffPolicy,
    ConnectionState,
    DeploymentRequest,
    DeploymentResult,
    LogEntry,
    Notification,
    NotificationLevel,
)
from core.domain.repo_url import UrlValidation, validate_repo_url
from core.interfaces.deployment import DeploymentGateway
from core.interfaces.transport import RealtimeTransport
from core.services.channel import ChannelHooks, ChannelManager
from core.services.log_stream import LogStreamAggregator

logger = logging.getLogger(__name__)

DEPLOY_STARTED_MESSAGE = "Deployment started successfully!"
DEPLOY_FAILED_MESSAGE = "Failed to start deployment"
DEPLOY_NO_RESULT_MESSAGE = "Deployment accepted but no project details were returned"
RECONNECTING_BANNER = "Socket connection lost. Reconnecting..."
EXHAUSTED_BANNER = "Socket connection failed. Run again or check `shipwatch doctor run`."


class DeploymentInProgressError(ShipwatchError):
    """Se intentó disparar un despliegue mientras otro sigue en curso."""


@dataclass(frozen=True)
class SessionState:
    """Snapshot inmutable del estado observable de la sesión."""

    target_url: str = ""
    is_valid: bool = False
    validation_message: str | None = None
    in_progress: bool = False
    result: DeploymentResult | None = None
    connection_state: ConnectionState = ConnectionState.DISCONNECTED
    connection_exhausted: bool = False
    logs: tuple[str, ...] = ()

    @property
    def can_deploy(self) -> bool:
        return (
            self.is_valid
            and not self.in_progress
            and self.connection_state is ConnectionState.CONNECTED
        )

    @property
    def connection_banner(self) -> str | None:
        if self.connection_state is ConnectionState.CONNECTED:
            return None
        if self.connection_exhausted:
            return EXHAUSTED_BANNER
        return RECONNECTING_BANNER


@dataclass
class SessionHooks:
    """Callbacks opcionales para capas de UI."""

    notify: Callable[[Notification], None] | None = None
    state_changed: Callable[[SessionState], None] | None = None
    log_appended: Callable[[LogEntry], None] | None = None


@dataclass
class _Deployment:
    in_progress: bool = False
    result: DeploymentResult | None = None
    project_slug: str | None = None
    history: list[DeploymentResult] = field(default_factory=list)


class SessionCoordinator:
    """Compone validador, gateway, canal y agregador en un estado observable."""

    def __init__(
        self,
        *,
        gateway: DeploymentGateway,
        transport: RealtimeTransport,
        policy: BackoffPolicy | None = None,
        hooks: SessionHooks | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._gateway = gateway
        self._hooks = hooks or SessionHooks()
        self._target_url = ""
        self._validation = validate_repo_url(self._target_url)
        self._deployment = _Deployment()

        self.aggregator = LogStreamAggregator(scroll_to_latest=self._on_log_appended)
        self.channel = ChannelManager(
            transport,
            policy,
            hooks=ChannelHooks(
                state_changed=self._on_connection_changed,
                message=self.aggregator.on_message,
                notify=self._notify,
            ),
            sleep=sleep,
        )

    # -------------------------------------------------------------- lifecycle

    async def open(self) -> None:
        await self.channel.open()

    async def close(self) -> None:
        await self.channel.close()

    async def __aenter__(self) -> "SessionCoordinator":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> SessionState:
        return SessionState(
            target_url=self._target_url,
            is_valid=self._validation.is_valid,
            validation_message=self._validation.message,
            in_progress=self._deployment.in_progress,
            result=self._deployment.result,
            connection_state=self.channel.state,
            connection_exhausted=self.channel.exhausted,
            logs=tuple(self.aggregator.lines),
        )

    def set_target(self, url: str) -> UrlValidation:
        self._target_url = url
        self._validation = validate_repo_url(url)
        self._emit_state()
        return self._validation

    # ------------------------------------------------------------- deployment

    @contextmanager
    def _deploying(self) -> Iterator[None]:
        """Adquiere el flag `in_progress`; se libera en toda salida."""

        if self._deployment.in_progress:
            raise DeploymentInProgressError("A deployment is already in progress")
        self._deployment.in_progress = True
        self._emit_state()
        try:
            yield
        finally:
            self._deployment.in_progress = False
            self._emit_state()

    async def deploy(self, url: str | None = None, slug: str | None = None) -> DeploymentResult | None:
        """Dispara un despliegue y se suscribe a sus logs.

        Las precondiciones violadas (URL inválida, canal desconectado,
        despliegue en curso) se rechazan con excepción sin tocar la red. Los
        fallos de red se convierten en notificación y devuelven `None`.
        """

        if url is not None:
            self.set_target(url)
        if not self._validation.is_valid:
            raise TargetValidationError(self._target_url, self._validation.message)
        if not self.channel.is_connected:
            raise StreamConnectionError(
                f"Cannot deploy while the log stream is {self.channel.state.value}",
                attempts=self.channel.attempts,
            )

        request = DeploymentRequest(
            target_url=self._target_url,
            slug=slug or self._deployment.project_slug,
        )

        with self._deploying():
            try:
                result = await self._gateway.trigger(request)
            except NetworkError as exc:
                logger.error("Deploy error: %s", exc)
                self._notify(Notification(level=NotificationLevel.ERROR, message=DEPLOY_FAILED_MESSAGE))
                return None

            if result is None:
                logger.warning("Control-plane response for %s had no result envelope", request.target_url)
                self._notify(Notification(level=NotificationLevel.WARNING, message=DEPLOY_NO_RESULT_MESSAGE))
                return None

            self._deployment.result = result
            self._deployment.project_slug = result.project_slug
            self._deployment.history.append(result)
            self._notify(Notification(level=NotificationLevel.SUCCESS, message=DEPLOY_STARTED_MESSAGE))

            try:
                await self.channel.subscribe(result.subscription)
            except StreamConnectionError as exc:
                logger.warning("Deployment %s started but log subscription failed: %s", result.project_slug, exc)
                self._notify(
                    Notification(
                        level=NotificationLevel.WARNING,
                        message=f"Deployment started but logs are unavailable: {exc}",
                    )
                )
            return result

    @property
    def history(self) -> tuple[DeploymentResult, ...]:
        return tuple(self._deployment.history)

    # ---------------------------------------------------------------- hooks

    def _on_connection_changed(self, _state: ConnectionState) -> None:
        self._emit_state()

    def _on_log_appended(self, entry: LogEntry) -> None:
        # Sin snapshot completo por línea: el buffer puede ser largo.
        if self._hooks.log_appended:
            self._hooks.log_appended(entry)

    def _notify(self, notification: Notification) -> None:
        if self._hooks.notify:
            self._hooks.notify(notification)

    def _emit_state(self) -> None:
        if self._hooks.state_changed:
            self._hooks.state_changed(self.state)


def build_session(
    settings: AppSettings | None = None,
    *,
    hooks: SessionHooks | None = None,
) -> SessionCoordinator:
    """Crea una sesión cableada con httpx (control-plane) y Socket.IO (logs)."""

    settings = settings or AppSettings()
    return SessionCoordinator(
        gateway=ControlPlaneClient(settings),
        transport=SocketIOTransport(settings),
        policy=settings.backoff_policy(),
        hooks=hooks,
    )
