"""Transporte Socket.IO para el stream de logs.

Por qué un adaptador:
- `python-socketio` gestiona handshake, heartbeats y framing; aquí solo
  traducimos sus callbacks a `ChannelEvent` para el `ChannelManager`.
- La reconexión automática de la librería queda desactivada: la política de
  reintentos es del `ChannelManager` (una sola fuente de verdad).
"""

from __future__ import annotations

import logging
from typing import Any

import socketio
from socketio import exceptions as socketio_exceptions

from core.config import AppSettings
from core.domain.errors import StreamConnectionError
from core.interfaces.transport import ChannelEvent, ChannelEventKind, EventSink, RealtimeTransport

logger = logging.getLogger(__name__)


class SocketIOTransport(RealtimeTransport):
    """`RealtimeTransport` sobre `socketio.AsyncClient`."""

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        client: socketio.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self._client = client or socketio.AsyncClient(reconnection=False, logger=False)
        self._sink: EventSink | None = None
        self._error_reported = False

        self._client.on("connect", self._on_connect)
        self._client.on("disconnect", self._on_disconnect)
        self._client.on("connect_error", self._on_connect_error)
        self._client.on("message", self._on_message)

    @property
    def url(self) -> str:
        return self._settings.socket_url

    def attach(self, sink: EventSink) -> None:
        self._sink = sink

    def detach(self) -> None:
        self._sink = None

    def _report(self, kind: ChannelEventKind, payload: Any = None) -> None:
        if self._sink is not None:
            self._sink(ChannelEvent(kind, payload))

    async def _on_connect(self) -> None:
        self._report(ChannelEventKind.CONNECT)

    async def _on_disconnect(self, *args: Any) -> None:
        # python-socketio >= 5.12 pasa el motivo de la desconexión.
        self._report(ChannelEventKind.DISCONNECT, args[0] if args else None)

    async def _on_connect_error(self, data: Any = None) -> None:
        self._error_reported = True
        self._report(ChannelEventKind.CONNECT_ERROR, data)

    async def _on_message(self, data: Any) -> None:
        self._report(ChannelEventKind.MESSAGE, data)

    async def connect(self) -> None:
        self._error_reported = False
        try:
            await self._client.connect(
                self._settings.socket_url,
                wait_timeout=self._settings.connect_timeout_seconds,
            )
        except (socketio_exceptions.ConnectionError, ValueError) as exc:
            logger.debug("Socket.IO connect to %s failed: %s", self.url, exc)
            # La librería ya puede haber disparado `connect_error`.
            if not self._error_reported:
                self._report(ChannelEventKind.CONNECT_ERROR, str(exc))

    async def emit(self, event: str, data: Any) -> None:
        try:
            await self._client.emit(event, data)
        except socketio_exceptions.SocketIOError as exc:
            raise StreamConnectionError(f"Could not emit {event!r}: {exc}") from exc

    async def disconnect(self) -> None:
        await self._client.disconnect()
