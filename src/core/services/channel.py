"""Gestor del canal en tiempo real (streaming de logs).

Por qué una máquina de estados explícita:
- Todos los eventos del transporte (connect, disconnect, connect_error,
  message) y los temporizadores de reconexión entran en una única cola FIFO.
- Un solo consumidor aplica la tabla de transiciones; nadie más muta
  `ConnectionState`, así no hace falta ningún lock.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from core.domain.errors import StreamConnectionError
from core.domain.models import (
    BackoffPolicy,
    ConnectionState,
    Notification,
    NotificationLevel,
    Subscription,
)
from core.interfaces.transport import ChannelEvent, ChannelEventKind, RealtimeTransport

logger = logging.getLogger(__name__)

SUBSCRIBE_EVENT = "subscribe"
CONNECT_FAILED_MESSAGE = "Socket connection failed"


class Transition(str, Enum):
    ATTEMPT = "attempt"
    CONNECTED = "connected"
    DROPPED = "dropped"
    FAILED = "failed"


_D = ConnectionState.DISCONNECTED
_C = ConnectionState.CONNECTING
_OK = ConnectionState.CONNECTED

TRANSITIONS: dict[tuple[ConnectionState, Transition], ConnectionState] = {
    (_D, Transition.ATTEMPT): _C,
    (_D, Transition.CONNECTED): _OK,
    (_D, Transition.DROPPED): _D,
    (_D, Transition.FAILED): _D,
    (_C, Transition.ATTEMPT): _C,
    (_C, Transition.CONNECTED): _OK,
    (_C, Transition.DROPPED): _D,
    (_C, Transition.FAILED): _D,
    (_OK, Transition.ATTEMPT): _OK,
    (_OK, Transition.CONNECTED): _OK,
    (_OK, Transition.DROPPED): _D,
    # Un connect_error tardío no tumba una conexión ya establecida.
    (_OK, Transition.FAILED): _OK,
}

_EVENT_TRANSITIONS = {
    ChannelEventKind.CONNECT: Transition.CONNECTED,
    ChannelEventKind.DISCONNECT: Transition.DROPPED,
    ChannelEventKind.CONNECT_ERROR: Transition.FAILED,
}


def next_state(state: ConnectionState, transition: Transition) -> ConnectionState:
    return TRANSITIONS[(state, transition)]


@dataclass(frozen=True)
class _Attempt:
    """Orden interna de (re)conectar; `generation` descarta órdenes obsoletas."""

    generation: int
    manual: bool = False


@dataclass
class ChannelHooks:
    """Callbacks opcionales para capas superiores."""

    state_changed: Callable[[ConnectionState], None] | None = None
    message: Callable[[Any], None] | None = None
    notify: Callable[[Notification], None] | None = None


class ChannelManager:
    """Dueño exclusivo de la conexión de streaming y de su estado.

    Ciclo de vida explícito: `open()` al inicio de la sesión, `close()` al
    final (o `async with`). La conexión se reutiliza entre despliegues.
    """

    def __init__(
        self,
        transport: RealtimeTransport,
        policy: BackoffPolicy | None = None,
        *,
        hooks: ChannelHooks | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._policy = policy or BackoffPolicy()
        self._hooks = hooks or ChannelHooks()
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        self._exhausted = False
        self._generation = 0
        self._topics: list[str] = []

        self._queue: asyncio.Queue[ChannelEvent | _Attempt] | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._retry_task: asyncio.Task[None] | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._settled: asyncio.Event | None = None
        self._closed = False

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def exhausted(self) -> bool:
        """`True` tras agotar los reintentos, hasta un `retry()` manual."""

        return self._exhausted

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    # -------------------------------------------------------------- lifecycle

    async def open(self) -> None:
        if self._consumer is not None:
            return
        self._closed = False
        self._queue = asyncio.Queue()
        self._settled = asyncio.Event()
        self._transport.attach(self._enqueue)
        self._consumer = asyncio.create_task(self._consume(), name="channel-consumer")
        self._enqueue(_Attempt(self._generation))

    async def close(self) -> None:
        if self._consumer is None:
            return
        self._closed = True
        self._generation += 1
        self._transport.detach()

        tasks = [t for t in (self._retry_task, self._connect_task, self._consumer) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._consumer = None
        self._retry_task = None
        self._connect_task = None

        try:
            await self._transport.disconnect()
        except Exception as exc:  # pragma: no cover - best effort al cerrar
            logger.debug("Ignoring error while disconnecting: %s", exc)
        self._state = ConnectionState.DISCONNECTED

    async def __aenter__(self) -> "ChannelManager":
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def retry(self) -> None:
        """Reintento manual: reinicia el contador y vuelve a conectar."""

        if self._consumer is None:
            raise StreamConnectionError("Channel is not open")
        # Flags de la política, no del estado: `wait_ready` debe volver a esperar.
        self._exhausted = False
        self._clear_settled()
        self._enqueue(_Attempt(self._generation + 1, manual=True))

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """Espera a estar conectado; `False` si se agotan reintentos o el timeout."""

        if self.is_connected:
            return True
        if self._exhausted or self._settled is None:
            return False
        try:
            await asyncio.wait_for(self._settled.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return self.is_connected

    async def subscribe(self, topic: str | Subscription) -> None:
        """Emite `subscribe` para `topic`; requiere estado `Connected`."""

        name = topic.topic if isinstance(topic, Subscription) else topic
        if not self.is_connected:
            raise StreamConnectionError(
                f"Cannot subscribe to {name!r} while {self._state.value}",
                attempts=self._attempts,
            )
        await self._transport.emit(SUBSCRIBE_EVENT, name)
        if name not in self._topics:
            self._topics.append(name)
        logger.info("Subscribed to %s", name)

    # --------------------------------------------------------------- consumer

    def _enqueue(self, item: ChannelEvent | _Attempt) -> None:
        if self._queue is not None:
            self._queue.put_nowait(item)

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            item = await self._queue.get()
            try:
                await self._dispatch(item)
            except asyncio.CancelledError:
                raise
            except Exception:
                # Un hook defectuoso no debe detener el canal.
                logger.exception("Error while handling channel event %r", item)

    async def _dispatch(self, item: ChannelEvent | _Attempt) -> None:
        if isinstance(item, _Attempt):
            self._handle_attempt(item)
            return

        if item.kind is ChannelEventKind.MESSAGE:
            if self._hooks.message:
                self._hooks.message(item.payload)
            return

        previous = self._state
        self._apply(_EVENT_TRANSITIONS[item.kind])

        if item.kind is ChannelEventKind.CONNECT:
            logger.info("Connected to streaming service")
            self._attempts = 0
            self._exhausted = False
            self._cancel_retry()
            self._set_settled()
            await self._resubscribe()
        elif item.kind is ChannelEventKind.DISCONNECT:
            logger.warning("Streaming connection dropped (%s)", item.payload or "no reason")
            if previous is not ConnectionState.DISCONNECTED:
                self._clear_settled()
                self._schedule_retry()
        elif item.kind is ChannelEventKind.CONNECT_ERROR:
            logger.warning("Streaming connection failed: %s", item.payload)
            self._notify(Notification(level=NotificationLevel.ERROR, message=CONNECT_FAILED_MESSAGE))
            if self._state is ConnectionState.DISCONNECTED:
                self._schedule_retry()

    def _handle_attempt(self, item: _Attempt) -> None:
        if item.manual:
            # Solo desde Disconnected: un connect en curso ya resolverá el estado.
            if self._state is not ConnectionState.DISCONNECTED:
                logger.debug("Manual reconnect ignored while %s", self._state.value)
                return
            self._generation = item.generation
            self._cancel_retry()
            self._attempts = 0
            self._exhausted = False
            self._clear_settled()
            logger.info("Manual reconnect requested")
        elif item.generation != self._generation or self._closed:
            return

        self._apply(Transition.ATTEMPT)
        self._connect_task = asyncio.create_task(self._connect(), name="channel-connect")

    async def _connect(self) -> None:
        try:
            await self._transport.connect()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._enqueue(ChannelEvent(ChannelEventKind.CONNECT_ERROR, str(exc)))

    async def _resubscribe(self) -> None:
        for topic in list(self._topics):
            await self._transport.emit(SUBSCRIBE_EVENT, topic)
            logger.info("Re-subscribed to %s", topic)

    # ---------------------------------------------------------------- retries

    def _schedule_retry(self) -> None:
        if self._closed:
            return
        if self._retry_task is not None and not self._retry_task.done():
            return
        if self._attempts >= self._policy.max_attempts:
            self._exhaust()
            return

        self._attempts += 1
        delay = self._policy.delay_for(self._attempts)
        logger.info(
            "Reconnecting in %.2fs (attempt %d/%d)",
            delay,
            self._attempts,
            self._policy.max_attempts,
        )
        self._retry_task = asyncio.create_task(
            self._retry_after(delay, self._generation),
            name="channel-retry",
        )

    async def _retry_after(self, delay: float, generation: int) -> None:
        await self._sleep(delay)
        self._enqueue(_Attempt(generation))

    def _cancel_retry(self) -> None:
        if self._retry_task is not None and not self._retry_task.done():
            self._retry_task.cancel()
        self._retry_task = None

    def _exhaust(self) -> None:
        self._exhausted = True
        error = StreamConnectionError(
            f"Could not reach the streaming service after {self._attempts} attempts",
            attempts=self._attempts,
        )
        logger.error("%s", error)
        self._notify(
            Notification(level=NotificationLevel.ERROR, message=str(error), persistent=True)
        )
        self._set_settled()

    # ---------------------------------------------------------------- helpers

    def _apply(self, transition: Transition) -> None:
        new_state = next_state(self._state, transition)
        if new_state is self._state:
            return
        logger.debug("Connection %s -> %s (%s)", self._state.value, new_state.value, transition.value)
        self._state = new_state
        if self._hooks.state_changed:
            self._hooks.state_changed(new_state)

    def _notify(self, notification: Notification) -> None:
        if self._hooks.notify:
            self._hooks.notify(notification)

    def _set_settled(self) -> None:
        if self._settled is not None:
            self._settled.set()

    def _clear_settled(self) -> None:
        if self._settled is not None:
            self._settled.clear()
