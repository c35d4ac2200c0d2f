"""Contrato del transporte en tiempo real (streaming de logs).

Por qué Protocol:
- El `ChannelManager` no conoce Socket.IO: solo recibe eventos en una cola.
- En tests se sustituye por un transporte en memoria.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Protocol, runtime_checkable


class ChannelEventKind(str, Enum):
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    CONNECT_ERROR = "connect_error"
    MESSAGE = "message"


@dataclass(frozen=True)
class ChannelEvent:
    kind: ChannelEventKind
    payload: Any = None


EventSink = Callable[[ChannelEvent], None]


@runtime_checkable
class RealtimeTransport(Protocol):
    """Conexión bidireccional persistente.

    Reglas:
    - Todo evento de ciclo de vida y todo mensaje se reporta vía el `sink`
      registrado con `attach`, en el orden en que ocurren.
    - `connect` no lanza excepciones: un fallo se reporta como
      `CONNECT_ERROR` en el sink.
    """

    def attach(self, sink: EventSink) -> None:
        ...

    def detach(self) -> None:
        ...

    async def connect(self) -> None:
        ...

    async def emit(self, event: str, data: Any) -> None:
        ...

    async def disconnect(self) -> None:
        ...
