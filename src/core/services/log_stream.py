"""Agregador del stream de logs.

Reglas:
- El buffer es append-only: sin deduplicar, reordenar ni truncar.
- Un mensaje mal formado se descarta y se registra en el logger de
  diagnóstico; nunca llega al usuario ni detiene el procesamiento.
"""

from __future__ import annotations

import logging
from typing import Callable

from pydantic import ValidationError

from core.domain.errors import LogParseError
from core.domain.models import LogEntry, LogMessage

logger = logging.getLogger(__name__)


def parse_log_message(raw: object) -> str:
    """Extrae el campo `log` de un payload textual `{"log": "..."}`."""

    if not isinstance(raw, (str, bytes, bytearray)):
        raise LogParseError(f"Expected a text payload, got {type(raw).__name__}", raw=raw)
    try:
        return LogMessage.model_validate_json(raw).log
    except ValidationError as exc:
        raise LogParseError(f"Invalid log payload: {exc.error_count()} error(s)", raw=raw) from exc


class LogStreamAggregator:
    """Dueño exclusivo del buffer ordenado de `LogEntry`."""

    def __init__(self, *, scroll_to_latest: Callable[[LogEntry], None] | None = None) -> None:
        self._entries: list[LogEntry] = []
        self._scroll_to_latest = scroll_to_latest
        self._discarded = 0

    def on_message(self, raw: object) -> LogEntry | None:
        try:
            text = parse_log_message(raw)
        except LogParseError as exc:
            self._discarded += 1
            logger.warning("Discarding malformed log message: %s (raw=%r)", exc, exc.raw)
            return None

        entry = LogEntry(index=len(self._entries), text=text)
        self._entries.append(entry)
        if self._scroll_to_latest:
            self._scroll_to_latest(entry)
        return entry

    @property
    def entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._entries)

    @property
    def lines(self) -> list[str]:
        return [entry.text for entry in self._entries]

    @property
    def discarded(self) -> int:
        """Número de mensajes descartados por no poder parsearse."""

        return self._discarded

    def __len__(self) -> int:
        return len(self._entries)
