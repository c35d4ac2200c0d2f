"""Errores del dominio.

Por qué una jerarquía propia:
- Los adaptadores traducen errores de librerías (httpx, socketio, pydantic)
  a estos tipos en el borde, así el Core y la CLI no dependen de ellas.
- Cada tipo tiene una política de presentación distinta (acción
  deshabilitada, notificación transitoria, log de diagnóstico o estado
  persistente).
"""

from __future__ import annotations


class ShipwatchError(Exception):
    """Base para todos los errores de la aplicación."""


class TargetValidationError(ShipwatchError):
    """La URL del repositorio está vacía o no tiene el formato esperado.

    Nunca se notifica: solo deshabilita la acción de despliegue.
    """

    def __init__(self, url: str, message: str | None = None) -> None:
        self.url = url
        self.message = message
        super().__init__(message or "Empty repository URL")


class NetworkError(ShipwatchError):
    """Falló la petición al control-plane (transporte o status HTTP)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class LogParseError(ShipwatchError):
    """Un mensaje entrante del stream no es un `{log: string}` válido."""

    def __init__(self, message: str, *, raw: object = None) -> None:
        self.raw = raw
        super().__init__(message)


class StreamConnectionError(ShipwatchError):
    """El servicio de streaming no es alcanzable o se agotaron los reintentos."""

    def __init__(self, message: str, *, attempts: int = 0) -> None:
        self.attempts = attempts
        super().__init__(message)
