"""Modelos del dominio (Pydantic v2).

Por qué Pydantic en el dominio:
- Nos da validación estricta y documentación autocontenida (Field) sin acoplar
  el Core a librerías de I/O.
- Los mismos modelos sirven para parsear el sobre de respuesta del
  control-plane y los mensajes del stream de logs.

Nota:
- Estos modelos describen *qué* es la información, no *cómo* se obtiene.
"""

from __future__ import annotations

import random
from enum import Enum

from pydantic import BaseModel, Field, model_validator
from pydantic.config import ConfigDict

from core.domain.errors import TargetValidationError
from core.domain.repo_url import validate_repo_url

LOG_TOPIC_PREFIX = "logs:"


class ConnectionState(str, Enum):
    """Estado de la conexión persistente con el servicio de streaming."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"

    def label(self) -> str:
        return self.value.capitalize()


class DeploymentRequest(BaseModel):
    """Petición de despliegue de un repositorio.

    Por qué valida aquí:
    - Un request con URL inválida no debe poder existir; así ningún cliente
      puede emitir la petición sin pasar por el validador.
    """

    model_config = ConfigDict(frozen=True)

    target_url: str = Field(
        ...,
        description="URL del repositorio GitHub a desplegar.",
    )
    slug: str | None = Field(
        default=None,
        min_length=1,
        description="Identificador de proyecto opcional (re-despliegue).",
    )

    @model_validator(mode="after")
    def _check_target(self) -> "DeploymentRequest":
        is_valid, message = validate_repo_url(self.target_url)
        if not is_valid:
            raise TargetValidationError(self.target_url, message)
        return self

    def to_payload(self) -> dict[str, str]:
        """Cuerpo JSON para el control-plane; `slug` se omite si no existe."""

        payload = {"gitURL": self.target_url}
        if self.slug is not None:
            payload["slug"] = self.slug
        return payload


class DeploymentResult(BaseModel):
    """Resultado de un despliegue aceptado. Inmutable."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    project_slug: str = Field(
        ...,
        min_length=1,
        alias="projectSlug",
        description="Identificador del proyecto asignado por el control-plane.",
    )
    preview_url: str = Field(
        ...,
        min_length=1,
        alias="url",
        description="Dirección de preview del despliegue.",
    )

    @property
    def subscription(self) -> "Subscription":
        return Subscription.for_project(self.project_slug)


class DeploymentEnvelope(BaseModel):
    """Sobre de respuesta `{data: {projectSlug, url}}` del control-plane."""

    model_config = ConfigDict(extra="ignore")

    data: DeploymentResult | None = None


class Subscription(BaseModel):
    """Suscripción a un topic de logs; el topic nunca lo elige el llamador."""

    model_config = ConfigDict(frozen=True)

    topic: str = Field(..., min_length=len(LOG_TOPIC_PREFIX) + 1)

    @classmethod
    def for_project(cls, project_slug: str) -> "Subscription":
        return cls(topic=f"{LOG_TOPIC_PREFIX}{project_slug}")


class LogMessage(BaseModel):
    """Mensaje entrante del stream: `{"log": "..."}`."""

    model_config = ConfigDict(extra="ignore", strict=True)

    log: str


class LogEntry(BaseModel):
    """Línea de log recibida; `index` es el orden de llegada (desde 0)."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0)
    text: str


class BackoffPolicy(BaseModel):
    """Política de reconexión del canal en tiempo real."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Reintentos automáticos antes de quedar desconectado.",
    )
    base_delay: float = Field(
        default=1.0,
        ge=0,
        description="Espera fija entre intentos (segundos).",
    )
    jitter: float = Field(
        default=0.0,
        ge=0,
        description="Ruido aleatorio máximo sumado a cada espera (segundos).",
    )

    def delay_for(self, attempt: int) -> float:
        """Espera antes del reintento número `attempt` (desde 1)."""

        if self.jitter <= 0:
            return self.base_delay
        return self.base_delay + random.uniform(0, self.jitter)  # nosec - no criptográfico


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    """Aviso para el usuario (toast). `persistent` marca estados, no eventos."""

    model_config = ConfigDict(frozen=True)

    level: NotificationLevel
    message: str = Field(..., min_length=1)
    persistent: bool = False
